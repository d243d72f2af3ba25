"""Clairvoyant command-line interface."""

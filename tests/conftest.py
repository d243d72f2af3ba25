"""Shared test fixtures."""

from __future__ import annotations

import pytest
from fakes import SERVER_URL, TOKEN, FakeMetricServer

from clairvoyant.access import TokenAccessProvider
from clairvoyant.consumer import MetricConsumer


@pytest.fixture
def server() -> FakeMetricServer:
    return FakeMetricServer()


@pytest.fixture
def consumer(server: FakeMetricServer) -> MetricConsumer:
    return MetricConsumer(SERVER_URL, TokenAccessProvider(TOKEN), transport=server)

"""Consumer configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field

from clairvoyant.transport import DEFAULT_TIMEOUT


class ConsumerConfig(BaseModel):
    """Connection settings for a metric server."""

    url: str
    token: str | None = None
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> ConsumerConfig:
        """Load config from environment variables.

        Reads CLAIRVOYANT_URL, CLAIRVOYANT_TOKEN and CLAIRVOYANT_TIMEOUT.

        Raises:
            ValueError: If the url is missing or the timeout is not a number.
        """
        url = os.environ.get("CLAIRVOYANT_URL", "")
        token = os.environ.get("CLAIRVOYANT_TOKEN") or None
        timeout_text = os.environ.get("CLAIRVOYANT_TIMEOUT", "")

        if not url:
            raise ValueError("CLAIRVOYANT_URL environment variable is required")

        timeout = DEFAULT_TIMEOUT
        if timeout_text:
            try:
                timeout = float(timeout_text)
            except ValueError:
                msg = f"CLAIRVOYANT_TIMEOUT must be a number of seconds, got {timeout_text!r}"
                raise ValueError(msg) from None

        return cls(url=url, token=token, timeout=timeout)

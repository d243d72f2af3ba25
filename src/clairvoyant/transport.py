"""Transport — delivers metric requests to a server and returns the response body."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from clairvoyant.errors import TransportError, error_for_status
from clairvoyant.routes import ServerRoute

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass
class MetricRequest:
    """An outgoing request to a metric server."""

    url: str
    route: ServerRoute
    body: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)


class Transport(Protocol):
    """Sends metric requests.

    `post` returns the response body for status 200 and raises a MetricError otherwise.
    """

    async def post(self, request: MetricRequest) -> bytes: ...

    async def aclose(self) -> None: ...


def join_url(server_url: str, path: str) -> str:
    """Append a route path to a server url."""
    return f"{server_url.rstrip('/')}/{path.lstrip('/')}"


class HTTPTransport:
    """Transport sending requests as HTTP POST with httpx."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Client to send requests with. A new client is created and
                owned by the transport if none is given.
            timeout: Request timeout in seconds for a created client.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def post(self, request: MetricRequest) -> bytes:
        logger.debug("POST %s", request.route)
        try:
            response = await self._client.post(
                request.url,
                content=request.body,
                headers=request.headers,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {request.url} failed: {e}") from e

        error = error_for_status(response.status_code)
        if error is not None:
            logger.debug("%s answered with status %d", request.route, response.status_code)
            raise error
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

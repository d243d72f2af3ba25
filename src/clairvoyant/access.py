"""Access providers — attach credentials to outgoing metric requests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from clairvoyant.routes import HEADER_ACCESS_TOKEN

if TYPE_CHECKING:
    from clairvoyant.routes import ServerRoute
    from clairvoyant.transport import MetricRequest


class RequestAccessProvider(Protocol):
    """Adds access control information to outgoing requests.

    Implement this to provide authentication for metric requests.
    """

    def add_access_data(self, request: MetricRequest, route: ServerRoute) -> None:
        """Add authentication to a metric request before it is sent."""
        ...


class TokenAccessProvider:
    """Sends a fixed access token in the token header of every request."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("Access token cannot be empty")
        self._token = token

    def add_access_data(self, request: MetricRequest, route: ServerRoute) -> None:
        request.headers[HEADER_ACCESS_TOKEN] = self._token

    def __repr__(self) -> str:
        return "TokenAccessProvider(token=***)"


class NoAccessProvider:
    """Sends requests without credentials."""

    def add_access_data(self, request: MetricRequest, route: ServerRoute) -> None:
        return None

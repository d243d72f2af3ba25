"""Server routes used by metric consumers."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

HEADER_ACCESS_TOKEN = "token"


class RouteKind(StrEnum):
    """Routes exposed by a metric server."""

    GET_METRIC_LIST = "list"
    GET_METRIC_INFO = "info"
    LAST_VALUE = "last"
    ALL_LAST_VALUES = "last/all"
    EXTENDED_INFO_LIST = "list/extended"
    METRIC_HISTORY = "history"
    PUSH_VALUE = "push"


# Routes addressing a single metric by its id hash
_METRIC_ROUTES = frozenset(
    {
        RouteKind.GET_METRIC_INFO,
        RouteKind.LAST_VALUE,
        RouteKind.METRIC_HISTORY,
        RouteKind.PUSH_VALUE,
    }
)


class ServerRoute(BaseModel):
    """A route tag, optionally bound to a metric id hash."""

    kind: RouteKind
    metric_hash: str | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def get_metric_list(cls) -> ServerRoute:
        return cls(kind=RouteKind.GET_METRIC_LIST)

    @classmethod
    def get_metric_info(cls, metric_hash: str) -> ServerRoute:
        return cls(kind=RouteKind.GET_METRIC_INFO, metric_hash=metric_hash)

    @classmethod
    def last_value(cls, metric_hash: str) -> ServerRoute:
        return cls(kind=RouteKind.LAST_VALUE, metric_hash=metric_hash)

    @classmethod
    def all_last_values(cls) -> ServerRoute:
        return cls(kind=RouteKind.ALL_LAST_VALUES)

    @classmethod
    def extended_info_list(cls) -> ServerRoute:
        return cls(kind=RouteKind.EXTENDED_INFO_LIST)

    @classmethod
    def metric_history(cls, metric_hash: str) -> ServerRoute:
        return cls(kind=RouteKind.METRIC_HISTORY, metric_hash=metric_hash)

    @classmethod
    def push_value(cls, metric_hash: str) -> ServerRoute:
        return cls(kind=RouteKind.PUSH_VALUE, metric_hash=metric_hash)

    @property
    def path(self) -> str:
        """The path of the route, relative to the server url."""
        if self.kind in _METRIC_ROUTES:
            return f"{self.kind.value}/{self.metric_hash}"
        return self.kind.value

    def __str__(self) -> str:
        return self.path

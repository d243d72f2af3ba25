"""Metric data models — type tags, metric infos, timestamped values, history requests."""

import hashlib
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    model_serializer,
    model_validator,
)

DISTANT_PAST = datetime(1, 1, 1, tzinfo=UTC)
DISTANT_FUTURE = datetime.max.replace(tzinfo=UTC)

METRIC_ID_HASH_LENGTH = 16


def hash_metric_id(metric_id: str) -> str:
    """Hash a metric id for use in request routes."""
    return hashlib.sha256(metric_id.encode("utf-8")).hexdigest()[:METRIC_ID_HASH_LENGTH]


class ValueKind(StrEnum):
    """Kinds of metric values. CUSTOM is resolved through the custom type registry."""

    INTEGER = "int"
    DOUBLE = "double"
    BOOLEAN = "bool"
    STRING = "string"
    DATA = "data"
    SERVER_STATUS = "status"
    HTTP_STATUS = "http"
    SEMANTIC_VERSION = "semver"
    DATE = "date"
    CUSTOM = "custom"


BUILTIN_RAW_VALUES = frozenset(k.value for k in ValueKind if k != ValueKind.CUSTOM)


class MetricType(BaseModel):
    """The value type tag of a metric.

    Serialized as a single string: the raw value of a built-in kind,
    or the name of a custom type.
    """

    kind: ValueKind
    name: str | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def custom(cls, name: str) -> "MetricType":
        """Create the tag of a custom type with the given name."""
        return cls(kind=ValueKind.CUSTOM, name=name)

    @classmethod
    def from_raw(cls, raw: str) -> "MetricType":
        """Parse the wire form of a metric type."""
        return cls.model_validate(raw)

    @property
    def raw_value(self) -> str:
        if self.kind == ValueKind.CUSTOM:
            return self.name or ""
        return self.kind.value

    @property
    def is_custom(self) -> bool:
        return self.kind == ValueKind.CUSTOM

    @model_validator(mode="before")
    @classmethod
    def _parse_raw(cls, data: Any) -> Any:
        if isinstance(data, str):
            if data in BUILTIN_RAW_VALUES:
                return {"kind": data}
            return {"kind": ValueKind.CUSTOM, "name": data}
        return data

    @model_validator(mode="after")
    def _check_name(self) -> "MetricType":
        if self.kind == ValueKind.CUSTOM and not self.name:
            raise ValueError("Custom metric types require a name")
        if self.kind != ValueKind.CUSTOM and self.name is not None:
            raise ValueError(f"Built-in metric type '{self.kind}' takes no name")
        return self

    @model_serializer
    def _serialize(self) -> str:
        return self.raw_value

    def __str__(self) -> str:
        if self.is_custom:
            return f"custom({self.name})"
        return self.kind.value


class ServerStatus(StrEnum):
    """Status values reported by server status metrics."""

    NEVER_REPORTED = "neverReported"
    INITIALIZING = "initializing"
    RUNNING = "running"
    SOME_ERRORS = "someErrors"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"
    SHUT_DOWN = "shutDown"


class SemanticVersion(BaseModel):
    """A semantic version (major.minor.patch)."""

    major: int = Field(ge=0)
    minor: int = Field(default=0, ge=0)
    patch: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, text: str) -> "SemanticVersion":
        """Parse a version string like '1.2.3'.

        Raises:
            ValueError: If the string is not a valid version.
        """
        parts = text.strip().split(".")
        if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid semantic version: {text!r}")
        numbers = [int(p) for p in parts] + [0] * (3 - len(parts))
        return cls(major=numbers[0], minor=numbers[1], patch=numbers[2])

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


class MetricInfo(BaseModel):
    """Identity and shape of a metric."""

    id: str
    data_type: MetricType = Field(alias="dataType")
    name: str | None = None
    description: str | None = None

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def id_hash(self) -> str:
        return hash_metric_id(self.id)


class ExtendedMetricInfo(BaseModel):
    """Metric info together with the encoded last value, if one exists."""

    info: MetricInfo
    last_value_data: bytes | None = Field(default=None, alias="lastValueData")

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )


class LastValueTable(RootModel[dict[str, bytes]]):
    """Encoded last values of all metrics, keyed by metric id hash."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")


class Timestamped[ValueT](BaseModel):
    """A value with the time it was recorded.

    Sorting compares timestamps only; equality compares value and timestamp.
    """

    value: ValueT
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(
        frozen=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )

    def map_value[OtherT](self, transform: Callable[[ValueT], OtherT]) -> "Timestamped[OtherT]":
        """Transform the value, keeping the timestamp."""
        return Timestamped(value=transform(self.value), timestamp=self.timestamp)

    def __lt__(self, other: "Timestamped[Any]") -> bool:
        return self.timestamp < other.timestamp

    def __le__(self, other: "Timestamped[Any]") -> bool:
        return self.timestamp <= other.timestamp

    def __gt__(self, other: "Timestamped[Any]") -> bool:
        return self.timestamp > other.timestamp

    def __ge__(self, other: "Timestamped[Any]") -> bool:
        return self.timestamp >= other.timestamp


class MetricHistoryRequest(BaseModel):
    """A request for the values of a metric between two dates.

    `start` may be after `end`. Entries are always returned ordered from
    `start` towards `end`, and `limit` counts from `start`, so a reversed
    request yields the entries closest to `start` (the later bound), newest first.
    """

    start: datetime
    end: datetime
    limit: int | None = Field(default=None, ge=0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_range(
        cls, date_range: tuple[datetime, datetime], limit: int | None = None
    ) -> "MetricHistoryRequest":
        """Create a forward request for a closed date range.

        Raises:
            ValueError: If the lower bound is after the upper bound.
        """
        lower, upper = date_range
        if lower > upper:
            raise ValueError("Range lower bound must not be after its upper bound")
        return cls(start=lower, end=upper, limit=limit)

    @property
    def is_reversed(self) -> bool:
        return self.start > self.end

    @property
    def lower(self) -> datetime:
        return min(self.start, self.end)

    @property
    def upper(self) -> datetime:
        return max(self.start, self.end)

    def contains(self, timestamp: datetime) -> bool:
        """Check if a timestamp lies within the closed interval of the request."""
        return self.lower <= timestamp <= self.upper

    def select[ValueT](self, entries: Iterable[Timestamped[ValueT]]) -> "list[Timestamped[ValueT]]":
        """Apply the bounds, ordering and limit of the request to a set of entries."""
        selected = sorted(
            (e for e in entries if self.contains(e.timestamp)),
            key=lambda e: e.timestamp,
            reverse=self.is_reversed,
        )
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected

"""Metric handles — typed access to one metric, and the generic protocol shared by all handles."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel

from clairvoyant.errors import TypeMismatch
from clairvoyant.models import (
    DISTANT_FUTURE,
    DISTANT_PAST,
    MetricHistoryRequest,
    MetricInfo,
    MetricType,
    Timestamped,
)
from clairvoyant.values import describe_value

if TYPE_CHECKING:
    from clairvoyant.consumer import MetricConsumer
    from clairvoyant.registry import CustomTypeRegistry


def ensure_type(declared: MetricType, requested: type, registry: CustomTypeRegistry) -> None:
    """Check that values of a declared metric type can be accessed as a Python type.

    Raises:
        TypeMismatch: If the requested type is not the value type of the declared
            metric type, or the declared type is an unregistered custom type.
    """
    if registry.value_type_of(declared) is not requested:
        raise TypeMismatch(
            f"Metric of type '{declared}' can't be accessed as {requested.__name__}"
        )


@runtime_checkable
class GenericConsumableMetric(Protocol):
    """Access to a metric without static knowledge of its value type.

    Implemented by `ConsumableMetric` and `UnknownConsumableMetric`, so
    that callers holding only a `MetricInfo` can list and describe metrics.
    """

    @property
    def consumer(self) -> MetricConsumer: ...

    @property
    def info(self) -> MetricInfo: ...

    async def last_value_data(self) -> bytes | None:
        """Get the encoded timestamped last value, or None if no value exists."""
        ...

    async def last_value_description(self) -> Timestamped[str] | None:
        """Get a textual description of the timestamped last value, or None."""
        ...

    async def last_value_as[R](self, value_type: type[R]) -> Timestamped[R] | None:
        """Get the last value as a specific type.

        Raises:
            TypeMismatch: If the type doesn't match the metric type.
        """
        ...

    async def history_as[R](
        self,
        value_type: type[R],
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[R]]:
        """Get the history of the metric as a specific type.

        Raises:
            TypeMismatch: If the type doesn't match the metric type.
        """
        ...

    async def history_description(
        self,
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[str]]:
        """Get the history of the metric as text."""
        ...


class ConsumableMetric[T]:
    """A handle to a metric with values of type T."""

    def __init__(self, consumer: MetricConsumer, info: MetricInfo, value_type: type[T]) -> None:
        self._consumer = consumer
        self._info = info
        self.value_type = value_type

    @property
    def consumer(self) -> MetricConsumer:
        return self._consumer

    @property
    def info(self) -> MetricInfo:
        return self._info

    @property
    def id(self) -> str:
        return self._info.id

    @property
    def data_type(self) -> MetricType:
        return self._info.data_type

    @property
    def name(self) -> str | None:
        return self._info.name

    async def last_value(self) -> Timestamped[T] | None:
        """Get the last value of the metric from the server, if one exists."""
        return await self._consumer.last_value(self.id, self.value_type)

    async def history(
        self,
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[T]]:
        """Get the history of the metric between two dates.

        `end` may be before `start`. The result is ordered from `start` to
        `end`, and `limit` is applied from `start`.
        """
        return await self._consumer.history(self.id, self.value_type, start, end, limit)

    async def history_in(
        self, date_range: tuple[datetime, datetime], limit: int | None = None
    ) -> list[Timestamped[T]]:
        """Get the history in a closed date range, oldest first."""
        request = MetricHistoryRequest.from_range(date_range, limit)
        return await self._consumer.history_for_request(self.id, request, self.value_type)

    def decode(self, last_value_data: bytes) -> Timestamped[T]:
        """Decode an encoded last value of the metric.

        Raises:
            DecodeError: If the data is not a timestamped value of type T.
        """
        shape = Timestamped[self.value_type]  # type: ignore[name-defined]
        return self._consumer.codec.decode(last_value_data, shape)

    async def last_value_data(self) -> bytes | None:
        return await self._consumer.last_value_data(self.id)

    async def last_value_description(self) -> Timestamped[str] | None:
        value = await self.last_value()
        if value is None:
            return None
        return value.map_value(describe_value)

    async def last_value_as[R](self, value_type: type[R]) -> Timestamped[R] | None:
        ensure_type(self.data_type, value_type, self._consumer.registry)
        return await self._consumer.last_value(self.id, value_type)

    async def history_as[R](
        self,
        value_type: type[R],
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[R]]:
        ensure_type(self.data_type, value_type, self._consumer.registry)
        return await self._consumer.history(self.id, value_type, start, end, limit)

    async def history_description(
        self,
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[str]]:
        values = await self.history(start, end, limit)
        return [v.map_value(describe_value) for v in values]

    def __repr__(self) -> str:
        return f"ConsumableMetric[{self.value_type.__name__}](id={self.id!r})"


UNKNOWN_VALUE = "Some data"


class AnyTimestamped(BaseModel):
    """Partially decoded timestamped value of unknown type (only the timestamp)."""

    timestamp: datetime


class UnknownConsumableMetric:
    """A handle to a metric whose custom type is not registered.

    Only the timestamps of values can be decoded; typed access always fails.
    """

    def __init__(self, consumer: MetricConsumer, info: MetricInfo) -> None:
        self._consumer = consumer
        self._info = info

    @property
    def consumer(self) -> MetricConsumer:
        return self._consumer

    @property
    def info(self) -> MetricInfo:
        return self._info

    @property
    def id(self) -> str:
        return self._info.id

    @property
    def data_type(self) -> MetricType:
        return self._info.data_type

    @property
    def name(self) -> str | None:
        return self._info.name

    async def last_value_data(self) -> bytes | None:
        return await self._consumer.last_value_data(self.id)

    async def last_value_description(self) -> Timestamped[str] | None:
        """Describe the last value by its size, with the decoded timestamp.

        Raises:
            DecodeError: If the timestamp can't be decoded.
        """
        data = await self.last_value_data()
        if data is None:
            return None
        decoded = self._consumer.codec.decode(data, AnyTimestamped)
        return Timestamped(value=f"{len(data)} bytes", timestamp=decoded.timestamp)

    async def last_value_as[R](self, value_type: type[R]) -> Timestamped[R] | None:
        raise self._mismatch(value_type)

    async def history_as[R](
        self,
        value_type: type[R],
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[R]]:
        raise self._mismatch(value_type)

    async def history_description(
        self,
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[str]]:
        """Get the update times of the metric, with a placeholder for each value.

        Raises:
            DecodeError: If the timestamps can't be decoded.
        """
        request = MetricHistoryRequest(start=start, end=end, limit=limit)
        data = await self._consumer.history_data(self.id, request)
        entries = self._consumer.codec.decode(data, list[AnyTimestamped])
        return [Timestamped(value=UNKNOWN_VALUE, timestamp=e.timestamp) for e in entries]

    def _mismatch(self, value_type: type) -> TypeMismatch:
        return TypeMismatch(
            f"Metric of unregistered type '{self.data_type}' "
            f"can't be accessed as {value_type.__name__}"
        )

    def __repr__(self) -> str:
        return f"UnknownConsumableMetric(id={self.id!r}, type={self.data_type})"

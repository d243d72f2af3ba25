"""Custom type registry — runtime dispatch for metric types defined by the application.

Built-in metric types map to fixed Python types. Metrics of type
``custom(name)`` are handled through the registry: each registered name
owns a bundle of three functions that construct a typed handle, describe
a single encoded value and describe a batch of history values.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from clairvoyant.codec import Codec
from clairvoyant.errors import DecodeError
from clairvoyant.metric import ConsumableMetric, GenericConsumableMetric, UnknownConsumableMetric
from clairvoyant.models import (
    BUILTIN_RAW_VALUES,
    MetricHistoryRequest,
    MetricInfo,
    MetricType,
    Timestamped,
)
from clairvoyant.values import builtin_metric_type, builtin_value_type, describe_value

if TYPE_CHECKING:
    from clairvoyant.consumer import MetricConsumer

logger = logging.getLogger(__name__)

DECODING_ERROR = "Decoding error"
UNKNOWN_TYPE = "Unknown type"

type HandleConstructor = Callable[[MetricConsumer, MetricInfo], GenericConsumableMetric]
type ValueDescriptor = Callable[[Codec, bytes], Timestamped[str]]
type HistoryDescriptor = Callable[
    [MetricConsumer, str, MetricHistoryRequest], Awaitable[list[Timestamped[str]]]
]


def describe_as(data: bytes, value_type: type, codec: Codec) -> Timestamped[str]:
    """Decode an encoded timestamped value and describe it.

    Never raises: undecodable data is described as a decoding error.
    """
    try:
        decoded = codec.decode(data, Timestamped[value_type])  # type: ignore[valid-type]
    except DecodeError:
        return Timestamped(value=DECODING_ERROR)
    return decoded.map_value(describe_value)


@dataclass(frozen=True)
class CustomTypeEntry:
    """The functions handling one registered custom type."""

    name: str
    value_type: type
    construct: HandleConstructor
    describe: ValueDescriptor
    describe_history: HistoryDescriptor


def _make_entry(value_type: type, name: str) -> CustomTypeEntry:
    def construct(consumer: MetricConsumer, info: MetricInfo) -> GenericConsumableMetric:
        return ConsumableMetric(consumer, info, value_type)

    def describe(codec: Codec, data: bytes) -> Timestamped[str]:
        return describe_as(data, value_type, codec)

    async def describe_history(
        consumer: MetricConsumer, metric_id: str, request: MetricHistoryRequest
    ) -> list[Timestamped[str]]:
        return await consumer.text_history(metric_id, request, value_type)

    return CustomTypeEntry(
        name=name,
        value_type=value_type,
        construct=construct,
        describe=describe,
        describe_history=describe_history,
    )


class CustomTypeRegistry:
    """Maps custom type names to the functions handling values of that type.

    Register all custom types at startup. Lookups are safe from concurrent tasks.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CustomTypeEntry] = {}
        self._names_by_type: dict[type, str] = {}

    def register(self, value_type: type, name: str | None = None) -> MetricType:
        """Register a custom value type.

        Registering a name again replaces the previous entry.

        Args:
            value_type: The Python type of the values, decodable by the codec.
            name: The custom type name used by the server. Defaults to the
                `metric_type_name` attribute of the type, or its class name.

        Returns:
            The metric type tag of the registered type.

        Raises:
            ValueError: If the name or type collides with a built-in metric type.
        """
        name = name or getattr(value_type, "metric_type_name", None) or value_type.__name__
        if name in BUILTIN_RAW_VALUES:
            raise ValueError(f"'{name}' is the name of a built-in metric type")
        if builtin_metric_type(value_type) is not None:
            raise ValueError(f"{value_type.__name__} is a built-in metric value type")

        previous = self._entries.get(name)
        if previous is not None:
            logger.info(
                "Replacing custom type '%s' (%s -> %s)",
                name,
                previous.value_type.__name__,
                value_type.__name__,
            )
            if self._names_by_type.get(previous.value_type) == name:
                del self._names_by_type[previous.value_type]

        self._entries[name] = _make_entry(value_type, name)
        self._names_by_type[value_type] = name
        return MetricType.custom(name)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def names(self) -> list[str]:
        return sorted(self._entries)

    def entry(self, name: str) -> CustomTypeEntry | None:
        return self._entries.get(name)

    def metric_type_of(self, value_type: type) -> MetricType | None:
        """Get the metric type tag of a Python value type, or None if it is unknown."""
        builtin = builtin_metric_type(value_type)
        if builtin is not None:
            return builtin
        name = self._names_by_type.get(value_type)
        if name is None:
            return None
        return MetricType.custom(name)

    def value_type_of(self, metric_type: MetricType) -> type | None:
        """Get the Python value type of a metric type, or None if it is not registered."""
        if not metric_type.is_custom:
            return builtin_value_type(metric_type)
        entry = self._entries.get(metric_type.name or "")
        return entry.value_type if entry else None

    def metric(
        self, name: str, info: MetricInfo, consumer: MetricConsumer
    ) -> GenericConsumableMetric:
        """Create a handle for a metric of a custom type.

        Unregistered types get a handle which can only describe the last value's timestamp.
        """
        entry = self._entries.get(name)
        if entry is None:
            logger.warning("Custom type '%s' of metric '%s' is not registered", name, info.id)
            return UnknownConsumableMetric(consumer, info)
        return entry.construct(consumer, info)

    async def history(
        self,
        metric_id: str,
        request: MetricHistoryRequest,
        name: str,
        consumer: MetricConsumer,
    ) -> list[Timestamped[str]]:
        """Get the history of a custom type metric as text.

        Raises:
            DecodeError: If the custom type is not registered.
        """
        entry = self._entries.get(name)
        if entry is None:
            raise DecodeError(f"Can't decode history of unregistered custom type '{name}'")
        return await entry.describe_history(consumer, metric_id, request)

    def describe(self, data: bytes, metric_type: MetricType, codec: Codec) -> Timestamped[str]:
        """Describe an encoded timestamped value of any metric type. Never raises."""
        value_type = builtin_value_type(metric_type)
        if value_type is not None:
            return describe_as(data, value_type, codec)
        entry = self._entries.get(metric_type.name or "")
        if entry is None:
            logger.warning("Can't describe value of unregistered custom type '%s'", metric_type.name)
            return Timestamped(value=UNKNOWN_TYPE)
        return entry.describe(codec, data)

    def __repr__(self) -> str:
        return f"CustomTypeRegistry(names={self.names!r})"

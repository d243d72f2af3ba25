"""Clairvoyant client — typed and generic access to metrics of a remote server."""

__version__ = "0.9.0"

from clairvoyant.access import NoAccessProvider, RequestAccessProvider, TokenAccessProvider
from clairvoyant.codec import Codec, JSONCodec
from clairvoyant.config import ConsumerConfig
from clairvoyant.consumer import MetricConsumer
from clairvoyant.errors import (
    AccessDenied,
    DecodeError,
    EncodeError,
    MetricError,
    NoValueAvailable,
    ServerError,
    TransportError,
    TypeMismatch,
)
from clairvoyant.metric import (
    ConsumableMetric,
    GenericConsumableMetric,
    UnknownConsumableMetric,
    ensure_type,
)
from clairvoyant.models import (
    DISTANT_FUTURE,
    DISTANT_PAST,
    ExtendedMetricInfo,
    MetricHistoryRequest,
    MetricInfo,
    MetricType,
    SemanticVersion,
    ServerStatus,
    Timestamped,
    ValueKind,
    hash_metric_id,
)
from clairvoyant.registry import CustomTypeEntry, CustomTypeRegistry
from clairvoyant.routes import HEADER_ACCESS_TOKEN, ServerRoute
from clairvoyant.transport import HTTPTransport, MetricRequest, Transport

__all__ = [
    "DISTANT_FUTURE",
    "DISTANT_PAST",
    "HEADER_ACCESS_TOKEN",
    "AccessDenied",
    "Codec",
    "ConsumableMetric",
    "ConsumerConfig",
    "CustomTypeEntry",
    "CustomTypeRegistry",
    "DecodeError",
    "EncodeError",
    "ExtendedMetricInfo",
    "GenericConsumableMetric",
    "HTTPTransport",
    "JSONCodec",
    "MetricConsumer",
    "MetricError",
    "MetricHistoryRequest",
    "MetricInfo",
    "MetricRequest",
    "MetricType",
    "NoAccessProvider",
    "NoValueAvailable",
    "RequestAccessProvider",
    "SemanticVersion",
    "ServerError",
    "ServerRoute",
    "ServerStatus",
    "Timestamped",
    "TokenAccessProvider",
    "Transport",
    "TransportError",
    "TypeMismatch",
    "UnknownConsumableMetric",
    "ValueKind",
    "ensure_type",
    "hash_metric_id",
]

"""Built-in metric value types and their textual descriptions."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from http import HTTPStatus
from typing import Any

from clairvoyant.models import MetricType, SemanticVersion, ServerStatus, ValueKind

BUILTIN_VALUE_TYPES: dict[ValueKind, type] = {
    ValueKind.INTEGER: int,
    ValueKind.DOUBLE: float,
    ValueKind.BOOLEAN: bool,
    ValueKind.STRING: str,
    ValueKind.DATA: bytes,
    ValueKind.SERVER_STATUS: ServerStatus,
    ValueKind.HTTP_STATUS: HTTPStatus,
    ValueKind.SEMANTIC_VERSION: SemanticVersion,
    ValueKind.DATE: datetime,
}

# Exact type lookup, so that bool never resolves to int
_KINDS_BY_TYPE: dict[type, ValueKind] = {t: k for k, t in BUILTIN_VALUE_TYPES.items()}


def builtin_value_type(metric_type: MetricType) -> type | None:
    """Get the Python type of a built-in metric type, or None for custom types."""
    return BUILTIN_VALUE_TYPES.get(metric_type.kind)


def builtin_metric_type(value_type: type) -> MetricType | None:
    """Get the metric type of a built-in Python value type, or None if it isn't built in."""
    kind = _KINDS_BY_TYPE.get(value_type)
    if kind is None:
        return None
    return MetricType(kind=kind)


def describe_value(value: Any) -> str:
    """Create a human-readable text for a metric value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, HTTPStatus):
        return f"{value.value} {value.phrase}"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bytes):
        return f"{len(value)} bytes"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)

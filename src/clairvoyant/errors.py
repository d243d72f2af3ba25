"""Metric errors — failures reported by the server, the transport and the codec."""

from __future__ import annotations


class MetricError(Exception):
    """Base error for all metric access failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize MetricError with a message and the HTTP status, if any."""
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class TransportError(MetricError):
    """The request failed or the server answered with an unrecognized status."""


ServerError = TransportError


class AccessDenied(MetricError):
    """The server refused access to the requested metric(s)."""


class NoValueAvailable(MetricError):
    """The metric has never been written."""


class DecodeError(MetricError):
    """Data did not match the expected shape."""


class EncodeError(MetricError):
    """A value could not be encoded."""


class TypeMismatch(MetricError):
    """The requested value type disagrees with the metric's declared type."""


STATUS_OK = 200

# Status codes used by metric servers to report specific failures
_STATUS_ERRORS: dict[int, tuple[type[MetricError], str]] = {
    400: (TransportError, "Request failed"),
    401: (AccessDenied, "Access denied"),
    406: (DecodeError, "Server failed to decode the request"),
    410: (NoValueAvailable, "No value available"),
    500: (EncodeError, "Server failed to encode the response"),
}


def error_for_status(status_code: int) -> MetricError | None:
    """Map a response status to the matching error.

    Returns:
        None for 200, the specific error for known statuses, otherwise a TransportError.
    """
    if status_code == STATUS_OK:
        return None
    if status_code in _STATUS_ERRORS:
        error_type, message = _STATUS_ERRORS[status_code]
        return error_type(message, status_code=status_code)
    return TransportError(f"Unexpected response status {status_code}", status_code=status_code)


def status_for_error(error: MetricError) -> int:
    """Get the response status a server uses to report an error."""
    for status_code, (error_type, _) in _STATUS_ERRORS.items():
        if type(error) is error_type:
            return status_code
    return 400

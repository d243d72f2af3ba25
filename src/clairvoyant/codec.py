"""Binary codec — encodes outgoing values and decodes server responses."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Protocol

from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from clairvoyant.errors import DecodeError, EncodeError


class Codec(Protocol):
    """Encodes values to bytes and decodes bytes into a requested shape."""

    def encode(self, value: Any, shape: Any = None) -> bytes:
        """Encode a value.

        Raises:
            EncodeError: If the value can't be encoded.
        """
        ...

    def decode[T](self, data: bytes, shape: type[T] | Any) -> T:
        """Decode data into the given shape.

        Raises:
            DecodeError: If the data doesn't match the shape.
        """
        ...


@lru_cache(maxsize=256)
def _adapter(shape: Any) -> TypeAdapter[Any]:
    return TypeAdapter(shape)


class JSONCodec:
    """JSON codec backed by pydantic type adapters.

    Shapes are any type pydantic can validate: models, built-in types and
    generic aliases such as ``list[Timestamped[int]]``.
    """

    def encode(self, value: Any, shape: Any = None) -> bytes:
        try:
            adapter = _adapter(shape if shape is not None else type(value))
            return adapter.dump_json(value, by_alias=True)
        except (
            PydanticSerializationError,
            PydanticSchemaGenerationError,
            ValidationError,
            TypeError,
        ) as e:
            raise EncodeError(f"Failed to encode {type(value).__name__}: {e}") from e

    def decode[T](self, data: bytes, shape: type[T] | Any) -> T:
        try:
            return _adapter(shape).validate_json(data)
        except (PydanticSchemaGenerationError, ValidationError, TypeError) as e:
            raise DecodeError(f"Failed to decode {_shape_name(shape)}: {e}") from e


def _shape_name(shape: Any) -> str:
    return getattr(shape, "__name__", None) or str(shape)

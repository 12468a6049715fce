"""Codec - Serializes request payloads and decodes response bodies.

The Codec is pluggable through ProcessConfig.codec. The default implementation
is backed by pydantic: domain objects are BaseModel subclasses and any type a
pydantic TypeAdapter accepts can be decoded.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from qwikhttp.errors import DecodeError, EncodingError

T = TypeVar("T")


class Codec(Protocol):
    """Capability for converting domain objects to and from bytes."""

    content_type: str

    def encode(self, obj: Any) -> bytes: ...

    def encode_value(self, value: Any) -> bytes: ...

    def decode(self, type_: type[T], data: bytes | None) -> T: ...

    def decode_array(self, type_: type[T], data: bytes | None) -> list[T]: ...

    def to_dict(self, obj: Any) -> dict[str, Any]: ...


@lru_cache(maxsize=256)
def _adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


class PydanticCodec:
    """JSON codec built on pydantic.

    Usage:
        codec = PydanticCodec()
        data = codec.encode(Item(id=7, name="widget"))
        item = codec.decode(Item, data)
    """

    content_type = "application/json"

    def encode(self, obj: Any) -> bytes:
        """Serialize a model (or any JSON-able value) to JSON bytes.

        Raises:
            EncodingError: If the object cannot be represented as JSON.
        """
        if isinstance(obj, BaseModel):
            try:
                return obj.model_dump_json().encode("utf-8")
            except PydanticSerializationError as e:
                raise EncodingError(f"Could not serialize {type(obj).__name__}: {e}") from e
        return self.encode_value(obj)

    def encode_value(self, value: Any) -> bytes:
        """Serialize a plain value (dict, list, scalar, models nested inside)."""
        try:
            return to_json(value)
        except PydanticSerializationError as e:
            raise EncodingError(f"Could not serialize value: {e}") from e

    def decode(self, type_: type[T], data: bytes | None) -> T:
        """Decode JSON bytes into a single value of type_.

        Raises:
            DecodeError: If data is empty or doesn't validate against type_.
        """
        if not data:
            raise DecodeError("Could not parse response: empty body")
        try:
            return _adapter(type_).validate_json(data)
        except ValidationError as e:
            raise DecodeError(f"Could not parse response as {_type_name(type_)}: {e}") from e

    def decode_array(self, type_: type[T], data: bytes | None) -> list[T]:
        """Decode a JSON array into a list of type_."""
        if not data:
            raise DecodeError("Could not parse response: empty body")
        try:
            return _adapter(list[type_]).validate_json(data)  # type: ignore[valid-type]
        except ValidationError as e:
            raise DecodeError(
                f"Could not parse response as list of {_type_name(type_)}: {e}"
            ) from e

    def to_dict(self, obj: Any) -> dict[str, Any]:
        """Return a model's fields as JSON-compatible body params."""
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        if isinstance(obj, dict):
            return dict(obj)
        raise EncodingError(f"Cannot convert {type(obj).__name__} to body parameters")


def _type_name(type_: Any) -> str:
    return getattr(type_, "__name__", repr(type_))

# src/pomeocore/storage/codec.py
"""
Value codec shared by the cache and both storage backends.

Values are stored as indented, key-sorted JSON so that files on disk are
human-readable and diff cleanly. Pydantic models, datetimes (ISO-8601),
UUIDs and enums are converted with ``pydantic_core.to_jsonable_python``;
decoding can optionally validate the data back into a concrete type.
"""

from __future__ import annotations

import functools
import json
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from ..exceptions import DecodingFailed, EncodingFailed

JSON_INDENT = 2


@functools.lru_cache(maxsize=128)
def _adapter_for(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def encode(value: Any) -> str:
    """Serialize ``value`` to its stored text form.

    Raises:
        EncodingFailed: If the value has no JSON representation.
    """
    try:
        data = to_jsonable_python(value)
        return json.dumps(data, indent=JSON_INDENT, sort_keys=True, ensure_ascii=False)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise EncodingFailed(f"Cannot encode value of type {type(value).__name__}: {e}")


def decode(text: str | bytes, model: Any = None) -> Any:
    """Parse stored text, optionally validating it into ``model``.

    Args:
        text: Stored JSON text.
        model: A pydantic model class or any type understood by
            ``pydantic.TypeAdapter``. ``None`` returns plain JSON data.

    Raises:
        DecodingFailed: If the text is not JSON or does not validate.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodingFailed(f"Stored data is not valid JSON: {e}")

    if model is None:
        return data
    try:
        if isinstance(model, type) and issubclass(model, BaseModel):
            return model.model_validate(data)
        return _adapter_for(model).validate_python(data)
    except ValidationError as e:
        name = getattr(model, "__name__", repr(model))
        raise DecodingFailed(f"Stored data does not match {name}: {e}")


def encoded_size(text: str) -> int:
    """Size in bytes of stored text (UTF-8)."""
    return len(text.encode("utf-8"))

"""Value codec for stored entries.

Values are a tagged union of string, number, boolean, object and array.
They are persisted as JSON text, which keeps the tag on the way back:
numbers stay numbers, booleans stay booleans and arrays keep their order.
"""

import json
from enum import Enum
from typing import Any, Optional, Union

from sqlitekv.errors import ValueSerializationError

JSONValue = Union[str, int, float, bool, dict[str, Any], list[Any]]


class ValueKind(str, Enum):
    """Discriminant of a storable value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


def classify(value: Any) -> Optional[ValueKind]:
    """Return the kind of a value, or None if it cannot be stored.

    ``bool`` is checked before numbers because it subclasses ``int``.

    Args:
        value: Any Python value

    Returns:
        ValueKind of the value, None for unsupported types (including None)
    """
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, dict):
        return ValueKind.OBJECT
    if isinstance(value, list):
        return ValueKind.ARRAY
    return None


def is_number(value: Any) -> bool:
    """Check whether a value is a number (booleans excluded)."""
    return classify(value) is ValueKind.NUMBER


def encode_value(value: JSONValue, key: Optional[str] = None) -> str:
    """Encode a value to its stored JSON text.

    Args:
        value: Value to encode
        key: Optional key, used for error context

    Returns:
        JSON text

    Raises:
        ValueSerializationError: If the value is None, of an unsupported type,
            or contains something JSON cannot represent (NaN, sets,
            tuple keys, ...)
    """
    if classify(value) is None:
        raise ValueSerializationError(
            f"unsupported value type {type(value).__name__}", key=key
        )
    try:
        return json.dumps(value, allow_nan=False, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ValueSerializationError(str(e), key=key) from e


def decode_value(raw: str, key: Optional[str] = None) -> JSONValue:
    """Decode stored JSON text back to a value.

    Args:
        raw: Stored JSON text
        key: Optional key, used for error context

    Returns:
        Decoded value

    Raises:
        ValueSerializationError: If the blob is not valid JSON or holds
            a value that is not storable (e.g. null)
    """
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValueSerializationError(f"corrupted stored value: {e}", key=key) from e
    if classify(value) is None:
        raise ValueSerializationError(
            f"stored value has unsupported type {type(value).__name__}", key=key
        )
    return value

"""Merge-on-write rule.

A write to a key that already holds a value does not always overwrite it:

1. No existing value: the incoming value is stored as is.
2. Incoming string: replaces whatever is stored.
3. Array onto array: the incoming items are appended.
4. Object onto object: shallow merge, incoming keys win.
5. Anything else: the incoming value replaces the stored one.
"""

from typing import Optional

from sqlitekv.codec import JSONValue, ValueKind, classify


def resolve(existing: Optional[JSONValue], incoming: JSONValue) -> JSONValue:
    """Compute the value to store when ``incoming`` is written over ``existing``.

    Neither argument is mutated; merged arrays and objects are new containers.

    Args:
        existing: Currently stored value, or None if the key is absent
            (or logically expired)
        incoming: Value being written

    Returns:
        The value to persist

    Example:
        >>> resolve({"a": 1}, {"b": 2})
        {'a': 1, 'b': 2}
        >>> resolve([1, 2], [3])
        [1, 2, 3]
        >>> resolve({"a": 1}, "x")
        'x'
    """
    if existing is None:
        return incoming

    incoming_kind = classify(incoming)
    if incoming_kind is ValueKind.STRING:
        return incoming

    existing_kind = classify(existing)
    if existing_kind is ValueKind.ARRAY and incoming_kind is ValueKind.ARRAY:
        return [*existing, *incoming]
    if existing_kind is ValueKind.OBJECT and incoming_kind is ValueKind.OBJECT:
        return {**existing, **incoming}

    return incoming

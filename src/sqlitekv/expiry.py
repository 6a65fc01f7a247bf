"""Expiry and one-time read policy.

Expired entries are removed lazily: nothing sweeps the table in the
background, the read that finds an expired entry deletes it. An entry is
expired once its expiry timestamp is strictly in the past, so an entry whose
expiry equals the current millisecond is still readable.
"""

import time
from enum import Enum
from typing import Optional

from sqlitekv.storage.models import StoredEntry


class ReadOutcome(str, Enum):
    """What a read must do with the row it fetched."""

    MISSING = "missing"
    EXPIRED = "expired"
    CONSUME = "consume"
    RETURN = "return"


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def expiry_from_ttl(seconds: float, now: Optional[int] = None) -> int:
    """Absolute expiry for a TTL in seconds.

    Zero or negative TTLs produce an expiry at or before ``now``.

    Args:
        seconds: Time to live in seconds (fractions allowed)
        now: Reference time in ms, defaults to the current time

    Returns:
        Expiry timestamp in ms since the epoch
    """
    if now is None:
        now = now_ms()
    return now + int(seconds * 1000)


def is_expired(expiry: Optional[int], now: Optional[int] = None) -> bool:
    """Check whether an expiry timestamp has passed.

    Args:
        expiry: Expiry in ms since the epoch, None for never
        now: Reference time in ms, defaults to the current time

    Returns:
        True if ``expiry < now``
    """
    if expiry is None:
        return False
    if now is None:
        now = now_ms()
    return expiry < now


def remaining_ms(expiry: Optional[int], now: Optional[int] = None) -> Optional[int]:
    """Milliseconds left before expiry, never negative.

    Args:
        expiry: Expiry in ms since the epoch, None for never
        now: Reference time in ms, defaults to the current time

    Returns:
        ``max(expiry - now, 0)``, or None when there is no expiry
    """
    if expiry is None:
        return None
    if now is None:
        now = now_ms()
    return max(expiry - now, 0)


def evaluate_read(entry: Optional[StoredEntry], now: Optional[int] = None) -> ReadOutcome:
    """Decide how a read treats a fetched row.

    The expiry check comes first: an expired one-time entry is dropped
    without being returned.

    Args:
        entry: Row fetched from storage, or None
        now: Reference time in ms, defaults to the current time

    Returns:
        MISSING, EXPIRED (delete, return nothing), CONSUME (return the value,
        then delete) or RETURN
    """
    if entry is None:
        return ReadOutcome.MISSING
    if is_expired(entry.expiry, now):
        return ReadOutcome.EXPIRED
    if entry.one_time:
        return ReadOutcome.CONSUME
    return ReadOutcome.RETURN

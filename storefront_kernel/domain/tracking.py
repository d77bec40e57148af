"""
Tracking numbers -- format and generation.

A tracking number is ``prefix + base36(epoch milliseconds) + random suffix``,
upper-cased, e.g. ``TNLQ8Z3K2A7F9QX``.  The random suffix makes collisions
unlikely but not impossible, so uniqueness is ultimately guaranteed by the
database constraint and OrderStore's retry loop, not by this module.
"""

import secrets
import string
from datetime import datetime, timezone

from storefront_kernel.domain.clock import Clock

_BASE36_ALPHABET = string.digits + string.ascii_uppercase


def to_base36(value: int) -> str:
    """Render a non-negative integer in upper-case base 36."""
    if value < 0:
        raise ValueError(f"base36 encoding requires a non-negative value, got {value}")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def _epoch_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


class TrackingNumberGenerator:
    """
    Callable producing a fresh tracking number on every call.

    Args:
        clock: Source of the timestamp component.
        prefix: Leading carrier/storefront prefix.
        suffix_length: Number of random base-36 characters appended.
    """

    def __init__(self, clock: Clock, prefix: str = "TN", suffix_length: int = 5):
        if suffix_length < 1:
            raise ValueError("suffix_length must be at least 1")
        self._clock = clock
        self._prefix = prefix
        self._suffix_length = suffix_length

    def __call__(self) -> str:
        stamp = to_base36(_epoch_millis(self._clock.now()))
        suffix = "".join(
            secrets.choice(_BASE36_ALPHABET) for _ in range(self._suffix_length)
        )
        return f"{self._prefix}{stamp}{suffix}"

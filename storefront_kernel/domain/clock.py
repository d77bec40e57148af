"""
Time sources for the storefront.

Nothing in services, selectors or the fulfillment scheduler reads the wall
clock itself; each takes a Clock.  Production wires SystemClock, tests wire
DeterministicClock and move it forward explicitly to cross grace periods.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """UTC wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    A clock that only moves when told to.

    The start time is kept as given: a naive start stays naive, matching
    the naive datetimes SQLite hands back.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._origin = fixed_time or _DEFAULT_START
        self._offset = timedelta()

    def now(self) -> datetime:
        return self._origin + self._offset

    def set_time(self, time: datetime) -> None:
        """Jump to ``time``; earlier advances are discarded."""
        self._origin = time
        self._offset = timedelta()

    def advance(self, seconds: float = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """advance(1), then now()."""
        self.advance(1)
        return self.now()

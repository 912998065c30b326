"""
Injectable time source for movement timestamps.

``created_at`` is the primary replay key of a scope, so everything that
stamps a movement takes a Clock instead of calling ``datetime.now()``.
Tests pin it with DeterministicClock to get reproducible replay order.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta

EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Guarantees:
        - ``now()`` is stable between calls to ``advance()``.
        - With ``step`` set, each ``now()`` call first moves the clock
          forward by ``step``, so consecutive movements never share a
          ``created_at`` and replay order equals insertion order.
    """

    def __init__(self, start: datetime | None = None, step: timedelta | None = None):
        start = start or EPOCH
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._current = start.astimezone(UTC)
        self._step = step

    def now(self) -> datetime:
        if self._step is not None:
            self._current += self._step
        return self._current

    def advance(self, seconds: int = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current

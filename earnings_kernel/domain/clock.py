"""
Clock -- the single source of "now" for earnings and lifecycle services.

The dashboard's "current month", "previous month" and "current year" are
all relative to a moment. Services read that moment from an injected Clock;
engines never read time at all and take ``as_of`` as an argument.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Injectable time source. ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time, used by the CLI and production wiring."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock for tests: every call to ``now()`` returns ``fixed``."""

    def __init__(self, fixed: datetime):
        if fixed.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")
        self._fixed = fixed.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._fixed

"""Injectable source of "today" for day-boundary logic."""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, time


class Clock(ABC):
    """Supplies the current date and timestamp."""

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware timestamp."""
        pass

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock(Clock):
    """Clock pinned to a given instant, for tests and back-dated operator runs."""

    def __init__(self, current: date | datetime) -> None:
        self.set(current)

    def set(self, current: date | datetime) -> None:
        if not isinstance(current, datetime):
            current = datetime.combine(current, time(0, 0), tzinfo=UTC)
        elif current.tzinfo is None:
            current = current.replace(tzinfo=UTC)
        self._now = current

    def now(self) -> datetime:
        return self._now

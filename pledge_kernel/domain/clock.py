"""
Injectable source of "now" for the pledge ledger.

The ledger asks for the current date in exactly two situations: picking an
exchange rate for a payment that carries no received date, and stamping the
paid date on an installment.  Services receive a ``Clock`` instead of calling
``date.today()`` so that tests can pin both.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta

EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class Clock(ABC):
    """Source of UTC time.  Subclasses only implement ``now``."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time; the default for every service."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time stands still at ``start`` (``EPOCH`` if omitted) and only moves when
    a test calls ``advance``, ``advance_days`` or ``set_time``.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or EPOCH

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)

"""
Clock -- injectable source of business time.

Responsibility:
    Gives services one place to ask for "now" and "today" so that movement
    timestamps, financial record dates and default purchase dates are
    reproducible in tests.

Architecture position:
    Kernel > Domain.  Zero I/O except SystemClock, the one sanctioned
    boundary for wall-clock time.

Note:
    Transaction deadlines do NOT use this clock.  Elapsed-time measurement
    uses a monotonic timer injected into the TransactionOrchestrator.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services that stamp records receive a Clock via constructor
        injection and never call ``datetime.now()`` or ``date.today()``.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` is the date component of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value until ``advance()`` or
          ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        self._advance_seconds += seconds

    def advance_days(self, days: int = 1) -> None:
        self._advance_seconds += days * 86400

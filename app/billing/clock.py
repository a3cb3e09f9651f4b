"""
Injectable clock for scheduling and reconciliation code.

Services never call timezone.now() directly for business decisions; they
take a Clock so tests and replays can pin "today".

Usage:
    from billing.clock import FixedClock, SystemClock

    PauseScheduler.apply(as_of_month=MonthKey(2026, 5), clock=SystemClock())

    clock = FixedClock(datetime(2026, 4, 30, 23, 0, tzinfo=dt_timezone.utc))
    clock.today()  # date(2026, 4, 30)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from datetime import timezone as dt_timezone

from django.utils import timezone


class Clock:
    """Source of the current time."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return timezone.localdate(self.now())


class SystemClock(Clock):
    def now(self) -> datetime:
        return timezone.now()


@dataclass(frozen=True)
class FixedClock(Clock):
    """Clock pinned to a single instant (naive values are read as UTC)."""

    instant: datetime

    def now(self) -> datetime:
        if timezone.is_naive(self.instant):
            return timezone.make_aware(self.instant, dt_timezone.utc)
        return self.instant


def default_clock(clock: Clock | None) -> Clock:
    return clock or SystemClock()

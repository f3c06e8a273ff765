"""
Clinic clock.

Every date/time decision (slot in the past, check-in day, consultation
duration) goes through one TimeService so the whole lifecycle agrees on a
single clinic-local timezone. Persisted timestamps are naive clinic-local
wall-clock values.
"""

from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import CLINIC_TIMEZONE


class TimeService:
    def __init__(self, timezone: str = CLINIC_TIMEZONE):
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        """Aware current time in the clinic timezone"""
        return datetime.now(self.tz)

    def local_now(self) -> datetime:
        """Naive clinic-local wall clock, the form persisted in the store"""
        return self.now().replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


class FixedTimeService(TimeService):
    """Deterministic clock for tests and replays"""

    def __init__(self, current: datetime, timezone: str = CLINIC_TIMEZONE):
        super().__init__(timezone)
        if current.tzinfo is None:
            current = current.replace(tzinfo=self.tz)
        self.current = current.astimezone(self.tz)

    def now(self) -> datetime:
        return self.current

    def advance(self, minutes: int = 0, hours: int = 0, days: int = 0) -> None:
        self.current = self.current + timedelta(minutes=minutes, hours=hours, days=days)

    def set(self, current: datetime, tz: Optional[ZoneInfo] = None) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=tz or self.tz)
        self.current = current.astimezone(self.tz)

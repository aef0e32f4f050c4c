"""
Exchange session calendar for NSE cash and F&O segments.
"""

from datetime import datetime, date, timedelta
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo
import math

from ..config import MarketConfig, parse_hhmm


class TimeOfDay(Enum):
    PRE_OPEN = "pre_open"
    OPENING = "opening"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    CLOSING = "closing"


class DayType(Enum):
    NORMAL = "normal"
    EXPIRY = "expiry"
    RESULT_DAY = "result_day"
    EVENT_DAY = "event_day"


class MarketSession:
    """Wall-clock rules for the 09:15-15:30 IST session."""

    def __init__(self, config: MarketConfig = None):
        self.config = config or MarketConfig()
        self.tz = ZoneInfo(self.config.timezone)
        self.open_time = parse_hhmm(self.config.market_open)
        self.close_time = parse_hhmm(self.config.market_close)
        self.opening_end = parse_hhmm(self.config.opening_end)
        self.morning_end = parse_hhmm(self.config.morning_end)
        self.afternoon_end = parse_hhmm(self.config.afternoon_end)

    def now(self) -> datetime:
        """Current exchange-local time."""
        return datetime.now(self.tz)

    def localize(self, moment: Optional[datetime]) -> datetime:
        """Convert (or default) a timestamp to exchange-local time."""
        if moment is None:
            return self.now()
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz)

    def is_trading_hours(self, moment: datetime = None) -> bool:
        moment = self.localize(moment)
        return self.open_time <= moment.time() <= self.close_time

    def is_market_open(self, moment: datetime = None) -> bool:
        """Weekday and inside the regular session."""
        moment = self.localize(moment)
        if moment.weekday() >= 5:
            return False
        return self.is_trading_hours(moment)

    def time_of_day(self, moment: datetime = None) -> TimeOfDay:
        t = self.localize(moment).time()
        if t < self.open_time:
            return TimeOfDay.PRE_OPEN
        if t <= self.opening_end:
            return TimeOfDay.OPENING
        if t <= self.morning_end:
            return TimeOfDay.MORNING
        if t <= self.afternoon_end:
            return TimeOfDay.AFTERNOON
        return TimeOfDay.CLOSING

    def day_type(self, moment: datetime = None) -> DayType:
        """Calendar classification; explicit event dates win over expiry."""
        day = self.localize(moment).date().isoformat()
        if day in self.config.event_days:
            return DayType.EVENT_DAY
        if day in self.config.result_days:
            return DayType.RESULT_DAY
        if self.localize(moment).weekday() == self.config.expiry_weekday:
            return DayType.EXPIRY
        return DayType.NORMAL

    def next_expiry(self, moment: datetime = None) -> date:
        today = self.localize(moment).date()
        ahead = (self.config.expiry_weekday - today.weekday()) % 7
        return today + timedelta(days=ahead)

    def days_to_expiry(self, moment: datetime = None) -> int:
        moment = self.localize(moment)
        expiry = datetime.combine(self.next_expiry(moment), self.close_time, tzinfo=self.tz)
        remaining = (expiry - moment).total_seconds() / 86400
        if remaining < 0:
            # Expiry session already closed, roll to next week
            remaining += 7
        return max(0, math.ceil(remaining))

    def is_expiry_week(self, moment: datetime = None) -> bool:
        return self.days_to_expiry(moment) <= 2

    def at_or_after(self, hhmm: str, moment: datetime = None) -> bool:
        return self.localize(moment).time() >= parse_hhmm(hhmm)

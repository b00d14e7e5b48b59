"""
Reporting period resolution.

Turns "current month" / "current week" style requests into inclusive
start/end dates in the account's reporting timezone. Periods that are
still running end today.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import InvalidPeriodError

MONTHLY = "monthly"
WEEKLY = "weekly"

CURRENT_MONTH = "current-month"
CURRENT_WEEK = "current-week"
INTENTS = (CURRENT_MONTH, CURRENT_WEEK)


@dataclass(frozen=True)
class Period:
    """An inclusive date range with a stable identifier."""
    period_type: str
    start: date
    end: date
    period_id: str
    is_complete: bool

    @property
    def start_str(self) -> str:
        return self.start.isoformat()

    @property
    def end_str(self) -> str:
        return self.end.isoformat()

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def as_time_range(self) -> dict:
        """Meta-style {"since", "until"} mapping."""
        return {"since": self.start_str, "until": self.end_str}

    def __str__(self):
        return f"{self.period_id} ({self.start_str} .. {self.end_str})"


def today_in(timezone: str, now: Optional[datetime] = None) -> date:
    """Calendar date in `timezone` (e.g. "Europe/Warsaw")."""
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidPeriodError(f"Unknown reporting timezone: {timezone!r}")
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def _month_id(year: int, month_number: int) -> str:
    return f"{year}-{month_number:02d}"


def _week_id(monday: date) -> str:
    iso_year, iso_week, _ = monday.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def month(year: int, month_number: int, today: date) -> Period:
    """A calendar month; ends today if in progress, rejects future months."""
    if not 1 <= month_number <= 12:
        raise InvalidPeriodError(f"Month must be 1-12, got {month_number}")

    start = date(year, month_number, 1)
    last_day = date(year, month_number, calendar.monthrange(year, month_number)[1])

    if start > today:
        raise InvalidPeriodError(f"Month {_month_id(year, month_number)} has not started yet")

    is_complete = last_day < today
    return Period(
        period_type=MONTHLY,
        start=start,
        end=last_day if is_complete else today,
        period_id=_month_id(year, month_number),
        is_complete=is_complete,
    )


def current_month(today: date) -> Period:
    """First day of the current month through today."""
    return month(today.year, today.month, today)


def week(start: date, today: date) -> Period:
    """
    An explicit Monday-to-Sunday week.

    The start must be a Monday; anything else usually means an off-by-one
    upstream in week generation and is rejected.
    """
    if start.weekday() != 0:
        raise InvalidPeriodError(
            f"Week start {start.isoformat()} is a {start.strftime('%A')}, expected a Monday"
        )
    if start > today:
        raise InvalidPeriodError(f"Week starting {start.isoformat()} has not started yet")

    sunday = start + timedelta(days=6)
    is_complete = sunday < today
    return Period(
        period_type=WEEKLY,
        start=start,
        end=sunday if is_complete else today,
        period_id=_week_id(start),
        is_complete=is_complete,
    )


def current_week(today: date) -> Period:
    """Most recent Monday through today."""
    return week(today - timedelta(days=today.weekday()), today)


def iso_week(year: int, week_number: int, today: date) -> Period:
    """ISO week `week_number` of `year`."""
    try:
        monday = date.fromisocalendar(year, week_number, 1)
    except ValueError as e:
        raise InvalidPeriodError(f"Invalid ISO week {year}-W{week_number:02d}: {e}")
    return week(monday, today)


def recent_weeks(count: int, today: date) -> list[Period]:
    """The last `count` completed weeks, newest first."""
    if count < 1:
        raise InvalidPeriodError(f"Week count must be positive, got {count}")
    this_monday = today - timedelta(days=today.weekday())
    return [week(this_monday - timedelta(weeks=n), today) for n in range(1, count + 1)]


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidPeriodError(f"Expected a YYYY-MM-DD date, got {value!r}")


def resolve(intent: str, today: date) -> Period:
    """Map a symbolic intent ("current-month" / "current-week") to a Period."""
    normalized = str(intent or "").strip().lower().replace("_", "-").replace(" ", "-")
    if normalized == CURRENT_MONTH:
        return current_month(today)
    if normalized == CURRENT_WEEK:
        return current_week(today)
    raise InvalidPeriodError(f"Unknown period {intent!r}; expected one of {', '.join(INTENTS)}")


_MONTH_ID = re.compile(r"^(\d{4})-(\d{2})$")
_WEEK_ID = re.compile(r"^(\d{4})-W(\d{2})$", re.IGNORECASE)


def parse_month(value: str, today: date) -> Period:
    """Resolve a "YYYY-MM" month id."""
    match = _MONTH_ID.match(str(value or "").strip())
    if not match:
        raise InvalidPeriodError(f"Expected a YYYY-MM month, got {value!r}")
    return month(int(match.group(1)), int(match.group(2)), today)


def parse_iso_week(value: str, today: date) -> Period:
    """Resolve a "YYYY-Www" ISO week id."""
    match = _WEEK_ID.match(str(value or "").strip())
    if not match:
        raise InvalidPeriodError(f"Expected a YYYY-Www ISO week, got {value!r}")
    return iso_week(int(match.group(1)), int(match.group(2)), today)


def week_starting(value: str, today: date) -> Period:
    """Resolve an explicit "YYYY-MM-DD" week start, which must be a Monday."""
    return week(parse_date(value), today)

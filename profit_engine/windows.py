"""
Reporting window utilities.

A reporting window is an inclusive [start, end] span resolved to UTC day
boundaries: start is 00:00:00 UTC of the first day and end is the last
microsecond of the last day. All window arithmetic in the engine happens in
UTC so that day boundaries never drift with the host timezone.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Mapping, Optional, Tuple

from profit_engine.exceptions import ValidationError
from profit_engine.validators import validate_date_string, validate_window

ONE_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class ReportingWindow:
    """Inclusive UTC reporting window."""
    start: datetime
    end: datetime

    @classmethod
    def from_dates(cls, start: date, end: date) -> "ReportingWindow":
        """Build a window covering whole UTC days from start to end."""
        validate_window(start, end)
        return cls(
            start=datetime.combine(start, time.min, tzinfo=timezone.utc),
            end=datetime.combine(end, time.max, tzinfo=timezone.utc),
        )

    @property
    def end_exclusive(self) -> datetime:
        """First instant after the window."""
        return self.end + ONE_MICROSECOND

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    @property
    def day_count(self) -> int:
        """Number of whole UTC days covered."""
        return (self.end_date - self.start_date).days + 1

    def contains(self, moment: Optional[datetime]) -> bool:
        """Check if a UTC instant falls inside the window."""
        if moment is None:
            return False
        return self.start <= moment <= self.end

    def overlaps(self, start: Optional[datetime], end: Optional[datetime]) -> bool:
        """Check if [start, end] (open-ended when None) intersects the window."""
        if start is not None and start > self.end:
            return False
        if end is not None and end < self.start:
            return False
        return True

    def clip(self, other: "ReportingWindow") -> Optional["ReportingWindow"]:
        """Intersection with another window, or None if they do not meet."""
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if start > end:
            return None
        return ReportingWindow(start=start, end=end)

    def previous(self) -> "ReportingWindow":
        """Window of equal length immediately before this one."""
        days = timedelta(days=self.day_count)
        return ReportingWindow.from_dates(self.start_date - days, self.end_date - days)

    def as_str_tuple(self) -> Tuple[str, str]:
        """Return as (start, end) tuple of YYYY-MM-DD strings."""
        return (self.start_date.isoformat(), self.end_date.isoformat())


def parse_period(
    period: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    reference_date: Optional[date] = None,
) -> ReportingWindow:
    """
    Parse period shortcut or explicit dates into a ReportingWindow.

    Args:
        period: Period shortcut (today, yesterday, week, last_week, month,
                last_month, last_7_days, last_30_days)
        start_date: Explicit start date (YYYY-MM-DD), used if period is None
        end_date: Explicit end date (YYYY-MM-DD), used if period is None
        reference_date: Reference date for calculations (default: today, UTC)

    Returns:
        ReportingWindow resolved to UTC day boundaries

    Examples:
        >>> parse_period("yesterday", reference_date=date(2026, 1, 13)).as_str_tuple()
        ('2026-01-12', '2026-01-12')

        >>> parse_period(start_date="2026-01-01", end_date="2026-01-31").day_count
        31
    """
    today = reference_date or datetime.now(timezone.utc).date()

    if period == "today":
        return ReportingWindow.from_dates(today, today)

    elif period == "yesterday":
        yesterday = today - timedelta(days=1)
        return ReportingWindow.from_dates(yesterday, yesterday)

    elif period == "week":
        start_of_week = today - timedelta(days=today.weekday())
        return ReportingWindow.from_dates(start_of_week, today)

    elif period == "last_week":
        start_of_this_week = today - timedelta(days=today.weekday())
        end_of_last_week = start_of_this_week - timedelta(days=1)
        return ReportingWindow.from_dates(end_of_last_week - timedelta(days=6), end_of_last_week)

    elif period == "month":
        return ReportingWindow.from_dates(today.replace(day=1), today)

    elif period == "last_month":
        last_of_last_month = today.replace(day=1) - timedelta(days=1)
        return ReportingWindow.from_dates(last_of_last_month.replace(day=1), last_of_last_month)

    elif period == "last_7_days":
        return ReportingWindow.from_dates(today - timedelta(days=6), today)

    elif period == "last_30_days":
        return ReportingWindow.from_dates(today - timedelta(days=29), today)

    if start_date and end_date:
        return ReportingWindow.from_dates(
            validate_date_string(start_date, "start_date"),
            validate_date_string(end_date, "end_date"),
        )

    return ReportingWindow.from_dates(today, today)


def resolve_window(value: Any) -> Optional[ReportingWindow]:
    """
    Coerce a caller-supplied window into a ReportingWindow.

    Accepts a ReportingWindow, a (start, end) tuple of dates/datetimes/
    YYYY-MM-DD strings, or a mapping with startDate/endDate (or start/end).
    None stays None. Anything else raises ValidationError.
    """
    if value is None or isinstance(value, ReportingWindow):
        return value

    if isinstance(value, Mapping):
        start = value.get("startDate", value.get("start_date", value.get("start")))
        end = value.get("endDate", value.get("end_date", value.get("end")))
    elif isinstance(value, (tuple, list)) and len(value) == 2:
        start, end = value
    else:
        raise ValidationError(
            "window",
            "Must be a ReportingWindow, a (start, end) pair or a mapping with startDate/endDate",
            value,
        )

    return ReportingWindow.from_dates(_coerce_day(start, "start_date"), _coerce_day(end, "end_date"))


def _coerce_day(value: Any, field: str) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and "T" in value:
        value = value.split("T", 1)[0]
    return validate_date_string(value, field)

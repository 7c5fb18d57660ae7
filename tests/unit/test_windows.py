"""
Tests for profit_engine.windows module.
"""
import pytest
from datetime import date, datetime, timedelta, timezone

from profit_engine.exceptions import ValidationError
from profit_engine.windows import ReportingWindow, parse_period, resolve_window


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestReportingWindow:
    """Tests for ReportingWindow."""

    def test_from_dates_covers_whole_days(self):
        """Start is UTC midnight, end the last microsecond of the last day."""
        window = ReportingWindow.from_dates(date(2026, 1, 12), date(2026, 1, 18))
        assert window.start == utc(2026, 1, 12)
        assert window.end_exclusive == utc(2026, 1, 19)
        assert window.day_count == 7

    def test_contains_is_inclusive(self):
        """Both boundary instants are inside."""
        window = ReportingWindow.from_dates(date(2026, 1, 12), date(2026, 1, 12))
        assert window.contains(utc(2026, 1, 12))
        assert window.contains(utc(2026, 1, 12, 23, 59, 59))
        assert not window.contains(utc(2026, 1, 13))
        assert not window.contains(None)

    def test_inverted_raises(self):
        """End before start raises ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            ReportingWindow.from_dates(date(2026, 1, 18), date(2026, 1, 12))
        assert str(exc_info.value).startswith("Invalid input")

    def test_overlaps_open_ended(self):
        """Missing bounds are open-ended."""
        window = ReportingWindow.from_dates(date(2026, 1, 12), date(2026, 1, 18))
        assert window.overlaps(None, None)
        assert window.overlaps(utc(2026, 1, 1), None)
        assert not window.overlaps(utc(2026, 2, 1), None)
        assert not window.overlaps(None, utc(2026, 1, 11))

    def test_clip(self):
        """Intersection of two windows, None when disjoint."""
        window = ReportingWindow.from_dates(date(2026, 1, 14), date(2026, 1, 20))
        month = ReportingWindow.from_dates(date(2026, 1, 1), date(2026, 1, 31))
        week = ReportingWindow.from_dates(date(2026, 1, 12), date(2026, 1, 18))
        assert window.clip(week).as_str_tuple() == ("2026-01-14", "2026-01-18")
        assert window.clip(month) == window
        assert window.clip(ReportingWindow.from_dates(date(2026, 2, 1), date(2026, 2, 2))) is None

    def test_previous(self):
        """Previous window has equal length and ends the day before."""
        window = ReportingWindow.from_dates(date(2026, 1, 12), date(2026, 1, 18))
        assert window.previous().as_str_tuple() == ("2026-01-05", "2026-01-11")


class TestParsePeriod:
    """Tests for parse_period function."""

    def test_yesterday(self):
        """Yesterday relative to reference date."""
        window = parse_period("yesterday", reference_date=date(2026, 1, 13))
        assert window.as_str_tuple() == ("2026-01-12", "2026-01-12")

    def test_week_starts_monday(self):
        """Week runs from Monday to the reference date."""
        window = parse_period("week", reference_date=date(2026, 1, 15))
        assert window.as_str_tuple() == ("2026-01-12", "2026-01-15")

    def test_last_month(self):
        """Last month covers the whole previous calendar month."""
        window = parse_period("last_month", reference_date=date(2026, 3, 10))
        assert window.as_str_tuple() == ("2026-02-01", "2026-02-28")

    def test_last_7_days(self):
        """Seven days including the reference date."""
        window = parse_period("last_7_days", reference_date=date(2026, 1, 18))
        assert window.day_count == 7
        assert window.end_date == date(2026, 1, 18)

    def test_explicit_dates(self):
        """Explicit dates are used when no shortcut is given."""
        window = parse_period(start_date="2026-01-01", end_date="2026-01-31")
        assert window.day_count == 31

    def test_invalid_explicit_date(self):
        """Malformed explicit dates raise ValidationError."""
        with pytest.raises(ValidationError):
            parse_period(start_date="01/01/2026", end_date="2026-01-31")


class TestResolveWindow:
    """Tests for resolve_window function."""

    def test_none_stays_none(self):
        """None means no window."""
        assert resolve_window(None) is None

    def test_window_passes_through(self):
        """A ReportingWindow is returned unchanged."""
        window = ReportingWindow.from_dates(date(2026, 1, 1), date(2026, 1, 2))
        assert resolve_window(window) is window

    def test_mapping(self):
        """startDate/endDate mapping."""
        window = resolve_window({"startDate": "2026-01-12", "endDate": "2026-01-18"})
        assert window.as_str_tuple() == ("2026-01-12", "2026-01-18")

    def test_tuple_of_mixed_values(self):
        """Tuples may mix dates, datetimes and ISO timestamps."""
        window = resolve_window((date(2026, 1, 12), "2026-01-18T15:00:00Z"))
        assert window.as_str_tuple() == ("2026-01-12", "2026-01-18")

    def test_aware_datetime_converted_to_utc(self):
        """Aware datetimes are converted to their UTC day."""
        tz = timezone(timedelta(hours=5))
        window = resolve_window((datetime(2026, 1, 12, 2, tzinfo=tz), date(2026, 1, 12)))
        assert window.start_date == date(2026, 1, 11)

    def test_unsupported_value(self):
        """Anything else raises ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            resolve_window("last week")
        assert exc_info.value.field == "window"

    def test_missing_bound(self):
        """A mapping without an end date raises."""
        with pytest.raises(ValidationError):
            resolve_window({"startDate": "2026-01-12"})

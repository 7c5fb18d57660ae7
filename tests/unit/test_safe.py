"""
Tests for profit_engine.safe module.
"""
import math
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from profit_engine.safe import (
    as_list,
    as_record,
    clamp_percentage,
    first_present,
    first_text,
    percentage_change,
    round_money,
    safe_divide,
    safe_number,
    sum_by,
    to_string_id,
    to_utc_datetime,
)


class TestSafeNumber:
    """Tests for safe_number function."""

    def test_finite_numbers_pass(self):
        """Ints and floats pass through as floats."""
        assert safe_number(5) == 5.0
        assert safe_number(-2.5) == -2.5

    def test_numeric_strings_parse(self):
        """Numeric strings are parsed, whitespace ignored."""
        assert safe_number("12.50") == 12.5
        assert safe_number("  7 ") == 7.0

    def test_decimal_values(self):
        """Decimals convert like floats, non-finite ones become 0."""
        assert safe_number(Decimal("100.00")) == 100.0
        assert safe_number(Decimal("-12.35")) == -12.35
        for value in (Decimal("NaN"), Decimal("sNaN"), Decimal("Infinity")):
            assert safe_number(value) == 0.0

    def test_garbage_is_zero(self):
        """None, bools, blank and unparseable strings become 0."""
        for value in (None, True, False, "", "   ", "abc", {}, [1]):
            assert safe_number(value) == 0.0

    def test_non_finite_is_zero(self):
        """NaN and infinities become 0."""
        assert safe_number(float("nan")) == 0.0
        assert safe_number(float("inf")) == 0.0
        assert safe_number("-inf") == 0.0


class TestRecordHelpers:
    """Tests for record access helpers."""

    def test_as_record(self):
        """Mappings pass, anything else is an empty dict."""
        assert as_record({"a": 1}) == {"a": 1}
        assert as_record(None) == {}
        assert as_record([("a", 1)]) == {}

    def test_as_list(self):
        """Lists and tuples pass, anything else is empty."""
        assert as_list((1, 2)) == [1, 2]
        assert as_list({"edges": []}) == []
        assert as_list(None) == []

    def test_first_present_skips_none(self):
        """First key whose value is not None wins, even if falsy."""
        record = {"a": None, "b": 0, "c": 5}
        assert first_present(record, "a", "b", "c") == 0
        assert first_present(record, "x", default="d") == "d"

    def test_first_text(self):
        """First non-blank string, stripped."""
        assert first_text(None, "  ", 5, " Bob ") == "Bob"
        assert first_text(None, "") == ""

    def test_to_string_id(self):
        """Ids from strings, numbers and reference records."""
        assert to_string_id("abc") == "abc"
        assert to_string_id(42) == "42"
        assert to_string_id(42.0) == "42"
        assert to_string_id({"_id": "x1"}) == "x1"
        assert to_string_id({"name": "no id"}) == ""
        assert to_string_id(None) == ""

    def test_sum_by_none(self):
        """None and empty collections sum to 0."""
        assert sum_by(None, lambda x: x) == 0.0
        assert sum_by([1, 2, 3], lambda x: x * 2) == 12.0


class TestArithmetic:
    """Tests for guarded arithmetic helpers."""

    def test_safe_divide_by_zero(self):
        """Zero denominator gives 0."""
        assert safe_divide(10, 0) == 0.0
        assert safe_divide(10, 4) == 2.5

    def test_clamp_percentage(self):
        """Clamped to [0, 100]; non-finite is 0."""
        assert clamp_percentage(150) == 100.0
        assert clamp_percentage(-5) == 0.0
        assert clamp_percentage(42.5) == 42.5
        assert clamp_percentage(float("nan")) == 0.0

    def test_round_money(self):
        """Two decimals, no negative zero, non-finite is 0."""
        assert round_money(41.33333) == 41.33
        assert round_money(2.675, digits=1) == 2.7
        assert math.copysign(1.0, round_money(-0.001)) == 1.0
        assert round_money(float("inf")) == 0.0


class TestPercentageChange:
    """Tests for percentage_change function."""

    def test_regular_change(self):
        """Change is relative to the absolute previous value."""
        assert percentage_change(150, 100) == 50.0
        assert percentage_change(50, 100) == -50.0
        assert percentage_change(-50, -100) == 50.0

    def test_zero_previous(self):
        """No base: +100 for positive, -100 for negative, 0 for zero."""
        assert percentage_change(10, 0) == 100.0
        assert percentage_change(-10, 0) == -100.0
        assert percentage_change(0, 0) == 0.0

    def test_non_finite_previous(self):
        """Non-finite previous is treated like zero."""
        assert percentage_change(10, float("nan")) == 100.0
        assert percentage_change(0, float("inf")) == 0.0


class TestToUtcDatetime:
    """Tests for to_utc_datetime function."""

    def test_iso_with_z(self):
        """ISO string with Z suffix is UTC."""
        result = to_utc_datetime("2026-01-12T10:00:00Z")
        assert result == datetime(2026, 1, 12, 10, 0, tzinfo=timezone.utc)

    def test_iso_with_offset(self):
        """Offsets are converted to UTC."""
        result = to_utc_datetime("2026-01-12T02:00:00+02:00")
        assert result == datetime(2026, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert result.utcoffset() == timedelta(0)

    def test_plain_date_string(self):
        """YYYY-MM-DD is UTC midnight."""
        assert to_utc_datetime("2026-01-12") == datetime(2026, 1, 12, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        """Numbers and numeric strings are epoch milliseconds."""
        expected = datetime(2026, 1, 1, tzinfo=timezone.utc)
        millis = int(expected.timestamp() * 1000)
        assert to_utc_datetime(millis) == expected
        assert to_utc_datetime(str(millis)) == expected

    def test_naive_datetime_and_date(self):
        """Naive datetimes and dates are taken as UTC."""
        assert to_utc_datetime(datetime(2026, 1, 1, 5)) == datetime(2026, 1, 1, 5, tzinfo=timezone.utc)
        assert to_utc_datetime(date(2026, 1, 1)) == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_unparseable(self):
        """Garbage gives None."""
        for value in (None, "", "not a date", True, {}, float("nan")):
            assert to_utc_datetime(value) is None

"""Tests for calendar and money helpers."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from billcycle.engine.dates import (
    add_months,
    clamp_day,
    is_finite_number,
    month_difference,
    month_str,
    parse_day,
    parse_month,
    round_currency,
    round_half_up,
    shift_month,
    to_decimal,
)


class TestParseDay:
    """Stored date values become calendar days."""

    def test_date_passes_through(self):
        """Test a date is returned unchanged."""
        assert parse_day(date(2025, 3, 4)) == date(2025, 3, 4)

    def test_datetime_keeps_calendar_day(self):
        """Test a datetime keeps its calendar day."""
        assert parse_day(datetime(2025, 3, 4, 23, 30)) == date(2025, 3, 4)

    def test_iso_datetime_string_keeps_written_day(self):
        """Test an ISO datetime string keeps the day as written."""
        assert parse_day("2025-03-04T23:30:00Z") == date(2025, 3, 4)

    def test_iso_date_string(self):
        """Test an ISO date string is parsed."""
        assert parse_day("2025-12-31") == date(2025, 12, 31)

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date", 42])
    def test_unparsable_returns_none(self, value):
        """Test unparsable values give None."""
        assert parse_day(value) is None


class TestMonths:
    """Month keys and month arithmetic."""

    def test_month_str_pads(self):
        """Test month keys are zero padded."""
        assert month_str(date(2025, 3, 9)) == "2025-03"

    def test_parse_month(self):
        """Test a month key parses to its first day."""
        assert parse_month("2025-11") == date(2025, 11, 1)

    @pytest.mark.parametrize("value", ["2025", "2025-13", "march", None])
    def test_parse_month_rejects_malformed(self, value):
        """Test malformed month keys raise."""
        with pytest.raises(ValueError):
            parse_month(value)

    def test_add_months_clamps_short_month(self):
        """Test adding months clamps to the month's last day."""
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_shift_month_across_year(self):
        """Test month keys shift across year boundaries."""
        assert shift_month("2025-12", 2) == "2026-02"
        assert shift_month("2025-01", -1) == "2024-12"

    def test_clamp_day(self):
        """Test days are clamped to the month length."""
        assert clamp_day(2025, 2, 31) == date(2025, 2, 28)
        assert clamp_day(2025, 4, 15) == date(2025, 4, 15)

    def test_month_difference_ignores_day(self):
        """Test month difference counts calendar months."""
        assert month_difference(date(2025, 1, 31), date(2025, 2, 1)) == 1
        assert month_difference(date(2025, 3, 1), date(2025, 1, 15)) == -2


class TestMoney:
    """Rounding matches stored totals to the cent."""

    @pytest.mark.parametrize("value,expected", [
        ("2.345", Decimal("2.35")),
        ("-2.345", Decimal("-2.34")),
        ("1.005", Decimal("1.01")),
        (10, Decimal("10.00")),
    ])
    def test_round_currency_halves_toward_positive_infinity(self, value, expected):
        """Test halves round toward positive infinity."""
        assert round_currency(value) == expected

    def test_round_half_up(self):
        """Test whole-number rounding of halves."""
        assert round_half_up(Decimal("58.5")) == 59
        assert round_half_up(Decimal("-0.5")) == 0
        assert round_half_up(Decimal("58.33")) == 58

    @pytest.mark.parametrize("value", ["abc", None, float("nan"), float("inf"), True])
    def test_to_decimal_defaults(self, value):
        """Test bad input falls back to the default."""
        assert to_decimal(value) == Decimal("0")

    def test_to_decimal_parses_strings(self):
        """Test numeric strings are parsed exactly."""
        assert to_decimal("12.50") == Decimal("12.50")

    def test_is_finite_number(self):
        """Test NaN, infinity and strings are not finite numbers."""
        assert is_finite_number(3)
        assert is_finite_number(Decimal("1.5"))
        assert not is_finite_number(float("nan"))
        assert not is_finite_number("12")
        assert not is_finite_number(False)

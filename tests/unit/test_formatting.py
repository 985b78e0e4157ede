"""Unit tests for Danish money and hour formatting."""

from __future__ import annotations

from decimal import Decimal

import pytest

from elcalc.calculation import estimate_workdays, format_currency, format_hours
from elcalc.config import LocaleConfig


class TestFormatCurrency:
    def test_thousands_separator(self):
        assert format_currency(Decimal("12500")) == "12.500 kr."

    def test_rounds_half_up(self):
        assert format_currency(Decimal("1234.5")) == "1.235 kr."

    def test_decimals(self):
        assert format_currency(Decimal("1234.5"), decimals=2) == "1.234,50 kr."

    def test_float_and_int(self):
        assert format_currency(999) == "999 kr."
        assert format_currency(1_000_000.0) == "1.000.000 kr."

    def test_custom_locale(self):
        locale = LocaleConfig(currency_symbol="DKK", thousands_separator=" ")

        assert format_currency(45000, locale) == "45 000 DKK"


class TestFormatHours:
    @pytest.mark.parametrize(
        "hours,expected",
        [
            (0.75, "45 min"),
            (3, "3 timer"),
            (3.5, "3t 30min"),
            (2.999, "3 timer"),
            (12.25, "12t 15min"),
        ],
    )
    def test_format(self, hours, expected):
        assert format_hours(hours) == expected


class TestEstimateWorkdays:
    def test_rounds_up(self):
        assert estimate_workdays(16) == 3
        assert estimate_workdays(7.5) == 1

    def test_no_hours(self):
        assert estimate_workdays(0) == 0

    def test_invalid_day_length(self):
        with pytest.raises(ValueError):
            estimate_workdays(10, hours_per_day=0)

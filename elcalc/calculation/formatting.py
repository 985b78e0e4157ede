"""Danish formatting of money and hours."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

from elcalc.config import LocaleConfig


def format_currency(
    amount: Decimal | float | int,
    locale: LocaleConfig | None = None,
    decimals: int = 0,
) -> str:
    """Format an amount the Danish way, e.g. ``12.500 kr.``."""
    locale = locale or LocaleConfig()
    exponent = Decimal(1).scaleb(-decimals)
    value = Decimal(str(amount)).quantize(exponent, rounding=ROUND_HALF_UP)

    text = f"{value:,.{decimals}f}"
    text = (
        text.replace(",", "\0")
        .replace(".", locale.decimal_separator)
        .replace("\0", locale.thousands_separator)
    )
    return f"{text} {locale.currency_symbol}"


def format_hours(hours: float) -> str:
    """Human readable duration: ``45 min``, ``3 timer`` or ``3t 30min``."""
    if hours < 1:
        return f"{round(hours * 60)} min"

    whole_hours = math.floor(hours)
    minutes = round((hours - whole_hours) * 60)
    if minutes == 60:
        whole_hours += 1
        minutes = 0

    if minutes == 0:
        return f"{whole_hours} timer"
    return f"{whole_hours}t {minutes}min"


def estimate_workdays(hours: float, hours_per_day: float = 7.5) -> int:
    if hours_per_day <= 0:
        raise ValueError("hours_per_day must be positive")
    if hours <= 0:
        return 0
    return math.ceil(hours / hours_per_day)

"""Time and price calculation."""

from elcalc.calculation.engine import (
    CalculationEngine,
    adjust_price_for_risk,
    apply_discount,
    calculate,
)
from elcalc.calculation.formatting import estimate_workdays, format_currency, format_hours
from elcalc.calculation.parameters import CalculationParameters, apply_adjustments

__all__ = [
    "CalculationEngine",
    "CalculationParameters",
    "adjust_price_for_risk",
    "apply_adjustments",
    "apply_discount",
    "calculate",
    "estimate_workdays",
    "format_currency",
    "format_hours",
]

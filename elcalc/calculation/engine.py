"""Calculation engine: matched components to time and price.

Time is the sum of per-component minutes scaled by complexity, size and
accessibility multipliers. Price compounds in a fixed order::

    subtotal      = material_cost + labor_cost
    risk_adjusted = subtotal * (1 + risk_buffer% / 100)
    total_price   = risk_adjusted * (1 + margin% / 100)

Money is ``Decimal``; each reported figure is rounded once to 0.01 from
unrounded intermediates, so recomputation never drifts.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from elcalc.calculation.parameters import CalculationParameters
from elcalc.models import (
    Calculation,
    CalculationComponent,
    CalculationMaterial,
    ComplexityFactor,
    Interpretation,
    PriceCalculation,
    TimeBreakdown,
    TimeCalculation,
)

logger = logging.getLogger(__name__)

MONEY = Decimal("0.01")
HUNDRED = Decimal("100")

CATEGORY_NAMES = {
    "outlet": "Stikkontakter",
    "switch": "Afbrydere",
    "lighting": "Belysning",
    "power": "Kraftinstallation",
    "data": "Data/TV",
    "panel": "Tavlearbejde",
}


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY, rounding=ROUND_HALF_UP)


class CalculationEngine:
    """Deterministic time and price calculation.

    Args:
        parameters: Estimation coefficients (defaults when omitted)
    """

    def __init__(self, parameters: CalculationParameters | None = None):
        self.parameters = parameters or CalculationParameters()

    # -- time ---------------------------------------------------------------

    def size_multiplier(self, size_m2: float | None) -> float:
        size = size_m2 or self.parameters.default_size_m2
        for upper, multiplier in self.parameters.size_bands:
            if size <= upper:
                return multiplier
        return self.parameters.size_bands[-1][1]

    def complexity_multiplier(self, factors: Sequence[ComplexityFactor]) -> float:
        """Category-weighted multiplier using the strongest factor per category."""
        if not factors:
            return 1.0

        strongest: dict[str, float] = {}
        for factor in factors:
            category = factor.category or "other"
            strongest[category] = max(strongest.get(category, factor.multiplier), factor.multiplier)

        total_weight = 0.0
        weighted_sum = 0.0
        for category, multiplier in strongest.items():
            weight = self.parameters.complexity_weights.get(
                category, self.parameters.default_complexity_weight
            )
            total_weight += weight
            weighted_sum += weight * multiplier

        if total_weight == 0:
            return 1.0

        deviation = weighted_sum / total_weight - 1.0
        return 1.0 + deviation * self.parameters.complexity_deviation_share

    def accessibility_multiplier(self, factors: Sequence[ComplexityFactor]) -> float:
        multiplier = 1.0
        for factor in factors:
            if factor.category == "access":
                multiplier += (factor.multiplier - 1.0) * self.parameters.access_stacking_share
        return min(multiplier, self.parameters.access_cap)

    def calculate_time(
        self,
        components: Sequence[CalculationComponent],
        interpretation: Interpretation | None = None,
    ) -> TimeCalculation:
        category_minutes: dict[str, float] = {}
        for component in components:
            unit_minutes = self.parameters.unit_minutes(component.code, component.unit_time_minutes)
            category = component.category or "other"
            category_minutes[category] = (
                category_minutes.get(category, 0.0) + unit_minutes * component.quantity
            )

        base_hours = sum(category_minutes.values()) / 60
        breakdown = tuple(
            TimeBreakdown(
                category=category,
                hours=round(minutes / 60, 2),
                description=CATEGORY_NAMES.get(category, category),
            )
            for category, minutes in category_minutes.items()
        )

        factors = interpretation.complexity_factors if interpretation else ()
        size = interpretation.building_size_m2 if interpretation else None

        complexity = self.complexity_multiplier(factors)
        size_factor = self.size_multiplier(size)
        access = self.accessibility_multiplier(factors)
        total_hours = base_hours * complexity * size_factor * access

        return TimeCalculation(
            base_hours=round(base_hours, 2),
            complexity_multiplier=round(complexity, 2),
            size_multiplier=round(size_factor, 2),
            accessibility_multiplier=round(access, 2),
            total_hours=round(total_hours, 2),
            breakdown=breakdown,
        )

    # -- price --------------------------------------------------------------

    def calculate_price(
        self,
        materials: Sequence[CalculationMaterial],
        time: TimeCalculation,
        risk_buffer_pct: float | None = None,
        margin_pct: float | None = None,
    ) -> PriceCalculation:
        """Price a calculation.

        Raises:
            ValueError: If a percentage is negative
        """
        risk_buffer = (
            self.parameters.risk_buffer_percentage if risk_buffer_pct is None else risk_buffer_pct
        )
        margin = self.parameters.margin_percentage if margin_pct is None else margin_pct
        if risk_buffer < 0 or margin < 0:
            raise ValueError("risk buffer and margin percentages must be non-negative")

        material_cost = round_money(sum((m.total_cost for m in materials), Decimal("0")))
        labor_cost = round_money(
            to_decimal(time.total_hours) * to_decimal(self.parameters.hourly_rate)
        )
        return price_from_costs(
            material_cost, labor_cost, risk_buffer, margin, self.parameters.hourly_rate
        )

    def calculate(
        self,
        components: Sequence[CalculationComponent],
        materials: Sequence[CalculationMaterial],
        risk_buffer_pct: float | None = None,
        margin_pct: float | None = None,
        interpretation: Interpretation | None = None,
        interpretation_id: UUID | None = None,
    ) -> Calculation:
        # Persisted components carry the minutes actually used
        overrides = self.parameters.component_time_overrides
        components = [
            c.model_copy(update={"unit_time_minutes": overrides[c.code]})
            if c.code in overrides
            else c
            for c in components
        ]
        time = self.calculate_time(components, interpretation)
        price = self.calculate_price(materials, time, risk_buffer_pct, margin_pct)

        logger.debug(
            f"Calculated {len(components)} components: {time.total_hours} h, "
            f"total {price.total_price} DKK"
        )
        return Calculation(
            interpretation_id=interpretation_id or (interpretation.id if interpretation else None),
            components=tuple(components),
            materials=tuple(materials),
            time=time,
            price=price,
        )


def price_from_costs(
    material_cost: Decimal,
    labor_cost: Decimal,
    risk_buffer_pct: float,
    margin_pct: float,
    hourly_rate: float,
) -> PriceCalculation:
    """Build a ``PriceCalculation`` from rounded material and labour costs."""
    subtotal = material_cost + labor_cost
    risk_rate = to_decimal(risk_buffer_pct) / HUNDRED
    margin_rate = to_decimal(margin_pct) / HUNDRED

    risk_adjusted = subtotal * (1 + risk_rate)
    total = risk_adjusted * (1 + margin_rate)

    return PriceCalculation(
        material_cost=material_cost,
        labor_cost=labor_cost,
        subtotal=subtotal,
        risk_buffer_percentage=risk_buffer_pct,
        risk_buffer_amount=round_money(subtotal * risk_rate),
        margin_percentage=margin_pct,
        margin_amount=round_money(risk_adjusted * margin_rate),
        total_price=round_money(total),
        hourly_rate=hourly_rate,
    )


def calculate(
    components: Sequence[CalculationComponent],
    materials: Sequence[CalculationMaterial],
    risk_buffer_pct: float | None = None,
    margin_pct: float | None = None,
    interpretation: Interpretation | None = None,
    parameters: CalculationParameters | None = None,
) -> Calculation:
    """Module-level shortcut for ``CalculationEngine(parameters).calculate(...)``."""
    return CalculationEngine(parameters).calculate(
        components, materials, risk_buffer_pct, margin_pct, interpretation
    )


def adjust_price_for_risk(price: PriceCalculation, risk_score: int) -> PriceCalculation:
    """Scale the risk buffer by 2.5 % per risk point above 1 and reprice.

    Scores outside 1-5 are clamped.
    """
    score = min(max(risk_score, 1), 5)
    adjusted_buffer = round(price.risk_buffer_percentage * (1 + (score - 1) * 0.025), 2)
    return price_from_costs(
        price.material_cost,
        price.labor_cost,
        adjusted_buffer,
        price.margin_percentage,
        price.hourly_rate,
    )


def apply_discount(price: PriceCalculation, discount_percentage: float) -> PriceCalculation:
    """Return ``price`` with a discount and final price set.

    Raises:
        ValueError: If the discount is outside 0-100 %
    """
    if not 0 <= discount_percentage <= 100:
        raise ValueError("discount_percentage must be between 0 and 100")

    discount_amount = round_money(price.total_price * to_decimal(discount_percentage) / HUNDRED)
    return price.model_copy(
        update={
            "discount_percentage": discount_percentage,
            "discount_amount": discount_amount,
            "final_price": price.total_price - discount_amount,
        }
    )

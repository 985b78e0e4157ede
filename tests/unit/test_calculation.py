"""Unit tests for the calculation engine."""

from __future__ import annotations

from decimal import Decimal

import pytest

from elcalc.calculation import (
    CalculationEngine,
    CalculationParameters,
    adjust_price_for_risk,
    apply_adjustments,
    apply_discount,
    calculate,
)
from elcalc.interpreter import interpret
from elcalc.models import Adjustment, AdjustmentType


class TestTime:
    def test_base_hours_without_interpretation(self, sample_components):
        time = CalculationEngine().calculate_time(sample_components)

        # 10 x 25 min + 6 x 20 min = 370 min
        assert time.base_hours == 6.17
        assert time.total_hours == 6.17
        assert time.complexity_multiplier == 1.0
        assert time.size_multiplier == 1.0
        assert {b.category: b.hours for b in time.breakdown} == {"outlet": 4.17, "lighting": 2.0}

    def test_multipliers_from_interpretation(self, sample_components):
        interpretation = interpret(
            "Renovering af rækkehus med betonvægge og krybekælder, 110 m2"
        ).interpretation
        time = CalculationEngine().calculate_time(sample_components, interpretation)

        assert time.size_multiplier == 1.05
        assert time.complexity_multiplier > 1.0
        assert time.accessibility_multiplier == 1.21
        assert time.total_hours > time.base_hours

    def test_accessibility_is_capped(self, sample_components):
        interpretation = interpret(
            "Hus med højt loft, krybekælder og skrå vægge på tagetage"
        ).interpretation
        time = CalculationEngine(CalculationParameters(access_cap=1.3)).calculate_time(
            sample_components, interpretation
        )

        assert time.accessibility_multiplier == 1.3

    @pytest.mark.parametrize(
        "size,expected",
        [(None, 1.0), (40, 0.9), (100, 1.0), (140, 1.05), (250, 1.15), (1000, 1.2)],
    )
    def test_size_bands(self, size, expected):
        assert CalculationEngine().size_multiplier(size) == expected


class TestPrice:
    def test_price_compounds_risk_then_margin(self, sample_components, sample_materials):
        calculation = calculate(sample_components, sample_materials)
        price = calculation.price

        assert price.material_cost == Decimal("1600.00")
        assert price.labor_cost == Decimal("2776.50")
        assert price.subtotal == Decimal("4376.50")
        assert price.risk_buffer_amount == Decimal("218.83")
        assert price.margin_amount == Decimal("1148.83")
        assert price.total_price == Decimal("5744.16")

    def test_zero_percentages(self, sample_components, sample_materials):
        price = calculate(sample_components, sample_materials, 0, 0).price

        assert price.total_price == price.subtotal

    def test_negative_percentage_rejected(self, sample_components, sample_materials):
        with pytest.raises(ValueError):
            calculate(sample_components, sample_materials, risk_buffer_pct=-1)

    def test_empty_calculation(self):
        calculation = calculate([], [])

        assert calculation.time.total_hours == 0
        assert calculation.price.total_price == Decimal("0.00")

    def test_deterministic(self, sample_components, sample_materials):
        first = calculate(sample_components, sample_materials, 7.5, 22)
        second = calculate(sample_components, sample_materials, 7.5, 22)

        assert first.price == second.price
        assert first.time == second.time

    def test_hourly_rate_from_parameters(self, sample_components):
        params = CalculationParameters(hourly_rate=500)
        price = calculate(sample_components, [], 0, 0, parameters=params).price

        assert price.labor_cost == Decimal("3085.00")
        assert price.hourly_rate == 500


class TestAdjustments:
    def test_risk_adjustment_scales_buffer(self, sample_components, sample_materials):
        price = calculate(sample_components, sample_materials).price
        adjusted = adjust_price_for_risk(price, 5)

        assert adjusted.risk_buffer_percentage == 5.5
        assert adjusted.risk_buffer_amount == Decimal("240.71")
        assert adjusted.total_price == Decimal("5771.51")

    def test_risk_adjustment_neutral_at_one(self, sample_components, sample_materials):
        price = calculate(sample_components, sample_materials).price

        assert adjust_price_for_risk(price, 1).total_price == price.total_price
        assert adjust_price_for_risk(price, 0).total_price == price.total_price

    def test_discount(self, sample_components, sample_materials):
        price = apply_discount(calculate(sample_components, sample_materials).price, 10)

        assert price.discount_amount == Decimal("574.42")
        assert price.final_price == Decimal("5169.74")

    @pytest.mark.parametrize("discount", [-1, 101])
    def test_discount_out_of_range(self, sample_components, sample_materials, discount):
        price = calculate(sample_components, sample_materials).price

        with pytest.raises(ValueError):
            apply_discount(price, discount)


class TestParameters:
    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            CalculationParameters(hourly_rate=-1)

    def test_time_override_is_used_and_recorded(self, sample_components):
        params = CalculationParameters(component_time_overrides={"outlet_single": 30})
        calculation = calculate(sample_components, [], 0, 0, parameters=params)
        outlet = next(c for c in calculation.components if c.code == "outlet_single")

        assert calculation.time.base_hours == 7.0
        assert outlet.unit_time_minutes == 30

    def test_apply_adjustments_returns_new_parameters(self):
        base = CalculationParameters()
        adjusted = apply_adjustments(
            base,
            [
                Adjustment(
                    type=AdjustmentType.TIME,
                    target="outlet_single",
                    old_value=25,
                    new_value=28,
                    reason="test",
                ),
                Adjustment(
                    type=AdjustmentType.TIME,
                    target="outlet_single",
                    old_value=28,
                    new_value=30,
                    reason="test",
                ),
                Adjustment(
                    type=AdjustmentType.MARGIN,
                    target="default",
                    old_value=25,
                    new_value=20,
                    reason="test",
                ),
                Adjustment(
                    type=AdjustmentType.MATERIAL,
                    target="cable_1_5mm",
                    old_value=8.5,
                    new_value=9,
                    reason="test",
                ),
            ],
        )

        assert adjusted.component_time_overrides == {"outlet_single": 30}
        assert adjusted.margin_percentage == 20
        assert base.component_time_overrides == {}
        assert base.margin_percentage == 25.0

"""Estimation coefficients consumed by the calculation engine.

Parameters are immutable. Learning adjustments never touch a live instance:
``apply_adjustments()`` returns a new ``CalculationParameters`` that callers
opt into explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from elcalc.config import AppConfig
from elcalc.models import Adjustment, AdjustmentType

logger = logging.getLogger(__name__)

# (upper bound m², multiplier); sizes above the last bound use the last multiplier
SIZE_BANDS: tuple[tuple[float, float], ...] = (
    (50, 0.9),
    (100, 1.0),
    (150, 1.05),
    (200, 1.1),
    (300, 1.15),
    (float("inf"), 1.2),
)

COMPLEXITY_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "material": 0.5,
        "building": 0.3,
        "access": 0.15,
        "electrical": 0.05,
    }
)


@dataclass(frozen=True)
class CalculationParameters:
    """Coefficients for time and price calculation.

    Attributes:
        hourly_rate: Labour rate in DKK per hour
        margin_percentage: Default margin applied on the risk-adjusted subtotal
        risk_buffer_percentage: Default risk buffer applied on the subtotal
        component_time_overrides: Calibrated minutes per unit, keyed by component code
    """

    hourly_rate: float = 450.0
    margin_percentage: float = 25.0
    risk_buffer_percentage: float = 5.0
    hours_per_workday: float = 7.5
    default_size_m2: float = 100.0
    size_bands: tuple[tuple[float, float], ...] = SIZE_BANDS
    complexity_weights: Mapping[str, float] = field(default_factory=lambda: COMPLEXITY_WEIGHTS)
    default_complexity_weight: float = 0.1
    complexity_deviation_share: float = 0.8  # share of the deviation from 1.0 applied
    access_stacking_share: float = 0.7
    access_cap: float = 1.5
    component_time_overrides: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self):
        if self.hourly_rate < 0:
            raise ValueError("hourly_rate must be non-negative")
        if self.margin_percentage < 0 or self.risk_buffer_percentage < 0:
            raise ValueError("margin and risk buffer percentages must be non-negative")

    @classmethod
    def from_config(cls, config: AppConfig) -> CalculationParameters:
        estimation = config.estimation
        return cls(
            hourly_rate=estimation.hourly_rate,
            margin_percentage=estimation.margin_percentage,
            risk_buffer_percentage=estimation.risk_buffer_percentage,
            hours_per_workday=estimation.hours_per_workday,
        )

    def unit_minutes(self, code: str, default: float) -> float:
        return self.component_time_overrides.get(code, default)


def apply_adjustments(
    parameters: CalculationParameters, adjustments: Iterable[Adjustment]
) -> CalculationParameters:
    """Return new parameters with ``adjustments`` applied in order.

    Time adjustments become per-component minute overrides; margin and risk
    buffer adjustments replace the default percentages. Material and
    complexity adjustments have no coefficient here and are skipped.
    """
    overrides = dict(parameters.component_time_overrides)
    changes: dict[str, float] = {}

    for adjustment in adjustments:
        if adjustment.type is AdjustmentType.TIME:
            overrides[adjustment.target] = adjustment.new_value
        elif adjustment.type is AdjustmentType.MARGIN:
            changes["margin_percentage"] = adjustment.new_value
        elif adjustment.type is AdjustmentType.RISK_BUFFER:
            changes["risk_buffer_percentage"] = adjustment.new_value
        else:
            logger.debug(
                f"Skipping {adjustment.type.value} adjustment for {adjustment.target}: "
                "no calculation coefficient"
            )

    return replace(
        parameters,
        component_time_overrides=MappingProxyType(overrides),
        **changes,
    )

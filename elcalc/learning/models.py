"""Data structures produced by the learning engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from elcalc.models import Adjustment


@dataclass(slots=True)
class LearningMetrics:
    """Aggregate accuracy and outcome figures over all feedback with actual hours.

    Defaults describe the no-data state: perfect accuracy, improving.
    """

    total_calculations: int = 0
    completed_projects: int = 0
    average_hours_variance: float = 0.0
    average_material_variance: float = 0.0
    price_accuracy: float = 100.0
    offer_acceptance_rate: float = 0.0
    profitability_rate: float = 0.0
    average_satisfaction: float = 0.0
    improving: bool = True
    recent_adjustments: list[Adjustment] = field(default_factory=list)


@dataclass(slots=True)
class ComponentCalibration:
    code: str
    current_time_minutes: float
    suggested_time_minutes: float
    variance_percentage: float
    sample_size: int
    confidence: float  # sample_size / 10, capped at 1.0


@dataclass(slots=True)
class CompletedProject:
    id: UUID
    name: str
    actual_hours: float
    offer_id: UUID | None
    offer_status: str | None = None
    actual_material_cost: float | None = None


@dataclass(slots=True)
class FeedbackCollectionResult:
    processed: int = 0
    inserted: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LearningSystemStatus:
    """Health of the feedback pipeline and calibration readiness."""

    feedback_count: int
    projects_with_actuals: int
    projects_without_feedback: int
    calibrations_ready: int
    calibrations_pending: int
    last_calibration_at: datetime | None
    pipeline_healthy: bool


@dataclass(slots=True)
class LearningCycleResult:
    success: bool
    error: str | None = None
    collection: FeedbackCollectionResult | None = None
    proposed: list[Adjustment] = field(default_factory=list)

"""Learning engine: the calibration loop.

Collects feedback (actual versus estimated) from completed projects,
aggregates hour variance per component, and proposes time ``Adjustment``
records. Adjustments are only proposals; they take effect once
recorded in the audit trail and replayed into ``CalculationParameters``.

Component calibration spreads a calculation's overall hour variance
proportionally over its components (one ratio, actual/estimated hours, for
every component). This is a modelling approximation, not a per-component
measurement.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from elcalc.calculation.parameters import CalculationParameters, apply_adjustments
from elcalc.config import LearningConfig, get_config
from elcalc.learning.models import (
    ComponentCalibration,
    FeedbackCollectionResult,
    LearningCycleResult,
    LearningMetrics,
    LearningSystemStatus,
)
from elcalc.learning.repository import (
    DuplicateFeedbackError,
    FeedbackRepository,
    FeedbackStoreError,
)
from elcalc.models import Adjustment, AdjustmentType, Feedback, variance_percentage

logger = logging.getLogger(__name__)

# Risk buffer (%) by complexity score when history is too thin
DEFAULT_RISK_BUFFERS = (0.0, 3.0, 5.0, 7.5, 10.0, 15.0)
FALLBACK_RISK_BUFFER = 5.0
RISK_BUFFER_PERCENTILE = 0.8

DEFAULT_COMPONENT_MINUTES = 30.0
FULL_CONFIDENCE_SAMPLES = 10
RECENT_ADJUSTMENTS = 10


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _mean_abs(values: Iterable[float | None]) -> float:
    """Mean absolute variance; an empty window counts as 100 % off."""
    present = [abs(v) for v in values if v is not None]
    return sum(present) / len(present) if present else 100.0


def _rate(flags: list[bool]) -> float:
    return sum(1 for flag in flags if flag) / len(flags) * 100 if flags else 0.0


class LearningEngine:
    """Self-calibration over the feedback store."""

    def __init__(self, repository: FeedbackRepository, config: LearningConfig | None = None):
        """Initialize learning engine.

        Args:
            repository: Feedback store bound to an open session
            config: Learning thresholds (defaults to the app config)
        """
        self.repository = repository
        self.config = config or get_config().learning

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze_learning_metrics(self) -> LearningMetrics:
        """Accuracy and outcome metrics over feedback with actual hours.

        Rows whose estimate is zero or missing are left out of the variance
        averages. The trend compares the mean absolute hour variance of the
        newest ``trend_window`` rows against the window before it.
        """
        rows = await self.repository.feedback_with_actuals()
        recent_adjustments = await self.repository.list_adjustments(limit=RECENT_ADJUSTMENTS)
        if not rows:
            return LearningMetrics(recent_adjustments=recent_adjustments)

        hours_variances = [
            v
            for row in rows
            if (v := variance_percentage(row.actual_hours, row.estimated_hours)) is not None
        ]
        material_variances = [
            v
            for row in rows
            if (v := variance_percentage(row.actual_material_cost, row.estimated_material_cost))
            is not None
        ]
        accepted = [row.offer_accepted for row in rows if row.offer_accepted is not None]
        profitable = [row.project_profitable for row in rows if row.project_profitable is not None]
        satisfaction = [
            float(row.customer_satisfaction)
            for row in rows
            if row.customer_satisfaction is not None
        ]

        avg_hours = _mean(hours_variances)
        avg_material = _mean(material_variances)
        price_accuracy = 100 - abs(avg_hours) - abs(avg_material) / 2

        window = self.config.trend_window
        recent = _mean_abs(row.hours_variance_percentage for row in rows[:window])
        previous = _mean_abs(row.hours_variance_percentage for row in rows[window : window * 2])

        return LearningMetrics(
            total_calculations=len(rows),
            completed_projects=len(hours_variances),
            average_hours_variance=round(avg_hours, 1),
            average_material_variance=round(avg_material, 1),
            price_accuracy=round(price_accuracy, 1),
            offer_acceptance_rate=round(_rate(accepted), 1),
            profitability_rate=round(_rate(profitable), 1),
            average_satisfaction=round(_mean(satisfaction), 1),
            improving=recent < previous,
            recent_adjustments=recent_adjustments,
        )

    async def analyze_component_calibration(self) -> list[ComponentCalibration]:
        """Per-component time calibration suggestions.

        Only components seen in at least ``min_component_samples``
        calculations with a variance above ``calibration_variance_threshold``
        are returned, largest absolute variance first.
        """
        estimated: dict[str, float] = defaultdict(float)
        actual: dict[str, float] = defaultdict(float)
        current: dict[str, float] = defaultdict(float)
        counts: dict[str, int] = defaultdict(int)

        for calculation, actual_hours in await self.repository.calculations_with_actuals():
            if not calculation.total_hours:
                continue
            ratio = actual_hours / calculation.total_hours

            for component in calculation.components or []:
                code = component.get("code")
                if not code:
                    continue
                unit_minutes = component.get("unit_time_minutes") or DEFAULT_COMPONENT_MINUTES
                quantity = component.get("quantity") or 1
                minutes = unit_minutes * quantity

                estimated[code] += minutes
                actual[code] += minutes * ratio
                current[code] += unit_minutes
                counts[code] += 1

        calibrations = []
        for code, count in counts.items():
            if count < self.config.min_component_samples or estimated[code] == 0:
                continue

            ratio = actual[code] / estimated[code]
            variance = (ratio - 1) * 100
            if abs(variance) <= self.config.calibration_variance_threshold:
                continue

            current_minutes = current[code] / count
            calibrations.append(
                ComponentCalibration(
                    code=code,
                    current_time_minutes=round(current_minutes, 1),
                    suggested_time_minutes=round(current_minutes * ratio, 1),
                    variance_percentage=round(variance, 1),
                    sample_size=count,
                    confidence=min(count / FULL_CONFIDENCE_SAMPLES, 1.0),
                )
            )

        calibrations.sort(key=lambda c: abs(c.variance_percentage), reverse=True)
        logger.debug(f"Component calibration: {len(calibrations)} of {len(counts)} components")
        return calibrations

    async def get_suggested_risk_buffer(self, complexity_score: int) -> float:
        """Risk buffer percentage for a project of ``complexity_score``.

        With fewer than ``min_risk_buffer_samples`` feedback rows the fixed
        table is used. Otherwise the 80th percentile of positive overruns
        (max of hours and material variance per row) is scaled by
        ``1 + (score - 3) * 0.1``, with the score clamped to 1-5.
        """
        rows = await self.repository.feedback_with_variance()

        if len(rows) < self.config.min_risk_buffer_samples:
            if 1 <= complexity_score < len(DEFAULT_RISK_BUFFERS):
                return DEFAULT_RISK_BUFFERS[complexity_score]
            return FALLBACK_RISK_BUFFER

        overruns = sorted(
            overrun
            for row in rows
            if (
                overrun := max(
                    row.hours_variance_percentage or 0.0,
                    row.material_variance_percentage or 0.0,
                )
            )
            > 0
        )
        if not overruns:
            return FALLBACK_RISK_BUFFER

        p80 = overruns[int(len(overruns) * RISK_BUFFER_PERCENTILE)]
        score = min(max(complexity_score, 1), 5)
        factor = 1 + (score - 3) * 0.1
        return round(p80 * factor, 1)

    async def system_status(self) -> LearningSystemStatus:
        """Feedback pipeline health and calibration readiness."""
        feedback_count = await self.repository.count_feedback()
        with_actuals = await self.repository.count_projects_with_actuals()
        with_feedback = await self.repository.count_projects_with_feedback()
        calibrations = await self.analyze_component_calibration()
        last = await self.repository.list_adjustments(limit=1)

        return LearningSystemStatus(
            feedback_count=feedback_count,
            projects_with_actuals=with_actuals,
            projects_without_feedback=max(0, with_actuals - with_feedback),
            calibrations_ready=sum(1 for c in calibrations if self._auto_applicable(c)),
            calibrations_pending=sum(
                1 for c in calibrations if c.confidence < self.config.auto_calibrate_min_confidence
            ),
            last_calibration_at=last[0].applied_at if last else None,
            pipeline_healthy=feedback_count > 0 or with_actuals == 0,
        )

    # ------------------------------------------------------------------
    # Feedback collection
    # ------------------------------------------------------------------

    async def collect_feedback_from_projects(self) -> FeedbackCollectionResult:
        """Create feedback for completed projects that have none yet.

        Idempotent: a calculation that already has feedback is skipped, and
        the unique constraint on ``calculation_id`` rejects a concurrent
        duplicate insert.
        """
        result = FeedbackCollectionResult()

        for project in await self.repository.completed_projects():
            result.processed += 1

            if project.offer_id is None:
                result.skipped += 1
                continue

            calculation = await self.repository.current_calculation(project.offer_id)
            if calculation is None:
                logger.debug(f"Project {project.id} has no calculation; skipping")
                result.skipped += 1
                continue

            if await self.repository.feedback_exists(calculation.id):
                result.skipped += 1
                continue

            estimated_hours = calculation.total_hours
            feedback = Feedback(
                calculation_id=calculation.id,
                offer_id=project.offer_id,
                project_id=project.id,
                estimated_hours=estimated_hours,
                actual_hours=project.actual_hours,
                estimated_material_cost=float(calculation.material_cost),
                actual_material_cost=project.actual_material_cost,
                offer_accepted=(
                    project.offer_status == "accepted" if project.offer_status else None
                ),
                project_profitable=(
                    project.actual_hours
                    <= estimated_hours * self.config.profitable_overrun_ratio
                ),
                lessons_learned=f'Auto-indsamlet fra projekt "{project.name}"',
            )

            try:
                inserted = await self.repository.insert_feedback(feedback)
            except FeedbackStoreError as e:
                result.skipped += 1
                result.errors.append(f"{project.id}: {e}")
                continue

            if inserted:
                result.inserted += 1
            else:
                result.skipped += 1

        logger.info(
            f"Feedback collection: {result.processed} projects, "
            f"{result.inserted} inserted, {result.skipped} skipped"
        )
        return result

    async def record_project_feedback(
        self,
        calculation_id: UUID,
        actual_hours: float | None = None,
        actual_material_cost: float | None = None,
        offer_id: UUID | None = None,
        project_id: UUID | None = None,
        offer_accepted: bool | None = None,
        project_profitable: bool | None = None,
        customer_satisfaction: int | None = None,
        lessons_learned: str | None = None,
    ) -> Feedback:
        """Record manual feedback for a calculation.

        Estimates are taken from the stored calculation.

        Raises:
            DuplicateFeedbackError: If the calculation already has feedback
            ValidationError: If ``customer_satisfaction`` is outside 1-5
        """
        if await self.repository.feedback_exists(calculation_id):
            raise DuplicateFeedbackError(calculation_id)

        calculation = await self.repository.get_calculation(calculation_id)
        feedback = Feedback(
            calculation_id=calculation_id,
            offer_id=offer_id or (calculation.offer_id if calculation else None),
            project_id=project_id,
            estimated_hours=calculation.total_hours if calculation else None,
            actual_hours=actual_hours,
            estimated_material_cost=(
                float(calculation.material_cost) if calculation else None
            ),
            actual_material_cost=actual_material_cost,
            offer_accepted=offer_accepted,
            project_profitable=project_profitable,
            customer_satisfaction=customer_satisfaction,
            lessons_learned=lessons_learned,
        )

        if not await self.repository.insert_feedback(feedback):
            raise DuplicateFeedbackError(calculation_id)
        return feedback

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------

    def _auto_applicable(self, calibration: ComponentCalibration) -> bool:
        return (
            calibration.confidence >= self.config.auto_calibrate_min_confidence
            and abs(calibration.variance_percentage)
            > self.config.auto_calibrate_variance_threshold
        )

    async def auto_calibrate(self) -> list[Adjustment]:
        """Propose time adjustments for well-sampled, clearly-off components.

        Nothing is applied; pass accepted proposals to ``record_adjustment``.
        """
        adjustments = []
        for calibration in await self.analyze_component_calibration():
            if not self._auto_applicable(calibration):
                continue

            direction = (
                "underestimering" if calibration.variance_percentage > 0 else "overestimering"
            )
            adjustments.append(
                Adjustment(
                    type=AdjustmentType.TIME,
                    target=calibration.code,
                    old_value=calibration.current_time_minutes,
                    new_value=calibration.suggested_time_minutes,
                    reason=(
                        f"{calibration.sample_size} projekter viste {direction} på "
                        f"{abs(calibration.variance_percentage):.1f}% "
                        f"(konfidens: {calibration.confidence * 100:.0f}%)"
                    ),
                )
            )

        logger.info(f"Auto-calibration proposed {len(adjustments)} adjustments")
        return adjustments

    async def record_adjustment(
        self, adjustment: Adjustment, applied_by: str | None = None
    ) -> Adjustment:
        """Append ``adjustment`` to the audit trail and return the stamped copy."""
        stamped = adjustment.model_copy(
            update={
                "applied_at": datetime.utcnow(),
                "applied_by": applied_by or adjustment.applied_by,
            }
        )
        await self.repository.append_adjustment(stamped)
        logger.info(
            f"Calibration adjustment recorded: {stamped.type.value} {stamped.target} "
            f"{stamped.old_value} -> {stamped.new_value}"
        )
        return stamped

    async def load_parameters(self, base: CalculationParameters) -> CalculationParameters:
        """Replay the audit trail, oldest first, over ``base``."""
        trail = await self.repository.list_adjustments(newest_first=False)
        return apply_adjustments(base, trail)

    async def run_learning_cycle(self) -> LearningCycleResult:
        """Daily job: collect feedback, then propose (not apply) adjustments.

        Store failures are reported in the result instead of raised.
        """
        try:
            collection = await self.collect_feedback_from_projects()
            proposed = await self.auto_calibrate()
        except (FeedbackStoreError, SQLAlchemyError) as e:
            logger.error(f"Learning cycle failed: {e}", exc_info=True)
            return LearningCycleResult(success=False, error=str(e))

        return LearningCycleResult(success=True, collection=collection, proposed=proposed)

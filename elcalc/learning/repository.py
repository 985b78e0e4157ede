"""Feedback store for the learning engine.

Reads are paged with explicit LIMIT/OFFSET and capped at ``max_rows``.
Feedback and adjustments are append-only: rows are inserted, never updated.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from elcalc.db.calculations import get_current_calculation
from elcalc.db.models import (
    CalculationFeedbackModel,
    CalculationModel,
    CalibrationAdjustmentModel,
    OfferModel,
    ProjectModel,
)
from elcalc.learning.models import CompletedProject
from elcalc.models import Adjustment, AdjustmentType, Feedback

logger = logging.getLogger(__name__)


class FeedbackStoreError(Exception):
    """Raised when the feedback store cannot be read or written."""


class DuplicateFeedbackError(ValueError):
    """Raised when a calculation already has a feedback row."""

    def __init__(self, calculation_id: UUID):
        super().__init__(f"Feedback already recorded for calculation {calculation_id}")
        self.calculation_id = calculation_id


class FeedbackRepository:
    """Async access to feedback, completed projects and the adjustment trail."""

    def __init__(self, session: AsyncSession, batch_size: int = 100, max_rows: int = 1000):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
            batch_size: Rows fetched per page
            max_rows: Upper bound on rows returned by any paged read
        """
        if batch_size <= 0 or max_rows <= 0:
            raise ValueError("batch_size and max_rows must be positive")
        self.session = session
        self.batch_size = batch_size
        self.max_rows = max_rows

    async def _paged(self, stmt: Select) -> AsyncIterator[Any]:
        fetched = 0
        offset = 0
        while fetched < self.max_rows:
            limit = min(self.batch_size, self.max_rows - fetched)
            try:
                result = await self.session.execute(stmt.limit(limit).offset(offset))
            except SQLAlchemyError as e:
                logger.error(f"Feedback store read failed: {e}", exc_info=True)
                raise FeedbackStoreError(str(e)) from e

            page = result.all()
            for row in page:
                yield row
            fetched += len(page)
            offset += len(page)
            if len(page) < limit:
                break

    async def _collect(self, stmt: Select) -> list[Any]:
        return [row async for row in self._paged(stmt)]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def feedback_with_actuals(self) -> list[CalculationFeedbackModel]:
        """Feedback rows with actual hours, newest first."""
        stmt = (
            select(CalculationFeedbackModel)
            .where(CalculationFeedbackModel.actual_hours.is_not(None))
            .order_by(CalculationFeedbackModel.created_at.desc(), CalculationFeedbackModel.id)
        )
        return [row[0] for row in await self._collect(stmt)]

    async def feedback_with_variance(self) -> list[CalculationFeedbackModel]:
        stmt = (
            select(CalculationFeedbackModel)
            .where(CalculationFeedbackModel.hours_variance_percentage.is_not(None))
            .order_by(CalculationFeedbackModel.created_at.desc(), CalculationFeedbackModel.id)
        )
        return [row[0] for row in await self._collect(stmt)]

    async def calculations_with_actuals(self) -> list[tuple[CalculationModel, float]]:
        """Calculations paired with the actual hours recorded in their feedback."""
        stmt = (
            select(CalculationModel, CalculationFeedbackModel.actual_hours)
            .join(
                CalculationFeedbackModel,
                CalculationFeedbackModel.calculation_id == CalculationModel.id,
            )
            .where(CalculationFeedbackModel.actual_hours.is_not(None))
            .order_by(CalculationModel.calculated_at, CalculationModel.id)
        )
        return [(row[0], row[1]) for row in await self._collect(stmt)]

    async def completed_projects(self) -> list[CompletedProject]:
        """Projects with status ``completed`` and positive actual hours."""
        stmt = (
            select(ProjectModel, OfferModel.status)
            .outerjoin(OfferModel, OfferModel.id == ProjectModel.offer_id)
            .where(ProjectModel.status == "completed", ProjectModel.actual_hours > 0)
            .order_by(ProjectModel.created_at, ProjectModel.id)
        )
        projects = []
        for project, offer_status in await self._collect(stmt):
            projects.append(
                CompletedProject(
                    id=project.id,
                    name=project.name,
                    actual_hours=project.actual_hours,
                    offer_id=project.offer_id,
                    offer_status=offer_status,
                    actual_material_cost=(
                        float(project.actual_material_cost)
                        if project.actual_material_cost is not None
                        else None
                    ),
                )
            )
        return projects

    async def current_calculation(self, offer_id: UUID) -> CalculationModel | None:
        return await get_current_calculation(self.session, offer_id)

    async def get_calculation(self, calculation_id: UUID) -> CalculationModel | None:
        return await self.session.get(CalculationModel, calculation_id)

    async def feedback_exists(self, calculation_id: UUID) -> bool:
        stmt = select(CalculationFeedbackModel.id).where(
            CalculationFeedbackModel.calculation_id == calculation_id
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def count_feedback(self) -> int:
        result = await self.session.execute(select(func.count(CalculationFeedbackModel.id)))
        return result.scalar_one()

    async def count_projects_with_actuals(self) -> int:
        stmt = select(func.count(ProjectModel.id)).where(
            ProjectModel.status == "completed", ProjectModel.actual_hours > 0
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def count_projects_with_feedback(self) -> int:
        stmt = select(func.count(func.distinct(CalculationFeedbackModel.project_id))).where(
            CalculationFeedbackModel.project_id.is_not(None)
        )
        return (await self.session.execute(stmt)).scalar_one()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_feedback(self, feedback: Feedback) -> bool:
        """Insert ``feedback`` inside a savepoint.

        Returns:
            True when inserted, False when the calculation already has
            feedback (unique constraint on ``calculation_id``)

        Raises:
            FeedbackStoreError: On any other store failure
        """
        row = CalculationFeedbackModel(
            id=feedback.id,
            calculation_id=feedback.calculation_id,
            offer_id=feedback.offer_id,
            project_id=feedback.project_id,
            estimated_hours=feedback.estimated_hours,
            actual_hours=feedback.actual_hours,
            hours_variance_percentage=_round_variance(feedback.hours_variance_percentage),
            estimated_material_cost=feedback.estimated_material_cost,
            actual_material_cost=feedback.actual_material_cost,
            material_variance_percentage=_round_variance(feedback.material_variance_percentage),
            offer_accepted=feedback.offer_accepted,
            project_profitable=feedback.project_profitable,
            customer_satisfaction=feedback.customer_satisfaction,
            lessons_learned=feedback.lessons_learned,
            adjustment_suggestions=[
                a.model_dump(mode="json") for a in feedback.adjustment_suggestions
            ],
            created_at=feedback.created_at,
        )

        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            logger.info(f"Feedback for calculation {feedback.calculation_id} already exists")
            return False
        except SQLAlchemyError as e:
            logger.error(f"Feedback insert failed: {e}", exc_info=True)
            raise FeedbackStoreError(str(e)) from e
        return True

    async def append_adjustment(self, adjustment: Adjustment) -> CalibrationAdjustmentModel:
        row = CalibrationAdjustmentModel(
            adjustment_type=adjustment.type.value,
            target=adjustment.target,
            old_value=adjustment.old_value,
            new_value=adjustment.new_value,
            reason=adjustment.reason,
            applied_by=adjustment.applied_by,
            applied_at=adjustment.applied_at or datetime.utcnow(),
        )
        try:
            self.session.add(row)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Adjustment insert failed: {e}", exc_info=True)
            raise FeedbackStoreError(str(e)) from e
        return row

    async def list_adjustments(
        self,
        limit: int | None = None,
        adjustment_type: AdjustmentType | None = None,
        newest_first: bool = True,
    ) -> list[Adjustment]:
        """Recorded adjustments from the audit trail."""
        order = (
            (CalibrationAdjustmentModel.applied_at.desc(), CalibrationAdjustmentModel.id)
            if newest_first
            else (CalibrationAdjustmentModel.applied_at.asc(), CalibrationAdjustmentModel.id)
        )
        stmt = select(CalibrationAdjustmentModel).order_by(*order)
        if adjustment_type is not None:
            stmt = stmt.where(CalibrationAdjustmentModel.adjustment_type == adjustment_type.value)

        if limit is not None:
            rows = (await self.session.execute(stmt.limit(limit))).scalars().all()
        else:
            rows = [row[0] for row in await self._collect(stmt)]

        return [
            Adjustment(
                type=AdjustmentType(row.adjustment_type),
                target=row.target,
                old_value=row.old_value,
                new_value=row.new_value,
                reason=row.reason,
                applied_at=row.applied_at,
                applied_by=row.applied_by,
            )
            for row in rows
        ]


def _round_variance(value: float | None) -> float | None:
    return round(value, 1) if value is not None else None

"""Helpers for persisting calculations and offer text templates."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from elcalc.db.models import CalculationModel, OfferTextTemplateModel
from elcalc.models import Calculation, Interpretation, OfferTextTemplate

logger = logging.getLogger(__name__)


async def get_current_calculation(
    session: AsyncSession, offer_id: UUID
) -> CalculationModel | None:
    """Latest non-superseded calculation for an offer."""
    stmt = (
        select(CalculationModel)
        .where(
            CalculationModel.offer_id == offer_id,
            CalculationModel.superseded_by_id.is_(None),
        )
        .order_by(CalculationModel.calculated_at.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def save_calculation(
    session: AsyncSession,
    calculation: Calculation,
    offer_id: UUID | None = None,
    interpretation: Interpretation | None = None,
) -> CalculationModel:
    """Persist ``calculation`` and supersede the offer's previous one.

    Figures of an existing row are never modified; the previous current row
    only gets its ``superseded_by_id`` pointer set.
    """
    previous = await get_current_calculation(session, offer_id) if offer_id else None

    row = CalculationModel(
        id=calculation.id,
        offer_id=offer_id,
        interpretation=interpretation.model_dump(mode="json") if interpretation else None,
        components=[c.model_dump(mode="json") for c in calculation.components],
        materials=[m.model_dump(mode="json") for m in calculation.materials],
        base_hours=calculation.time.base_hours,
        total_hours=calculation.time.total_hours,
        material_cost=calculation.price.material_cost,
        labor_cost=calculation.price.labor_cost,
        total_price=calculation.price.total_price,
        risk_buffer_percentage=calculation.price.risk_buffer_percentage,
        margin_percentage=calculation.price.margin_percentage,
        complexity_score=interpretation.complexity_score if interpretation else None,
        risk_score=interpretation.risk_score if interpretation else None,
        calculation_version=calculation.calculation_version,
        calculated_at=calculation.calculated_at,
    )
    session.add(row)
    await session.flush()

    if previous is not None and previous.id != row.id:
        previous.superseded_by_id = row.id
        await session.flush()
        logger.info(f"Calculation {previous.id} superseded by {row.id}")

    return row


async def load_templates(session: AsyncSession) -> list[OfferTextTemplate]:
    """Active offer text templates from the template store."""
    stmt = select(OfferTextTemplateModel).where(OfferTextTemplateModel.is_active.is_(True))
    rows = (await session.execute(stmt)).scalars().all()

    return [
        OfferTextTemplate(
            id=row.id,
            scope_type=row.scope_type,
            scope_id=row.scope_id,
            template_key=row.template_key,
            title=row.title,
            content=row.content,
            conditions=row.conditions,
            priority=row.priority,
            is_required=row.is_required,
            is_active=row.is_active,
        )
        for row in rows
    ]


async def save_template(
    session: AsyncSession, template: OfferTextTemplate
) -> OfferTextTemplateModel:
    row = OfferTextTemplateModel(
        id=template.id,
        scope_type=template.scope_type.value,
        scope_id=template.scope_id,
        template_key=template.template_key,
        title=template.title,
        content=template.content,
        conditions=(
            template.conditions.model_dump(mode="json", exclude_none=True)
            if template.conditions
            else None
        ),
        priority=template.priority,
        is_required=template.is_required,
        is_active=template.is_active,
    )
    session.add(row)
    await session.flush()
    return row

"""Integration tests for the learning loop against an in-memory database.

Covers feedback collection, component calibration, risk buffer suggestions,
metrics and the adjustment audit trail.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from elcalc.calculation import CalculationParameters
from elcalc.config import LearningConfig
from elcalc.db.models import (
    CalculationFeedbackModel,
    CalculationModel,
    OfferModel,
    ProjectModel,
)
from elcalc.learning import (
    DuplicateFeedbackError,
    FeedbackRepository,
    FeedbackStoreError,
    LearningEngine,
)
from elcalc.models import Adjustment, AdjustmentType, Feedback

OUTLETS = {"code": "outlet_single", "quantity": 10, "unit_time_minutes": 25}


@pytest.fixture
def repository(db_session: AsyncSession) -> FeedbackRepository:
    return FeedbackRepository(db_session)


@pytest.fixture
def engine(repository: FeedbackRepository) -> LearningEngine:
    return LearningEngine(repository, LearningConfig())


async def _calculation(
    session: AsyncSession,
    total_hours: float = 10.0,
    material_cost: str = "1000",
    components: list[dict] | None = None,
    offer_id=None,
) -> CalculationModel:
    row = CalculationModel(
        offer_id=offer_id,
        components=components if components is not None else [OUTLETS],
        materials=[],
        base_hours=total_hours,
        total_hours=total_hours,
        material_cost=Decimal(material_cost),
        labor_cost=Decimal(str(total_hours * 450)),
        total_price=Decimal("0"),
        risk_buffer_percentage=5.0,
        margin_percentage=25.0,
    )
    session.add(row)
    await session.flush()
    return row


async def _project(
    session: AsyncSession,
    name: str,
    estimated_hours: float,
    actual_hours: float,
    offer_status: str = "accepted",
    status: str = "completed",
    components: list[dict] | None = None,
) -> ProjectModel:
    offer = OfferModel(title=f"Tilbud {name}", status=offer_status)
    session.add(offer)
    await session.flush()

    await _calculation(session, estimated_hours, components=components, offer_id=offer.id)

    project = ProjectModel(
        name=name,
        status=status,
        actual_hours=actual_hours,
        actual_material_cost=Decimal("1100"),
        offer_id=offer.id,
    )
    session.add(project)
    await session.flush()
    return project


async def _feedback(
    session: AsyncSession,
    repository: FeedbackRepository,
    actual_hours: float,
    estimated_hours: float = 10.0,
    **kwargs,
) -> Feedback:
    calculation = await _calculation(session, estimated_hours)
    feedback = Feedback(
        calculation_id=calculation.id,
        estimated_hours=estimated_hours,
        actual_hours=actual_hours,
        **kwargs,
    )
    assert await repository.insert_feedback(feedback)
    return feedback


# ----------------------------------------------------------------------
# Feedback collection
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_collect_feedback_is_idempotent(db_session, engine):
    """Completed projects get exactly one feedback row, however often collection runs."""
    await _project(db_session, "Villa Hansen", 10.0, 10.5)
    await _project(db_session, "Rækkehus Jensen", 10.0, 12.0, offer_status="sent")
    await _project(db_session, "Planlagt", 10.0, 0.0, status="planned")
    db_session.add(ProjectModel(name="Uden tilbud", status="completed", actual_hours=5.0))
    await db_session.flush()

    first = await engine.collect_feedback_from_projects()
    second = await engine.collect_feedback_from_projects()

    assert (first.processed, first.inserted, first.skipped) == (3, 2, 1)
    assert (second.processed, second.inserted, second.skipped) == (3, 0, 3)
    assert await engine.repository.count_feedback() == 2


@pytest.mark.asyncio
async def test_collect_reports_store_failure_and_continues(db_session, engine, monkeypatch):
    """A failed insert is reported for its project; the other projects are still collected."""
    failing = await _project(db_session, "Villa Hansen", 10.0, 10.5)
    await _project(db_session, "Rækkehus Jensen", 10.0, 12.0)
    insert = engine.repository.insert_feedback

    async def flaky_insert(feedback):
        if feedback.project_id == failing.id:
            raise FeedbackStoreError("disk full")
        return await insert(feedback)

    monkeypatch.setattr(engine.repository, "insert_feedback", flaky_insert)

    result = await engine.collect_feedback_from_projects()

    assert (result.processed, result.inserted, result.skipped) == (2, 1, 1)
    assert result.errors == [f"{failing.id}: disk full"]
    assert await engine.repository.count_feedback() == 1


@pytest.mark.asyncio
async def test_collected_feedback_fields(db_session, engine):
    await _project(db_session, "Villa Hansen", 10.0, 10.5)
    await _project(db_session, "Rækkehus Jensen", 10.0, 12.0, offer_status="sent")

    await engine.collect_feedback_from_projects()

    rows = (
        await db_session.execute(
            select(CalculationFeedbackModel).order_by(CalculationFeedbackModel.actual_hours)
        )
    ).scalars().all()
    hansen, jensen = rows

    assert hansen.offer_accepted is True
    assert hansen.project_profitable is True
    assert hansen.hours_variance_percentage == 5.0
    assert hansen.material_variance_percentage == 10.0
    assert hansen.lessons_learned == 'Auto-indsamlet fra projekt "Villa Hansen"'
    assert jensen.offer_accepted is False
    assert jensen.project_profitable is False
    assert jensen.hours_variance_percentage == 20.0


@pytest.mark.asyncio
async def test_collect_uses_current_calculation(db_session, engine):
    """Superseded calculations are never the feedback target."""
    project = await _project(db_session, "Villa Hansen", 10.0, 12.0)
    old = (
        await db_session.execute(
            select(CalculationModel).where(CalculationModel.offer_id == project.offer_id)
        )
    ).scalar_one()
    new = await _calculation(db_session, 11.0, offer_id=project.offer_id)
    old.superseded_by_id = new.id
    await db_session.flush()

    await engine.collect_feedback_from_projects()

    feedback = (await db_session.execute(select(CalculationFeedbackModel))).scalar_one()
    assert feedback.calculation_id == new.id
    assert feedback.estimated_hours == 11.0


@pytest.mark.asyncio
async def test_insert_feedback_duplicate_returns_false(db_session, repository):
    """The unique constraint rejects a second row even without the pre-check."""
    calculation = await _calculation(db_session)

    first = Feedback(calculation_id=calculation.id, estimated_hours=10, actual_hours=12)
    second = Feedback(calculation_id=calculation.id, estimated_hours=10, actual_hours=14)

    assert await repository.insert_feedback(first) is True
    assert await repository.insert_feedback(second) is False
    assert await repository.count_feedback() == 1


@pytest.mark.asyncio
async def test_record_project_feedback(db_session, engine):
    calculation = await _calculation(db_session, 20.0, material_cost="5000")

    feedback = await engine.record_project_feedback(
        calculation.id, actual_hours=25.0, actual_material_cost=4500.0, customer_satisfaction=4
    )

    assert feedback.estimated_hours == 20.0
    assert feedback.estimated_material_cost == 5000.0
    assert feedback.hours_variance_percentage == pytest.approx(25.0)
    assert feedback.material_variance_percentage == pytest.approx(-10.0)

    with pytest.raises(DuplicateFeedbackError):
        await engine.record_project_feedback(calculation.id, actual_hours=30.0)


@pytest.mark.asyncio
async def test_record_project_feedback_validates_satisfaction(db_session, engine):
    calculation = await _calculation(db_session)

    with pytest.raises(ValidationError):
        await engine.record_project_feedback(calculation.id, customer_satisfaction=6)

    assert await engine.repository.count_feedback() == 0


# ----------------------------------------------------------------------
# Component calibration
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_calibration_requires_minimum_samples(db_session, engine):
    for i in range(2):
        await _project(db_session, f"Projekt {i}", 10.0, 13.0)
    await engine.collect_feedback_from_projects()

    assert await engine.analyze_component_calibration() == []

    await _project(db_session, "Projekt 3", 10.0, 13.0)
    await engine.collect_feedback_from_projects()

    [calibration] = await engine.analyze_component_calibration()
    assert calibration.code == "outlet_single"
    assert calibration.current_time_minutes == 25.0
    assert calibration.suggested_time_minutes == 32.5
    assert calibration.variance_percentage == 30.0
    assert calibration.sample_size == 3
    assert calibration.confidence == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_calibration_ignores_small_variance(db_session, engine):
    for i in range(4):
        await _project(db_session, f"Projekt {i}", 10.0, 10.5)
    await engine.collect_feedback_from_projects()

    assert await engine.analyze_component_calibration() == []


@pytest.mark.asyncio
async def test_auto_calibrate_proposes_only_confident_adjustments(db_session, engine):
    for i in range(7):
        await _project(db_session, f"Projekt {i}", 10.0, 13.0)
    await engine.collect_feedback_from_projects()

    assert await engine.auto_calibrate() == []

    await _project(db_session, "Projekt 8", 10.0, 13.0)
    await engine.collect_feedback_from_projects()

    [proposal] = await engine.auto_calibrate()
    assert proposal.type is AdjustmentType.TIME
    assert proposal.target == "outlet_single"
    assert (proposal.old_value, proposal.new_value) == (25.0, 32.5)
    assert "underestimering" in proposal.reason
    assert proposal.applied_at is None
    # Proposals are not recorded
    assert await engine.repository.list_adjustments() == []


# ----------------------------------------------------------------------
# Risk buffer
# ----------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("score,expected", [(1, 3.0), (2, 5.0), (3, 7.5), (5, 15.0), (0, 5.0), (9, 5.0)])
async def test_risk_buffer_table_without_history(engine, score, expected):
    assert await engine.get_suggested_risk_buffer(score) == expected


@pytest.mark.asyncio
async def test_risk_buffer_from_overrun_percentile(db_session, repository, engine):
    for actual in (11, 12, 13, 14, 15):
        await _feedback(db_session, repository, actual)

    assert await engine.get_suggested_risk_buffer(3) == 50.0
    assert await engine.get_suggested_risk_buffer(5) == 60.0
    assert await engine.get_suggested_risk_buffer(1) == 40.0


@pytest.mark.asyncio
@pytest.mark.parametrize("score,expected", [(0, 40.0), (-7, 40.0), (9, 60.0)])
async def test_risk_buffer_clamps_score_with_history(
    db_session, repository, engine, score, expected
):
    for actual in (11, 12, 13, 14, 15):
        await _feedback(db_session, repository, actual)

    assert await engine.get_suggested_risk_buffer(score) == expected


@pytest.mark.asyncio
async def test_risk_buffer_without_overruns(db_session, repository, engine):
    for _ in range(5):
        await _feedback(db_session, repository, 8.0)

    assert await engine.get_suggested_risk_buffer(4) == 5.0


# ----------------------------------------------------------------------
# Metrics and status
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_metrics_without_feedback(engine):
    metrics = await engine.analyze_learning_metrics()

    assert metrics.total_calculations == 0
    assert metrics.price_accuracy == 100.0
    assert metrics.improving is True


@pytest.mark.asyncio
async def test_metrics(db_session, repository, engine):
    await _feedback(
        db_session,
        repository,
        12.0,
        estimated_material_cost=1000,
        actual_material_cost=1100,
        offer_accepted=True,
        project_profitable=True,
        customer_satisfaction=4,
    )
    await _feedback(
        db_session,
        repository,
        9.0,
        offer_accepted=False,
        project_profitable=True,
        customer_satisfaction=5,
    )

    metrics = await engine.analyze_learning_metrics()

    assert metrics.total_calculations == 2
    assert metrics.completed_projects == 2
    assert metrics.average_hours_variance == 5.0
    assert metrics.average_material_variance == 10.0
    assert metrics.price_accuracy == 90.0
    assert metrics.offer_acceptance_rate == 50.0
    assert metrics.profitability_rate == 100.0
    assert metrics.average_satisfaction == 4.5
    assert metrics.improving is True


@pytest.mark.asyncio
async def test_metrics_trend_detects_worsening(db_session, repository):
    engine = LearningEngine(repository, LearningConfig(trend_window=2))
    start = datetime(2026, 1, 1)
    for days, actual in enumerate((10.5, 10.5, 13.0, 13.0)):
        await _feedback(db_session, repository, actual, created_at=start + timedelta(days=days))

    metrics = await engine.analyze_learning_metrics()

    assert metrics.improving is False


@pytest.mark.asyncio
async def test_system_status(db_session, engine):
    await _project(db_session, "Villa Hansen", 10.0, 12.0)
    await _project(db_session, "Rækkehus Jensen", 10.0, 11.0)

    before = await engine.system_status()
    await engine.collect_feedback_from_projects()
    after = await engine.system_status()

    assert before.pipeline_healthy is False
    assert before.projects_without_feedback == 2
    assert after.pipeline_healthy is True
    assert after.feedback_count == 2
    assert after.projects_without_feedback == 0
    assert after.last_calibration_at is None


# ----------------------------------------------------------------------
# Adjustment trail
# ----------------------------------------------------------------------


def _adjustment(type_: AdjustmentType, target: str, old: float, new: float) -> Adjustment:
    return Adjustment(type=type_, target=target, old_value=old, new_value=new, reason="test")


@pytest.mark.asyncio
async def test_recorded_adjustments_replay_into_parameters(engine):
    await engine.record_adjustment(_adjustment(AdjustmentType.TIME, "outlet_single", 25, 28))
    await engine.record_adjustment(_adjustment(AdjustmentType.TIME, "outlet_single", 28, 32))
    stamped = await engine.record_adjustment(
        _adjustment(AdjustmentType.MARGIN, "default", 25, 22), applied_by="kalkulator"
    )

    base = CalculationParameters()
    parameters = await engine.load_parameters(base)

    assert stamped.applied_at is not None
    assert stamped.applied_by == "kalkulator"
    assert parameters.component_time_overrides == {"outlet_single": 32}
    assert parameters.margin_percentage == 22
    assert base.component_time_overrides == {}


@pytest.mark.asyncio
async def test_list_adjustments(engine):
    await engine.record_adjustment(_adjustment(AdjustmentType.TIME, "spot_light", 20, 24))
    await engine.record_adjustment(_adjustment(AdjustmentType.RISK_BUFFER, "default", 5, 7.5))

    newest = await engine.repository.list_adjustments(limit=1)
    time_only = await engine.repository.list_adjustments(adjustment_type=AdjustmentType.TIME)
    metrics = await engine.analyze_learning_metrics()
    status = await engine.system_status()

    assert newest[0].type is AdjustmentType.RISK_BUFFER
    assert [a.target for a in time_only] == ["spot_light"]
    assert len(metrics.recent_adjustments) == 2
    assert status.last_calibration_at == newest[0].applied_at


# ----------------------------------------------------------------------
# Learning cycle and repository limits
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_learning_cycle(db_session, engine):
    await _project(db_session, "Villa Hansen", 10.0, 12.0)

    result = await engine.run_learning_cycle()

    assert result.success is True
    assert result.collection.inserted == 1
    assert result.proposed == []


@pytest.mark.asyncio
async def test_learning_cycle_reports_store_failure(engine, monkeypatch):
    async def unavailable():
        raise FeedbackStoreError("database unavailable")

    monkeypatch.setattr(engine.repository, "completed_projects", unavailable)

    result = await engine.run_learning_cycle()

    assert result.success is False
    assert "database unavailable" in result.error


@pytest.mark.asyncio
async def test_paged_reads_are_capped(db_session):
    repository = FeedbackRepository(db_session, batch_size=2, max_rows=3)
    for actual in (11, 12, 13, 14, 15):
        await _feedback(db_session, repository, actual)

    rows = await repository.feedback_with_actuals()

    assert len(rows) == 3


@pytest.mark.parametrize("batch_size,max_rows", [(0, 10), (10, 0)])
def test_repository_rejects_invalid_limits(batch_size, max_rows):
    with pytest.raises(ValueError):
        FeedbackRepository(None, batch_size=batch_size, max_rows=max_rows)

"""SQLAlchemy async database models for elcalc.

Calculations are never edited in place: a recalculation inserts a new row and
marks the previous one with ``superseded_by_id``. Feedback is unique per
calculation, and calibration adjustments form an append-only audit trail.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class OfferModel(Base):
    """Customer offer (read-only input for feedback collection)."""

    __tablename__ = "offers"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    title: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ProjectModel(Base):
    """Executed project with recorded actual hours."""

    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="planned", index=True)
    actual_hours: Mapped[float | None] = mapped_column(Float)
    actual_material_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    offer_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("offers.id", ondelete="SET NULL"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CalculationModel(Base):
    """Persisted calculation; superseded, never updated, by recalculation."""

    __tablename__ = "calculations"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    offer_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("offers.id", ondelete="CASCADE"), index=True
    )

    # Snapshots (JSON) of the inputs the figures were derived from
    interpretation: Mapped[dict | None] = mapped_column(JSON)
    components: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    materials: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    base_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_hours: Mapped[float] = mapped_column(Float, nullable=False)
    material_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    labor_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    risk_buffer_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    margin_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    complexity_score: Mapped[int | None] = mapped_column(Integer)
    risk_score: Mapped[int | None] = mapped_column(Integer)
    calculation_version: Mapped[str] = mapped_column(String(10), nullable=False, default="v2.0")

    superseded_by_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("calculations.id", ondelete="SET NULL")
    )
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("total_hours >= 0", name="check_total_hours_non_negative"),
        Index("idx_calculations_offer_current", "offer_id", "superseded_by_id"),
    )


class CalculationFeedbackModel(Base):
    """Estimated versus actual outcome; at most one row per calculation."""

    __tablename__ = "calculation_feedback"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    calculation_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("calculations.id", ondelete="CASCADE"), nullable=False
    )
    offer_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), index=True)
    project_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), index=True)

    estimated_hours: Mapped[float | None] = mapped_column(Float)
    actual_hours: Mapped[float | None] = mapped_column(Float)
    hours_variance_percentage: Mapped[float | None] = mapped_column(Float)
    estimated_material_cost: Mapped[float | None] = mapped_column(Float)
    actual_material_cost: Mapped[float | None] = mapped_column(Float)
    material_variance_percentage: Mapped[float | None] = mapped_column(Float)

    offer_accepted: Mapped[bool | None] = mapped_column(Boolean)
    project_profitable: Mapped[bool | None] = mapped_column(Boolean)
    customer_satisfaction: Mapped[int | None] = mapped_column(Integer)
    lessons_learned: Mapped[str | None] = mapped_column(Text)
    adjustment_suggestions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint("calculation_id", name="uq_feedback_calculation"),
        CheckConstraint(
            "customer_satisfaction IS NULL OR customer_satisfaction BETWEEN 1 AND 5",
            name="check_customer_satisfaction_range",
        ),
    )


class CalibrationAdjustmentModel(Base):
    """Append-only audit trail of applied calibration adjustments."""

    __tablename__ = "calibration_adjustments"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    adjustment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    old_value: Mapped[float] = mapped_column(Float, nullable=False)
    new_value: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    applied_by: Mapped[str | None] = mapped_column(Text)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )


class CatalogComponentModel(Base):
    """Catalog override for a labour component."""

    __tablename__ = "catalog_components"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str | None] = mapped_column(Text)
    unit_time_minutes: Mapped[float | None] = mapped_column(Float)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CatalogMaterialModel(Base):
    """Catalog override for a material (supplier price)."""

    __tablename__ = "catalog_materials"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str | None] = mapped_column(Text)
    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    sku: Mapped[str | None] = mapped_column(Text)
    supplier_name: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class OfferTextTemplateModel(Base):
    """Externally managed offer text template."""

    __tablename__ = "offer_text_templates"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=lambda: str(uuid4()))
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False, default="global")
    scope_id: Mapped[str | None] = mapped_column(Text)
    template_key: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    conditions: Mapped[dict | None] = mapped_column(JSON)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "scope_type IN ('component', 'category', 'room_type', 'global')",
            name="check_template_scope_type",
        ),
        Index("idx_templates_scope", "scope_type", "scope_id"),
    )

"""elcalc Pydantic models for type-safe data validation.

Shared by the interpreter, matcher, calculation, risk, offer text and
learning engines. Money is carried as ``Decimal`` and rounded once per figure.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BuildingType(str, Enum):
    """Building categories recognised by the interpreter."""

    HOUSE = "house"
    APARTMENT = "apartment"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    UNKNOWN = "unknown"


class RoomType(str, Enum):
    KITCHEN = "kitchen"
    LIVING = "living"
    BEDROOM = "bedroom"
    BATHROOM = "bathroom"
    OFFICE = "office"
    UTILITY = "utility"
    GARAGE = "garage"
    OUTDOOR = "outdoor"
    OTHER = "other"


class Severity(str, Enum):
    """Risk severity levels, lowest first."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskCategory(str, Enum):
    TECHNICAL = "technical"
    SAFETY = "safety"
    LEGAL = "legal"
    TIME = "time"
    MARGIN = "margin"
    ACCESS = "access"
    SCOPE = "scope"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ComponentSource(str, Enum):
    """Where a matched line item came from."""

    CATALOG = "catalog"  # external catalog lookup hit
    ESTIMATE = "estimate"  # built-in default table


class TemplateScope(str, Enum):
    COMPONENT = "component"
    CATEGORY = "category"
    ROOM_TYPE = "room_type"
    GLOBAL = "global"


class AdjustmentType(str, Enum):
    TIME = "time"
    MATERIAL = "material"
    MARGIN = "margin"
    RISK_BUFFER = "risk_buffer"
    COMPLEXITY = "complexity"


# ---------------------------------------------------------------------------
# Interpretation
# ---------------------------------------------------------------------------


class Room(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: RoomType


class PanelRequirements(BaseModel):
    """Electrical panel (eltavle) needs derived from point counts and age."""

    model_config = ConfigDict(frozen=True)

    upgrade_needed: bool = False
    required_groups: int = 0
    required_amperage: int = 25
    new_panel_needed: bool = False


class ComplexityFactor(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    category: str  # material, building, access, electrical
    multiplier: float
    detected_from: str  # matched text fragment


class RiskFactor(BaseModel):
    """Risk spotted directly in the description text."""

    model_config = ConfigDict(frozen=True)

    code: str
    type: str  # electrical, scope, safety, timeline
    title: str
    description: str
    severity: Severity


class Interpretation(BaseModel):
    """Structured facts extracted from a free-text project description.

    Created once per interpretation request and never mutated afterwards.
    ``complexity_score`` and ``risk_score`` are derived by the interpreter
    and always fall within 1-5.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    raw_description: str
    building_type: BuildingType = BuildingType.UNKNOWN
    building_size_m2: float | None = None
    building_age_years: int | None = None
    rooms: tuple[Room, ...] = Field(min_length=1)
    electrical_points: dict[str, int] = Field(default_factory=dict)
    cable_requirements: dict[str, int] = Field(default_factory=dict)
    panel_requirements: PanelRequirements = Field(default_factory=PanelRequirements)
    complexity_factors: tuple[ComplexityFactor, ...] = ()
    complexity_score: int = Field(default=3, ge=1, le=5)
    risk_factors: tuple[RiskFactor, ...] = ()
    risk_score: int = Field(default=1, ge=1, le=5)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    model_version: str = "local-pattern-v1"
    interpretation_time_ms: int = 0

    @property
    def total_points(self) -> int:
        return sum(self.electrical_points.values())

    @property
    def room_types(self) -> list[str]:
        """Distinct room types in detection order."""
        seen: list[str] = []
        for room in self.rooms:
            if room.type.value not in seen:
                seen.append(room.type.value)
        return seen

    def has_risk(self, code: str) -> bool:
        return any(risk.code == code for risk in self.risk_factors)


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------


class CalculationComponent(BaseModel):
    """Labour line item (installation point, panel work)."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    category: str
    quantity: float
    unit: str = "stk"
    unit_time_minutes: float
    unit_price: Decimal = Decimal("0")
    source: ComponentSource = ComponentSource.ESTIMATE
    component_id: str | None = None

    @field_validator("quantity", "unit_time_minutes")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("quantity and unit_time_minutes must be non-negative")
        return v

    @property
    def total_minutes(self) -> float:
        return self.unit_time_minutes * self.quantity


class CalculationMaterial(BaseModel):
    """Material line item priced at cost."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    quantity: float
    unit: str = "stk"
    unit_cost: Decimal
    unit_price: Decimal = Decimal("0")
    source: ComponentSource = ComponentSource.ESTIMATE
    sku: str | None = None
    supplier_name: str | None = None

    @field_validator("unit_cost")
    @classmethod
    def validate_unit_cost(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("unit_cost must be non-negative")
        return v

    @property
    def total_cost(self) -> Decimal:
        return self.unit_cost * Decimal(str(self.quantity))


class TimeBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    hours: float
    description: str


class TimeCalculation(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_hours: float
    complexity_multiplier: float = 1.0
    size_multiplier: float = 1.0
    accessibility_multiplier: float = 1.0
    total_hours: float
    breakdown: tuple[TimeBreakdown, ...] = ()


class PriceCalculation(BaseModel):
    model_config = ConfigDict(frozen=True)

    material_cost: Decimal
    labor_cost: Decimal
    subtotal: Decimal
    risk_buffer_percentage: float
    risk_buffer_amount: Decimal
    margin_percentage: float
    margin_amount: Decimal
    total_price: Decimal
    hourly_rate: float
    discount_percentage: float = 0.0
    discount_amount: Decimal = Decimal("0")
    final_price: Decimal | None = None


class Calculation(BaseModel):
    """Time and price figures for one interpretation/offer pair.

    Immutable; a recalculation produces a new Calculation that supersedes
    the old one.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    interpretation_id: UUID | None = None
    components: tuple[CalculationComponent, ...] = ()
    materials: tuple[CalculationMaterial, ...] = ()
    time: TimeCalculation
    price: PriceCalculation
    calculation_version: str = "v2.0"
    calculated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def component_count(self) -> int:
        return len(self.components)

    @property
    def component_codes(self) -> list[str]:
        return [component.code for component in self.components]

    @property
    def categories(self) -> list[str]:
        seen: list[str] = []
        for component in self.components:
            if component.category not in seen:
                seen.append(component.category)
        return seen


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


class RiskContext(BaseModel):
    """Project context evaluated by risk rules.

    Every optional field has a documented neutral default: a missing age,
    margin or price never triggers the rules keyed on it.
    """

    model_config = ConfigDict(frozen=True)

    calculation_id: UUID | None = None
    building_type: BuildingType | None = None
    building_profile: str | None = None
    building_age_years: int | None = None  # None: no age rule fires
    room_types: tuple[str, ...] = ()
    room_count: int = 0
    component_count: int = 0
    margin_percentage: float | None = None  # None: no margin rule fires
    total_price: Decimal | None = None  # None: treated as 0
    has_bathroom_work: bool = False
    has_outdoor_work: bool = False
    panel_upgrade_needed: bool = False
    new_panel_needed: bool = False
    interpretation_confidence: float | None = None  # None: not considered


class RiskAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    calculation_id: UUID | None = None
    category: RiskCategory
    severity: Severity
    title: str
    description: str
    detection_rule: str
    detection_data: dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.9
    recommendation: str | None = None
    show_to_customer: bool = False
    customer_message: str | None = None
    offer_reservation: str | None = None


class RiskAnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    risks: tuple[RiskAssessment, ...] = ()
    overall_risk_level: RiskLevel = RiskLevel.LOW
    customer_visible_risks: tuple[RiskAssessment, ...] = ()
    recommendations: tuple[str, ...] = ()
    summary: str = ""
    requires_inspection: bool = False

    @property
    def obs_points(self) -> list[str]:
        """Customer-safe caveats for the offer."""
        return [
            risk.customer_message
            for risk in self.customer_visible_risks
            if risk.customer_message
        ]

    @property
    def offer_reservations(self) -> list[str]:
        """Project-specific reservations printed in the offer."""
        return [risk.offer_reservation for risk in self.risks if risk.offer_reservation]

    @property
    def internal_notes(self) -> list[str]:
        """Notes for the estimator, never shown to the customer."""
        return [
            f"{risk.title}: {risk.recommendation}" for risk in self.risks if risk.recommendation
        ]


class MarginRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    minimum_margin: float
    recommended_margin: float
    reason: str


# ---------------------------------------------------------------------------
# Offer text
# ---------------------------------------------------------------------------


class TemplateConditions(BaseModel):
    """Conjunctive template conditions; absent conditions always hold."""

    model_config = ConfigDict(frozen=True)

    min_quantity: int | None = None
    max_quantity: int | None = None
    building_profiles: tuple[str, ...] | None = None
    room_types: tuple[str, ...] | None = None
    component_codes: tuple[str, ...] | None = None

    def declared_count(self) -> int:
        """Number of conditions that carry a non-empty value."""
        count = 0
        for value in (
            self.min_quantity,
            self.max_quantity,
            self.building_profiles,
            self.room_types,
            self.component_codes,
        ):
            if value is None:
                continue
            if isinstance(value, tuple) and len(value) == 0:
                continue
            count += 1
        return count


class OfferTextTemplate(BaseModel):
    """Externally managed text snippet with ``{{variable}}`` placeholders."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    scope_type: TemplateScope = TemplateScope.GLOBAL
    scope_id: str | None = None
    template_key: str
    title: str | None = None
    content: str
    conditions: TemplateConditions | None = None
    priority: int = 0
    is_required: bool = False
    is_active: bool = True


class OfferTextContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    component_codes: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    room_types: tuple[str, ...] = ()
    room_count: int = 0
    building_profile: str | None = None
    building_age_years: int | None = None
    building_type: str | None = None
    total_price: Decimal | None = None
    component_count: int = 0
    has_bathroom_work: bool = False
    has_outdoor_work: bool = False


class AssembledText(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str | None
    content: str
    scope: TemplateScope
    source_id: str
    score: int


class AssembledOfferTexts(BaseModel):
    technical_scope: list[str] = Field(default_factory=list)
    obs_points: list[str] = Field(default_factory=list)
    warranty_notes: list[str] = Field(default_factory=list)
    installation_notes: list[str] = Field(default_factory=list)
    terms: list[str] = Field(default_factory=list)
    exclusions: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    all_texts: list[AssembledText] = Field(default_factory=list)


class GeneratedOfferContent(BaseModel):
    technical_scope: list[str] = Field(default_factory=list)
    exclusions: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    obs_points: list[str] = Field(default_factory=list)
    warranty_notes: list[str] = Field(default_factory=list)
    optional_upgrades: list[str] | None = None


class PriceBreakdownCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    amount: Decimal
    percentage: float
    description: str


class PriceExplanation(BaseModel):
    """Customer-facing explanation of an offer price."""

    model_config = ConfigDict(frozen=True)

    summary: str
    labor_explanation: str
    material_explanation: str
    value_propositions: tuple[str, ...] = ()
    whats_included: tuple[str, ...] = ()
    whats_not_included: tuple[str, ...] = ()
    quality_guarantees: tuple[str, ...] = ()
    payment_terms: str = ""
    categories: tuple[PriceBreakdownCategory, ...] = ()
    labor_hours: float | None = None
    material_items: float = 0


class OfferSections(BaseModel):
    model_config = ConfigDict(frozen=True)

    work_description: str
    scope_description: str
    materials_description: str
    timeline_description: str
    reservations: str
    terms: str


class OfferDocument(BaseModel):
    """Plain-text offer ready to send, plus the sections it was built from."""

    model_config = ConfigDict(frozen=True)

    calculation_id: UUID | None = None
    sections: OfferSections
    full_text: str
    is_edited: bool = False


# ---------------------------------------------------------------------------
# Learning
# ---------------------------------------------------------------------------


class Adjustment(BaseModel):
    """Proposed change to an estimation coefficient.

    Never applied automatically; ``applied_at`` is only set when the
    adjustment is recorded in the audit trail.
    """

    model_config = ConfigDict(frozen=True)

    type: AdjustmentType
    target: str  # component code or factor code
    old_value: float
    new_value: float
    reason: str
    applied_at: datetime | None = None
    applied_by: str | None = None


class Feedback(BaseModel):
    """Estimated versus actual outcome of one completed calculation."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    calculation_id: UUID
    offer_id: UUID | None = None
    project_id: UUID | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    estimated_material_cost: float | None = None
    actual_material_cost: float | None = None
    offer_accepted: bool | None = None
    project_profitable: bool | None = None
    customer_satisfaction: int | None = Field(default=None, ge=1, le=5)
    lessons_learned: str | None = None
    adjustment_suggestions: tuple[Adjustment, ...] = ()
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def hours_variance_percentage(self) -> float | None:
        return variance_percentage(self.actual_hours, self.estimated_hours)

    @property
    def material_variance_percentage(self) -> float | None:
        return variance_percentage(
            self.actual_material_cost, self.estimated_material_cost
        )


def variance_percentage(
    actual: float | Decimal | None, estimated: float | Decimal | None
) -> float | None:
    """Return ``(actual - estimated) / estimated * 100``.

    Returns None when either side is missing or the estimate is zero, so no
    NaN or infinity ever leaves this function.
    """
    if actual is None or estimated is None:
        return None
    estimated_f = float(estimated)
    if estimated_f == 0:
        return None
    return (float(actual) - estimated_f) / estimated_f * 100

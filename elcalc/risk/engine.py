"""Risk and OBS engine.

Runs every rule over a project context and produces severity-ranked risks,
customer-safe OBS points, textual recommendations and a margin
recommendation. Rule-based detection, so every assessment carries a fixed
confidence of 0.9.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, NamedTuple

from elcalc.models import (
    BuildingType,
    Calculation,
    Interpretation,
    MarginRecommendation,
    RiskAnalysisResult,
    RiskAssessment,
    RiskCategory,
    RiskContext,
    RiskLevel,
    Severity,
)
from elcalc.risk.rules import RiskRuleSet, get_risk_rules

logger = logging.getLogger(__name__)

RULE_CONFIDENCE = 0.9

SEVERITY_ORDER = {
    Severity.CRITICAL: 5,
    Severity.HIGH: 4,
    Severity.MEDIUM: 3,
    Severity.LOW: 2,
    Severity.INFO: 1,
}

BASE_MINIMUM_MARGIN = 15.0
BASE_RECOMMENDED_MARGIN = 25.0

# Interpretations less certain than this call for a site inspection
INSPECTION_CONFIDENCE = 0.6

LEVEL_DESCRIPTIONS = {
    RiskLevel.LOW: "Lavt risikoniveau",
    RiskLevel.MEDIUM: "Moderat risikoniveau",
    RiskLevel.HIGH: "Højt risikoniveau",
}

GENERAL_RESERVATION = (
    "Tilbuddet er baseret på de oplyste forhold. Uforudsete forhold faktureres efter regning."
)


class QuickRiskCheck(NamedTuple):
    level: RiskLevel
    count: int
    top_issue: str | None


def overall_risk_level(risks: tuple[RiskAssessment, ...] | list[RiskAssessment]) -> RiskLevel:
    highs = sum(1 for r in risks if r.severity is Severity.HIGH)
    mediums = sum(1 for r in risks if r.severity is Severity.MEDIUM)

    if any(r.severity is Severity.CRITICAL for r in risks) or highs >= 2:
        return RiskLevel.HIGH
    if highs >= 1 or mediums >= 3:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _recommendations(risks: list[RiskAssessment], level: RiskLevel) -> list[str]:
    fired = {r.detection_rule for r in risks}
    recommendations: list[str] = []

    if fired & {"RISK_OLD_WIRING", "RISK_VERY_OLD"}:
        recommendations.append("Anbefales: Tilbyd eltjek/besigtigelse før tilbud afgives")
    if fired & {"RISK_LOW_MARGIN", "RISK_VERY_LOW_MARGIN"}:
        recommendations.append("Advarsel: Marginen er for lav. Gennemgå prissætningen.")
    if "RISK_COMPLEX_PROJECT" in fired:
        recommendations.append("Overvej: Opdel projektet i faser for bedre styring")
    if "RISK_UNCLEAR_SCOPE" in fired:
        recommendations.append("Vigtigt: Afklar omfanget grundigt med kunden før tilbudsgivning")
    if level is RiskLevel.HIGH:
        recommendations.append("Høj risiko: Overvej ekstra buffer (15-20%) i prissætningen")

    return recommendations


def risk_summary(
    risks: tuple[RiskAssessment, ...] | list[RiskAssessment], level: RiskLevel
) -> str:
    """Danish one-liner, e.g. ``Moderat risikoniveau (3 fund: 1 høje, 2 moderate risici).``"""
    if not risks:
        return "Ingen væsentlige risici identificeret. Standard projekt."

    parts = []
    for severity, label in (
        (Severity.CRITICAL, "kritiske"),
        (Severity.HIGH, "høje"),
        (Severity.MEDIUM, "moderate"),
    ):
        count = sum(1 for r in risks if r.severity is severity)
        if count:
            parts.append(f"{count} {label}")

    risk_text = f"{', '.join(parts)} risici" if parts else "lave risici"
    return f"{LEVEL_DESCRIPTIONS[level]} ({len(risks)} fund: {risk_text})."


def _requires_inspection(
    risks: list[RiskAssessment], level: RiskLevel, context: RiskContext
) -> bool:
    if level is RiskLevel.HIGH:
        return True
    if any(r.severity in (Severity.HIGH, Severity.CRITICAL) for r in risks):
        return True
    return (
        context.interpretation_confidence is not None
        and context.interpretation_confidence < INSPECTION_CONFIDENCE
    )


def _detection_data(context: RiskContext) -> dict[str, Any]:
    return context.model_dump(mode="json", exclude_none=True)


def analyze(context: RiskContext, rules: RiskRuleSet | None = None) -> RiskAnalysisResult:
    """Run all risk rules over ``context``.

    All matching rules fire. Risks are ordered by descending severity; ties
    keep rule order.
    """
    risks: list[RiskAssessment] = []
    for rule in rules or get_risk_rules():
        if not rule.check(context):
            continue
        risks.append(
            RiskAssessment(
                calculation_id=context.calculation_id,
                category=rule.category,
                severity=rule.severity,
                title=rule.title,
                description=rule.description,
                detection_rule=rule.code,
                detection_data=_detection_data(context),
                confidence=RULE_CONFIDENCE,
                recommendation=rule.recommendation,
                show_to_customer=rule.show_to_customer,
                customer_message=rule.customer_message,
                offer_reservation=rule.offer_reservation,
            )
        )

    risks.sort(key=lambda r: SEVERITY_ORDER[r.severity], reverse=True)
    level = overall_risk_level(risks)

    logger.debug(f"Risk analysis: {len(risks)} risks, overall {level.value}")
    return RiskAnalysisResult(
        risks=tuple(risks),
        overall_risk_level=level,
        customer_visible_risks=tuple(r for r in risks if r.show_to_customer),
        recommendations=tuple(_recommendations(risks, level)),
        summary=risk_summary(risks, level),
        requires_inspection=_requires_inspection(risks, level, context),
    )


def quick_check(context: RiskContext, rules: RiskRuleSet | None = None) -> QuickRiskCheck:
    """Risk level, count and top issue title for badges."""
    result = analyze(context, rules)
    return QuickRiskCheck(
        level=result.overall_risk_level,
        count=len(result.risks),
        top_issue=result.risks[0].title if result.risks else None,
    )


def obs_points(context: RiskContext, rules: RiskRuleSet | None = None) -> list[str]:
    return analyze(context, rules).obs_points


def recommended_margin(
    context: RiskContext,
    rules: RiskRuleSet | None = None,
    result: RiskAnalysisResult | None = None,
) -> MarginRecommendation:
    """Margin recommendation from the analysed risks.

    Each matched condition can only raise the minimum and recommended margin,
    never lower them below the 15 % / 25 % baseline.
    """
    result = result or analyze(context, rules)
    minimum = BASE_MINIMUM_MARGIN
    recommended = BASE_RECOMMENDED_MARGIN
    reasons: list[str] = []

    def bump(new_minimum: float, new_recommended: float, reason: str) -> None:
        nonlocal minimum, recommended
        minimum = max(minimum, new_minimum)
        recommended = max(recommended, new_recommended)
        reasons.append(reason)

    if any(r.detection_rule == "RISK_VERY_OLD" for r in result.risks):
        bump(25, 35, "gammel bygning")
    if any(r.category is RiskCategory.SAFETY for r in result.risks):
        bump(20, 30, "sikkerhedskrav")
    if result.overall_risk_level is RiskLevel.HIGH:
        bump(22, 32, "høj samlet risiko")
    if context.building_type in (BuildingType.COMMERCIAL, BuildingType.INDUSTRIAL):
        bump(20, 28, "erhverv/industri")

    reason = (
        f"Anbefalet pga: {', '.join(reasons)}" if reasons else "Standard margin for projektet"
    )
    return MarginRecommendation(
        minimum_margin=minimum, recommended_margin=recommended, reason=reason
    )


def format_offer_reservations(result: RiskAnalysisResult) -> str:
    """Reservation block for the offer; a general reservation when nothing specific applies."""
    if not result.offer_reservations:
        return GENERAL_RESERVATION

    lines = ["Forbehold:", ""]
    lines.extend(f"• {reservation}" for reservation in result.offer_reservations)
    lines.extend(["", "Generelt forbehold for uforudsete forhold."])
    return "\n".join(lines)


def format_internal_notes(result: RiskAnalysisResult) -> str:
    if not result.internal_notes:
        return "Ingen særlige bemærkninger."
    return "\n\n".join(result.internal_notes)


def list_rules(rules: RiskRuleSet | None = None) -> list[dict[str, Any]]:
    """Summary of the configured rules (code, name, category, severity, visibility)."""
    return [
        {
            "code": rule.code,
            "name": rule.name,
            "category": rule.category.value,
            "severity": rule.severity.value,
            "show_to_customer": rule.show_to_customer,
        }
        for rule in rules or get_risk_rules()
    ]


def build_risk_context(
    interpretation: Interpretation,
    calculation: Calculation | None = None,
    margin_percentage: float | None = None,
    building_profile: str | None = None,
) -> RiskContext:
    """Derive a ``RiskContext`` from pipeline outputs.

    ``component_count`` is the number of installation units (sum of component
    quantities). The synthetic ``other`` room is not counted as a room.
    """
    room_types = tuple(interpretation.room_types)
    component_count = 0
    total_price: Decimal | None = None
    calculation_id = None

    if calculation is not None:
        component_count = int(sum(c.quantity for c in calculation.components))
        total_price = calculation.price.total_price
        calculation_id = calculation.id
        if margin_percentage is None:
            margin_percentage = calculation.price.margin_percentage

    has_outdoor_work = (
        "outdoor" in room_types
        or interpretation.electrical_points.get("outdoor_lights", 0) > 0
        or interpretation.has_risk("outdoor_work")
    )

    return RiskContext(
        calculation_id=calculation_id,
        building_type=interpretation.building_type,
        building_profile=building_profile,
        building_age_years=interpretation.building_age_years,
        room_types=room_types,
        room_count=sum(1 for room in interpretation.rooms if room.type.value != "other"),
        component_count=component_count,
        margin_percentage=margin_percentage,
        total_price=total_price,
        has_bathroom_work="bathroom" in room_types,
        has_outdoor_work=has_outdoor_work,
        panel_upgrade_needed=interpretation.panel_requirements.upgrade_needed,
        new_panel_needed=interpretation.panel_requirements.new_panel_needed,
        interpretation_confidence=interpretation.confidence,
    )

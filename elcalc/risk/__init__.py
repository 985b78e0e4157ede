"""Rule-based risk detection and margin guidance."""

from elcalc.risk.engine import (
    QuickRiskCheck,
    analyze,
    build_risk_context,
    format_internal_notes,
    format_offer_reservations,
    list_rules,
    obs_points,
    quick_check,
    recommended_margin,
    risk_summary,
)
from elcalc.risk.rules import RiskRule, RiskRuleSet, get_risk_rules, reload_risk_rules

__all__ = [
    "QuickRiskCheck",
    "RiskRule",
    "RiskRuleSet",
    "analyze",
    "build_risk_context",
    "format_internal_notes",
    "format_offer_reservations",
    "get_risk_rules",
    "list_rules",
    "obs_points",
    "quick_check",
    "recommended_margin",
    "reload_risk_rules",
    "risk_summary",
]

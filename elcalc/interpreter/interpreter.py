"""Project interpreter.

Turns a free-text (Danish) project description into a structured
``Interpretation``. Extraction is an ordered list of (name, handler) steps run
by a single dispatch loop over a per-call working state, so concurrent calls
share nothing but the immutable rule tables.
"""

from __future__ import annotations

import logging
import math
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import NamedTuple

from elcalc.interpreter.rules import (
    COMPLEXITY_BANDS,
    RISK_BANDS,
    SEVERITY_WEIGHTS,
    InterpreterRules,
    get_rules,
)
from elcalc.models import (
    BuildingType,
    ComplexityFactor,
    Interpretation,
    PanelRequirements,
    RiskFactor,
    Room,
    RoomType,
    Severity,
)

logger = logging.getLogger(__name__)

LIGHT_POINT_KINDS = ("spots", "ceiling_lights", "outdoor_lights")
OUTLET_POINT_KINDS = ("outlets", "double_outlets")
HEAVY_POINT_KINDS = ("power_16a", "power_32a", "ev_charger")

# Average cable length (metres) per point
METERS_PER_LIGHT_POINT = 8
METERS_PER_OUTLET_POINT = 6
METERS_PER_HEAVY_POINT = 10
METERS_EV_SUPPLY = 15
METERS_PER_32A_POINT = 12
METERS_PER_OUTDOOR_LIGHT = 12
METERS_PER_DATA_OUTLET = 10

DEFAULT_SIZE_M2 = 100


class InterpretationResult(NamedTuple):
    interpretation: Interpretation
    confidence: float
    warnings: list[str]


@dataclass
class _Extraction:
    """Mutable working state for a single ``interpret()`` call."""

    text: str
    rules: InterpreterRules
    current_year: int
    building_type: BuildingType = BuildingType.UNKNOWN
    size_m2: float | None = None
    age_years: int | None = None
    rooms: list[Room] = field(default_factory=list)
    points: dict[str, int] = field(default_factory=dict)
    cables: dict[str, int] = field(default_factory=dict)
    panel: PanelRequirements = field(default_factory=PanelRequirements)
    complexity_factors: list[ComplexityFactor] = field(default_factory=list)
    risk_factors: list[RiskFactor] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _detect_building_type(state: _Extraction) -> None:
    for rule in state.rules.building_types:
        if rule.search(state.text):
            state.building_type = BuildingType(rule.key)
            return


def _detect_size(state: _Extraction) -> None:
    for source in state.rules.size_patterns:
        match = re.search(source, state.text, re.IGNORECASE)
        if not match:
            continue
        try:
            size = float(match.group(1))
        except ValueError:
            size = math.nan
        if not math.isfinite(size) or not 0 < size <= state.rules.max_size_m2:
            state.warnings.append(f"Ignoring implausible building size: {match.group(0)}")
            return
        state.size_m2 = size
        return


def _detect_age(state: _Extraction) -> None:
    year_match = re.search(state.rules.year_pattern, state.text)
    if year_match:
        state.age_years = max(state.current_year - int(year_match.group(1)), 0)
        return

    for rule in state.rules.age_keywords:
        if rule.search(state.text):
            state.age_years = rule.age_years
            return


def _detect_rooms(state: _Extraction) -> None:
    for rule in state.rules.rooms:
        count = rule.count(state.text)
        if count > state.rules.max_rooms_per_type:
            state.warnings.append(
                f"Room count for {rule.key} capped at {state.rules.max_rooms_per_type}"
            )
            count = state.rules.max_rooms_per_type
        for i in range(count):
            name = f"{rule.key}_{i + 1}" if count > 1 else rule.key
            state.rooms.append(Room(name=name, type=RoomType(rule.key)))

    if not state.rooms:
        state.rooms.append(Room(name="main", type=RoomType.OTHER))


def _detect_points(state: _Extraction) -> None:
    for rule in state.rules.points:
        count = rule.count(state.text)
        if count > state.rules.max_points_per_kind:
            state.warnings.append(
                f"Point count for {rule.key} capped at {state.rules.max_points_per_kind}"
            )
            count = state.rules.max_points_per_kind
        if count:
            state.points[rule.key] = state.points.get(rule.key, 0) + count

    # Too few explicit points: add room defaults on top
    if sum(state.points.values()) < state.rules.point_floor:
        for room in state.rooms:
            for kind, value in state.rules.room_defaults(room.type.value).items():
                state.points[kind] = state.points.get(kind, 0) + value


def _estimate_cables(state: _Extraction) -> None:
    points = state.points
    size_factor = (state.size_m2 or DEFAULT_SIZE_M2) / 100

    light_points = sum(points.get(k, 0) for k in LIGHT_POINT_KINDS)
    outlet_points = sum(points.get(k, 0) for k in OUTLET_POINT_KINDS)
    heavy_points = sum(points.get(k, 0) for k in HEAVY_POINT_KINDS)

    state.cables = {
        "nym_1_5mm": round(light_points * METERS_PER_LIGHT_POINT * size_factor),
        "nym_2_5mm": round(outlet_points * METERS_PER_OUTLET_POINT * size_factor),
        "nym_4mm": heavy_points * METERS_PER_HEAVY_POINT,
        "nym_6mm": METERS_EV_SUPPLY if points.get("ev_charger") else 0,
        "nym_10mm": points.get("power_32a", 0) * METERS_PER_32A_POINT,
        "outdoor_cable": points.get("outdoor_lights", 0) * METERS_PER_OUTDOOR_LIGHT,
        "data_cable": points.get("data_outlets", 0) * METERS_PER_DATA_OUTLET,
    }


def _estimate_panel(state: _Extraction) -> None:
    points = state.points
    light_groups = math.ceil((points.get("spots", 0) + points.get("ceiling_lights", 0)) / 8)
    outlet_groups = math.ceil(sum(points.get(k, 0) for k in OUTLET_POINT_KINDS) / 6)
    heavy_groups = sum(points.get(k, 0) for k in HEAVY_POINT_KINDS)
    data_groups = 1 if points.get("data_outlets") else 0

    required_groups = light_groups + outlet_groups + heavy_groups + data_groups + 2  # spares

    amperage = 25
    if points.get("ev_charger"):
        amperage = max(amperage, 32)
    if points.get("power_32a"):
        amperage = max(amperage, 50)
    if required_groups > 12:
        amperage = max(amperage, 40)

    is_old_building = (state.age_years or 0) > 40
    state.panel = PanelRequirements(
        upgrade_needed=required_groups > 10 or is_old_building,
        required_groups=required_groups,
        required_amperage=amperage,
        new_panel_needed=required_groups > 16 or amperage > 40,
    )


def _detect_complexity(state: _Extraction) -> None:
    for rule in state.rules.complexity:
        match = rule.search(state.text)
        if match:
            state.complexity_factors.append(
                ComplexityFactor(
                    code=rule.key,
                    name=rule.name or rule.key.replace("_", " "),
                    category=rule.category,
                    multiplier=rule.multiplier,
                    detected_from=match.group(0),
                )
            )


def _detect_risks(state: _Extraction) -> None:
    for rule in state.rules.risks:
        if rule.search(state.text):
            state.risk_factors.append(
                RiskFactor(
                    code=rule.key,
                    type=rule.type,
                    title=rule.title,
                    description=rule.description,
                    severity=rule.severity,
                )
            )

    codes = {risk.code for risk in state.risk_factors}

    if (state.age_years or 0) > 50 and "old_wiring" not in codes:
        state.risk_factors.append(
            RiskFactor(
                code="old_wiring_inferred",
                type="electrical",
                title="Ældre bygning",
                description="Bygningen er over 50 år gammel. "
                "Eksisterende installation bør gennemgås.",
                severity=Severity.MEDIUM,
            )
        )

    if state.panel.new_panel_needed:
        state.risk_factors.append(
            RiskFactor(
                code="panel_upgrade_required",
                type="electrical",
                title="Ny tavle nødvendig",
                description="Omfanget kræver ny eller udvidet eltavle.",
                severity=Severity.MEDIUM,
            )
        )

    if len(state.text.split()) < state.rules.min_description_words:
        state.risk_factors.append(
            RiskFactor(
                code="minimal_description",
                type="scope",
                title="Begrænset beskrivelse",
                description="Projektbeskrivelsen er kort. "
                "Anbefaler uddybning eller besigtigelse.",
                severity=Severity.MEDIUM,
            )
        )


EXTRACTION_STEPS: tuple[tuple[str, Callable[[_Extraction], None]], ...] = (
    ("building_type", _detect_building_type),
    ("building_size", _detect_size),
    ("building_age", _detect_age),
    ("rooms", _detect_rooms),
    ("electrical_points", _detect_points),
    ("cables", _estimate_cables),
    ("panel", _estimate_panel),
    ("complexity", _detect_complexity),
    ("risks", _detect_risks),
)


def complexity_score(factors: list[ComplexityFactor] | tuple[ComplexityFactor, ...]) -> int:
    """Band the average multiplier into 1-5; no factors gives the neutral 3."""
    if not factors:
        return 3

    average = sum(f.multiplier for f in factors) / len(factors)
    for upper, score in COMPLEXITY_BANDS:
        if average <= upper:
            return score
    return 5


def risk_score(risks: list[RiskFactor] | tuple[RiskFactor, ...]) -> int:
    """Band the average severity weight into 1-5; no risks gives 1."""
    if not risks:
        return 1

    average = sum(SEVERITY_WEIGHTS[r.severity] for r in risks) / len(risks)
    for upper, score in RISK_BANDS:
        if average <= upper:
            return score
    return 5


def _confidence(state: _Extraction) -> float:
    score = 0.5
    if state.building_type is not BuildingType.UNKNOWN:
        score += 0.1
    if state.size_m2:
        score += 0.1
    if len(state.rooms) > 1:
        score += 0.1
    if len(state.points) > 3:
        score += 0.1
    if state.complexity_factors:
        score += 0.05
    if state.risk_factors:
        score += 0.05
    return round(min(score, 0.95), 2)


def interpret(
    description: str | None,
    rules: InterpreterRules | None = None,
    current_year: int | None = None,
) -> InterpretationResult:
    """Interpret a project description.

    Never raises on malformed or empty text: missing facts fall back to
    defaults and are reported as warnings, with a lower confidence.

    Args:
        description: Free-text project description
        rules: Rule tables (process-wide defaults when omitted)
        current_year: Reference year for age calculation (today when omitted)

    Returns:
        InterpretationResult with the interpretation, confidence and warnings
    """
    started = time.perf_counter()
    text = (description or "").strip()
    state = _Extraction(
        text=text,
        rules=rules or get_rules(),
        current_year=current_year or date.today().year,
    )

    if len(text) < 10:
        state.warnings.append("Project description is very short; results may be imprecise")

    for name, handler in EXTRACTION_STEPS:
        handler(state)
        logger.debug(f"Interpreter step '{name}' done")

    if state.building_type is BuildingType.UNKNOWN:
        state.warnings.append("Building type could not be detected; assuming a standard dwelling")
    if not state.size_m2:
        state.warnings.append("Building size not found; using default estimates")

    confidence = _confidence(state)
    interpretation = Interpretation(
        raw_description=description or "",
        building_type=state.building_type,
        building_size_m2=state.size_m2,
        building_age_years=state.age_years,
        rooms=tuple(state.rooms),
        electrical_points=dict(state.points),
        cable_requirements=dict(state.cables),
        panel_requirements=state.panel,
        complexity_factors=tuple(state.complexity_factors),
        complexity_score=complexity_score(state.complexity_factors),
        risk_factors=tuple(state.risk_factors),
        risk_score=risk_score(state.risk_factors),
        confidence=confidence,
        interpretation_time_ms=int((time.perf_counter() - started) * 1000),
    )

    logger.debug(
        f"Interpreted description: type={interpretation.building_type.value}, "
        f"rooms={len(interpretation.rooms)}, points={interpretation.total_points}, "
        f"confidence={confidence}"
    )
    return InterpretationResult(interpretation, confidence, state.warnings)

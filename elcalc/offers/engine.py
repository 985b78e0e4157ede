"""Offer text assembly.

Two phases: filter templates that are active and whose conditions hold, then
score, deduplicate and substitute ``{{variable}}`` tokens. Scoring::

    priority * 10 + scope bonus (component 40, category 30, room_type 20,
    global 10) + 5 per declared condition
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from elcalc.calculation.formatting import format_currency
from elcalc.config import LocaleConfig
from elcalc.models import (
    AssembledOfferTexts,
    AssembledText,
    Calculation,
    GeneratedOfferContent,
    Interpretation,
    OfferTextContext,
    OfferTextTemplate,
    RiskAnalysisResult,
    TemplateConditions,
    TemplateScope,
)

logger = logging.getLogger(__name__)

SCOPE_BONUS = {
    TemplateScope.COMPONENT: 40,
    TemplateScope.CATEGORY: 30,
    TemplateScope.ROOM_TYPE: 20,
    TemplateScope.GLOBAL: 10,
}

# template_key -> AssembledOfferTexts section
SECTION_BY_KEY = {
    "description": "technical_scope",
    "technical_note": "technical_scope",
    "obs_point": "obs_points",
    "warranty": "warranty_notes",
    "warranty_note": "warranty_notes",
    "installation_note": "installation_notes",
    "terms": "terms",
    "exclusion": "exclusions",
    "assumption": "assumptions",
}

VARIABLE_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

VARIABLE_ALIASES = {
    "antal_rum": "room_count",
    "antal_komponenter": "component_count",
    "samlet_pris": "total_price",
    "bygningstype": "building_type",
    "rumtyper": "room_types",
}


def evaluate_conditions(conditions: TemplateConditions | None, context: OfferTextContext) -> bool:
    """All declared conditions must hold; absent ones always do."""
    if conditions is None:
        return True

    if conditions.min_quantity is not None and context.component_count < conditions.min_quantity:
        return False
    if conditions.max_quantity is not None and context.component_count > conditions.max_quantity:
        return False
    if conditions.building_profiles:
        if context.building_profile not in conditions.building_profiles:
            return False
    if conditions.room_types:
        if not set(context.room_types) & set(conditions.room_types):
            return False
    if conditions.component_codes:
        if not set(context.component_codes) & set(conditions.component_codes):
            return False
    return True


def relevance_score(template: OfferTextTemplate) -> int:
    score = template.priority * 10 + SCOPE_BONUS[template.scope_type]
    if template.conditions is not None:
        score += 5 * template.conditions.declared_count()
    return score


def _variables(context: OfferTextContext, locale: LocaleConfig | None) -> dict[str, str]:
    values = {
        "room_count": str(context.room_count),
        "component_count": str(context.component_count),
    }
    if context.total_price is not None:
        values["total_price"] = format_currency(context.total_price, locale)
    if context.building_type:
        values["building_type"] = context.building_type
    if context.room_types:
        values["room_types"] = ", ".join(context.room_types)
    return values


def substitute_variables(
    text: str, context: OfferTextContext, locale: LocaleConfig | None = None
) -> str:
    """Replace known ``{{name}}`` tokens; unknown or unset tokens stay as written."""
    values = _variables(context, locale)

    def replace(match: re.Match[str]) -> str:
        name = VARIABLE_ALIASES.get(match.group(1), match.group(1))
        return values.get(name, match.group(0))

    return VARIABLE_PATTERN.sub(replace, text)


def assemble(
    templates: Iterable[OfferTextTemplate],
    context: OfferTextContext,
    locale: LocaleConfig | None = None,
) -> AssembledOfferTexts:
    """Assemble offer texts from ``templates`` for ``context``.

    Deduplication key is ``(template_key, scope_id or 'global')``. Required
    templates are always kept; an optional template is kept only when nothing
    with a higher score already claimed its key.
    """
    candidates = [t for t in templates if t.is_active and evaluate_conditions(t.conditions, context)]
    scored = sorted(
        ((relevance_score(t), t) for t in candidates),
        key=lambda pair: pair[0],
        reverse=True,
    )

    selected: list[tuple[int, OfferTextTemplate]] = []
    seen_keys: set[tuple[str, str]] = set()
    for score, template in scored:
        key = (template.template_key, template.scope_id or "global")
        if template.is_required or key not in seen_keys:
            selected.append((score, template))
        seen_keys.add(key)

    result = AssembledOfferTexts()
    for score, template in selected:
        content = substitute_variables(template.content, context, locale)
        result.all_texts.append(
            AssembledText(
                key=template.template_key,
                title=template.title,
                content=content,
                scope=template.scope_type,
                source_id=template.id,
                score=score,
            )
        )
        section = SECTION_BY_KEY.get(template.template_key)
        if section is None:
            logger.debug(f"Template key '{template.template_key}' has no offer section")
            continue
        getattr(result, section).append(content)

    logger.debug(
        f"Assembled {len(result.all_texts)} offer texts from {len(candidates)} candidates"
    )
    return result


def generate_content(
    templates: Iterable[OfferTextTemplate],
    context: OfferTextContext,
    risk_result: RiskAnalysisResult | None = None,
    locale: LocaleConfig | None = None,
) -> GeneratedOfferContent:
    """Offer content sections, with risk OBS points appended after template ones."""
    assembled = assemble(templates, context, locale)

    obs = list(assembled.obs_points)
    if risk_result is not None:
        for point in risk_result.obs_points:
            if point not in obs:
                obs.append(point)

    return GeneratedOfferContent(
        technical_scope=assembled.technical_scope,
        exclusions=assembled.exclusions,
        assumptions=assembled.assumptions,
        obs_points=obs,
        warranty_notes=assembled.warranty_notes,
    )


def _by_priority(templates: Iterable[OfferTextTemplate]) -> list[OfferTextTemplate]:
    return sorted(templates, key=lambda t: t.priority, reverse=True)


def default_templates(templates: Iterable[OfferTextTemplate]) -> list[OfferTextTemplate]:
    """Active global templates that are required or have priority 5 or more."""
    return _by_priority(
        t
        for t in templates
        if t.is_active
        and t.scope_type is TemplateScope.GLOBAL
        and (t.is_required or t.priority >= 5)
    )


def component_templates(
    templates: Iterable[OfferTextTemplate], component_codes: Sequence[str]
) -> list[OfferTextTemplate]:
    return _by_priority(
        t
        for t in templates
        if t.is_active
        and t.scope_type is TemplateScope.COMPONENT
        and t.scope_id
        and t.scope_id in component_codes
    )


def room_templates(
    templates: Iterable[OfferTextTemplate], room_types: Sequence[str]
) -> list[OfferTextTemplate]:
    return _by_priority(
        t
        for t in templates
        if t.is_active
        and t.scope_type is TemplateScope.ROOM_TYPE
        and t.scope_id
        and t.scope_id in room_types
    )


def merge_offer_texts(
    existing: GeneratedOfferContent | None, generated: GeneratedOfferContent
) -> GeneratedOfferContent:
    """Keep user-edited sections; fill empty ones from ``generated``.

    Optional upgrades are always taken from ``existing``.
    """
    if existing is None:
        return generated

    return GeneratedOfferContent(
        technical_scope=existing.technical_scope or generated.technical_scope,
        exclusions=existing.exclusions or generated.exclusions,
        assumptions=existing.assumptions or generated.assumptions,
        obs_points=existing.obs_points or generated.obs_points,
        warranty_notes=existing.warranty_notes or generated.warranty_notes,
        optional_upgrades=existing.optional_upgrades,
    )


def build_offer_context(
    interpretation: Interpretation,
    calculation: Calculation | None = None,
    building_profile: str | None = None,
) -> OfferTextContext:
    """Offer text context from pipeline outputs (same counting as the risk context)."""
    room_types = tuple(interpretation.room_types)
    component_codes: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    component_count = 0
    total_price = None

    if calculation is not None:
        component_codes = tuple(calculation.component_codes)
        categories = tuple(calculation.categories)
        component_count = int(sum(c.quantity for c in calculation.components))
        total_price = calculation.price.total_price

    return OfferTextContext(
        component_codes=component_codes,
        categories=categories,
        room_types=room_types,
        room_count=sum(1 for room in interpretation.rooms if room.type.value != "other"),
        building_profile=building_profile,
        building_age_years=interpretation.building_age_years,
        building_type=interpretation.building_type.value,
        total_price=total_price,
        component_count=component_count,
        has_bathroom_work="bathroom" in room_types,
        has_outdoor_work="outdoor" in room_types,
    )

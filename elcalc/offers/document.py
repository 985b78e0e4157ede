"""Plain-text offer document.

Six fixed sections (work description, scope, materials, timeline,
reservations, terms) are rendered from the interpretation, the calculation
and the risk analysis, then framed by a header with the price block and a
signature footer.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import date

from elcalc.calculation.formatting import estimate_workdays, format_currency, format_hours
from elcalc.config import LocaleConfig
from elcalc.models import (
    BuildingType,
    Calculation,
    CalculationComponent,
    CalculationMaterial,
    Interpretation,
    OfferDocument,
    OfferSections,
    RiskAnalysisResult,
)
from elcalc.offers.price_explanation import INSTALMENT_THRESHOLD, format_quantity

logger = logging.getLogger(__name__)

BUILDING_NAMES = {
    BuildingType.HOUSE: "villa/parcelhus",
    BuildingType.APARTMENT: "lejlighed",
    BuildingType.COMMERCIAL: "erhvervslokale",
    BuildingType.INDUSTRIAL: "industribygning",
    BuildingType.UNKNOWN: "bygning",
}

CATEGORY_NAMES = {
    "outlet": "Stikkontakter",
    "switch": "Afbrydere og dæmpere",
    "lighting": "Belysning",
    "power": "Kraftinstallation",
    "data": "Data og TV",
    "panel": "Tavlearbejde",
    "other": "Øvrige",
}

GENERAL_RESERVATIONS = (
    "Tilbuddet forudsætter normal adgang til arbejdsstedet.",
    "Skjulte forhold, der kræver ekstra arbejde, faktureres særskilt.",
    "Tilbuddet omfatter ikke maler- eller tømrerarbejde.",
    "El-attest (lovpligtig) udstedes ved projektets afslutning.",
)

INSPECTION_NOTE = "BEMÆRK: Besigtigelse anbefales før endelig ordrebekræftelse."

CABLE_WORDS = ("kabel", "ledning")
COMPONENT_WORDS = ("kontakt", "afbryder", "spot")

RULE_WIDTH = 50


def _heading(title: str) -> list[str]:
    return [title, "-" * len(title)]


def building_description(interpretation: Interpretation) -> str:
    text = BUILDING_NAMES.get(interpretation.building_type, "bygning")
    if interpretation.building_size_m2:
        text += f" på {format_quantity(interpretation.building_size_m2)} m²"
    return text


def group_by_category(
    components: Sequence[CalculationComponent],
) -> dict[str, list[CalculationComponent]]:
    """Components per category, in first-seen order."""
    grouped: dict[str, list[CalculationComponent]] = {}
    for component in components:
        grouped.setdefault(component.category or "other", []).append(component)
    return grouped


def _category_name(category: str) -> str:
    return CATEGORY_NAMES.get(category, category)


def _material_line(material: CalculationMaterial, bullet: str) -> str:
    return f"{bullet}{material.name} - {format_quantity(material.quantity)} {material.unit}"


def _has_word(material: CalculationMaterial, words: Sequence[str]) -> bool:
    name = material.name.lower()
    return any(word in name for word in words)


def work_description(interpretation: Interpretation, calculation: Calculation) -> str:
    lines = [f"El-installation i {building_description(interpretation)}.", ""]
    lines += ["Arbejdet omfatter:", ""]

    for category, components in group_by_category(calculation.components).items():
        items = ", ".join(
            f"{format_quantity(c.quantity)} stk. {c.name.lower()}" for c in components
        )
        lines.append(f"• {_category_name(category)}: {items}")

    if any(c.category == "panel" for c in calculation.components):
        lines += ["", "Tavlearbejde indgår i projektet."]
    return "\n".join(lines)


def scope_description(calculation: Calculation) -> str:
    total_points = sum(c.quantity for c in calculation.components)
    lines = _heading("OMFANG")
    lines += [f"Samlet antal elpunkter: {format_quantity(total_points)} stk.", ""]
    lines.append("Specificeret:")

    for category, components in group_by_category(calculation.components).items():
        lines += ["", f"{_category_name(category)}:"]
        lines += [
            f"  - {c.name}: {format_quantity(c.quantity)} {c.unit}" for c in components
        ]

    cables = [m for m in calculation.materials if _has_word(m, ("kabel",))]
    if cables:
        lines += ["", "Kabelarbejde:"]
        lines += [
            f"  - {m.name}: {format_quantity(m.quantity)} {m.unit}" for m in cables
        ]
    return "\n".join(lines)


def materials_description(calculation: Calculation) -> str:
    cables = [m for m in calculation.materials if _has_word(m, CABLE_WORDS)]
    components = [
        m
        for m in calculation.materials
        if m not in cables and _has_word(m, COMPONENT_WORDS)
    ]
    other = [m for m in calculation.materials if m not in cables and m not in components]

    lines = _heading("MATERIALER")
    lines += ["Følgende materialer er inkluderet i tilbuddet:", ""]

    for title, group in (
        ("Kabler og ledninger:", cables),
        ("Komponenter:", components),
        ("Øvrige materialer:", other),
    ):
        if group:
            lines.append(title)
            lines += [_material_line(m, "  • ") for m in group]
            lines.append("")

    lines += [
        "Alle materialer er af professionel kvalitet.",
        "Materialespecifikationer kan ændres efter aftale.",
    ]
    return "\n".join(lines)


def timeline_description(calculation: Calculation, hours_per_day: float = 7.5) -> str:
    hours = calculation.time.total_hours
    workdays = estimate_workdays(hours, hours_per_day)

    lines = [*_heading("TIDSPLAN"), ""]
    lines.append(f"Estimeret arbejdstid: {format_hours(hours)}")
    lines += [f"Forventet varighed: {workdays} arbejdsdag{'e' if workdays > 1 else ''}", ""]

    if calculation.time.breakdown:
        lines.append("Fordeling:")
        lines += [
            f"  • {item.description}: {format_hours(item.hours)}"
            for item in calculation.time.breakdown
        ]
        lines.append("")

    lines += [
        "Tidsplanen er vejledende og afhænger af:",
        "  • Adgangsforhold på stedet",
        "  • Evt. koordinering med andre håndværkere",
        "  • Vejrforhold ved udendørs arbejde",
        "",
        "Præcis startdato aftales særskilt.",
    ]
    return "\n".join(lines)


def reservations(risk_result: RiskAnalysisResult) -> str:
    lines = [*_heading("FORBEHOLD"), ""]

    specific = risk_result.offer_reservations
    if specific:
        lines += ["Særlige forbehold for dette projekt:", ""]
        lines += [f"• {text}" for text in specific]
        lines.append("")

    lines += ["Generelle forbehold:", ""]
    lines += [f"• {text}" for text in GENERAL_RESERVATIONS]

    if risk_result.requires_inspection:
        lines += ["", INSPECTION_NOTE]
    return "\n".join(lines)


def terms(calculation: Calculation) -> str:
    lines = [*_heading("BETINGELSER"), ""]
    lines += ["Betaling:", "  • Betaling: 8 dage netto fra fakturadato"]
    if calculation.price.total_price > INSTALMENT_THRESHOLD:
        lines.append(
            "  • Ved ordrer over 50.000 kr: 30% ved ordrebekræftelse, rest ved aflevering"
        )

    lines += [
        "",
        "Tilbuddets gyldighed:",
        "  • Tilbuddet er gældende i 30 dage fra dato",
        "  • Priserne er ekskl. moms",
        "",
        "Garanti:",
        "  • 2 års garanti på udført arbejde",
        "  • Producentgaranti på materialer iht. producentens vilkår",
        "",
        "Ansvar og forsikring:",
        "  • Entreprisen udføres iht. gældende lovgivning",
        "  • Autoriseret elinstallatørvirksomhed",
        "  • Erhvervsansvarsforsikring tegnet",
    ]
    return "\n".join(lines)


def _full_text(
    sections: OfferSections,
    calculation: Calculation,
    customer_name: str | None,
    project_address: str | None,
    offer_date: date,
    company_name: str,
    locale: LocaleConfig | None,
) -> str:
    price = calculation.price
    double_rule = "=" * RULE_WIDTH
    rule = "-" * RULE_WIDTH

    lines = [double_rule, "TILBUD - EL-INSTALLATION", double_rule, ""]
    if customer_name:
        lines.append(f"Til: {customer_name}")
    if project_address:
        lines.append(f"Adresse: {project_address}")
    lines += [f"Dato: {offer_date.strftime('%d.%m.%Y')}", ""]

    lines += [rule, "TILBUDSPRIS", rule, ""]
    lines.append(f"Materialer:     {format_currency(price.material_cost, locale)}")
    lines.append(f"Arbejdsløn:     {format_currency(price.labor_cost, locale)}")
    lines.append(f"                {'-' * 20}")
    lines += [f"Subtotal:       {format_currency(price.subtotal, locale)}", ""]
    lines.append(f"TOTAL PRIS:     {format_currency(price.total_price, locale)} ekskl. moms")
    if price.final_price is not None and price.final_price != price.total_price:
        lines.append(
            f"Efter rabat ({price.discount_percentage:g}%): "
            f"{format_currency(price.final_price, locale)} ekskl. moms"
        )
    lines.append("")

    for body in (
        sections.work_description,
        sections.scope_description,
        sections.materials_description,
        sections.timeline_description,
        sections.reservations,
        sections.terms,
    ):
        lines += [rule, body, ""]

    lines += [double_rule, "Med venlig hilsen", "", company_name]
    if company_name != "Autoriseret elinstallatør":
        lines.append("Autoriseret elinstallatør")
    lines.append(double_rule)
    return "\n".join(lines)


def generate_offer_document(
    interpretation: Interpretation,
    calculation: Calculation,
    risk_result: RiskAnalysisResult,
    customer_name: str | None = None,
    project_address: str | None = None,
    offer_date: date | None = None,
    company_name: str = "Autoriseret elinstallatør",
    hours_per_day: float = 7.5,
    locale: LocaleConfig | None = None,
) -> OfferDocument:
    """Render the complete offer for a calculation.

    Args:
        interpretation: Interpreted project description
        calculation: Priced calculation
        risk_result: Risk analysis; supplies project reservations and the
            inspection note
        customer_name: Printed as "Til:" when given
        project_address: Printed as "Adresse:" when given
        offer_date: Offer date (today when omitted)
        company_name: Signature in the footer
        hours_per_day: Working hours per day for the timeline
        locale: Currency formatting (defaults when omitted)

    Returns:
        OfferDocument with the sections and the full text
    """
    sections = OfferSections(
        work_description=work_description(interpretation, calculation),
        scope_description=scope_description(calculation),
        materials_description=materials_description(calculation),
        timeline_description=timeline_description(calculation, hours_per_day),
        reservations=reservations(risk_result),
        terms=terms(calculation),
    )
    full_text = _full_text(
        sections,
        calculation,
        customer_name,
        project_address,
        offer_date or date.today(),
        company_name,
        locale,
    )
    logger.debug(f"Generated offer document for calculation {calculation.id}")
    return OfferDocument(calculation_id=calculation.id, sections=sections, full_text=full_text)


_LABEL_LINE = re.compile(r"^(.*):$", re.MULTILINE)
_BULLET_LINE = re.compile(r"^  • ", re.MULTILINE)
_DASH_RULE = re.compile(r"^-{2,}$", re.MULTILINE)
_EQUALS_RULE = re.compile(r"^={2,}$", re.MULTILINE)


def format_section_markdown(section: str) -> str:
    """Markdown rendering of a plain-text section for display."""
    section = _LABEL_LINE.sub(r"**\1:**", section)
    section = _BULLET_LINE.sub("- ", section)
    section = _DASH_RULE.sub("---", section)
    return _EQUALS_RULE.sub("===", section)

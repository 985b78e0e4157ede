"""Customer-facing price explanation.

Splits an offer price into labour, materials and the remainder (risk buffer
and margin, shown as "Administration & garanti"), and phrases the split in
Danish for the offer letter. All shares are relative to the price the
customer pays, so a discounted ``final_price`` wins over ``total_price``.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from elcalc.calculation.formatting import format_currency
from elcalc.config import LocaleConfig
from elcalc.models import (
    BuildingType,
    Calculation,
    Interpretation,
    PriceBreakdownCategory,
    PriceExplanation,
    RoomType,
)

logger = logging.getLogger(__name__)

PROJECT_TYPE_LABELS = {
    "renovation": "renovering",
    "new_build": "nybyggeri",
    "extension": "tilbygning",
    "maintenance": "vedligeholdelse",
}

ROOM_NAMES = {
    RoomType.KITCHEN: "køkken",
    RoomType.LIVING: "stue",
    RoomType.BEDROOM: "soveværelse",
    RoomType.BATHROOM: "badeværelse",
    RoomType.OFFICE: "kontor",
    RoomType.UTILITY: "bryggers",
    RoomType.GARAGE: "garage",
    RoomType.OUTDOOR: "udendørs områder",
}

STANDARD_INCLUSIONS = (
    "Alle nødvendige materialer",
    "Professionel installation",
    "Oprydning efter arbejdet",
    "Garanti på udført arbejde",
)

STANDARD_EXCLUSIONS = (
    "Evt. nødvendig forstærkning af eksisterende installation",
    "Udbedring af skjulte fejl i eksisterende el",
    "Malearbejde efter installationen",
    "Tilladelser og gebyrer (hvis påkrævet)",
)

QUALITY_GUARANTEES = (
    "2 års garanti på alt udført arbejde",
    "Alle materialer har fabriksgaranti",
    "Autoriseret el-installatør med lovpligtig ansvarsforsikring",
    "Elinstallationsrapport udleveres ved afslutning",
)

# Above this price the customer pays in three instalments
INSTALMENT_THRESHOLD = Decimal("50000")

# Overhead is only broken out when it exceeds labour + materials by 1 %
OVERHEAD_TOLERANCE = Decimal("1.01")


def customer_price(calculation: Calculation) -> Decimal:
    """Price the customer pays: the discounted price when one is set."""
    price = calculation.price
    return price.final_price if price.final_price is not None else price.total_price


def share(amount: Decimal, total: Decimal) -> float:
    """Percentage of ``total``; 0 when there is nothing to divide."""
    if total <= 0:
        return 0.0
    return float(amount / total * 100)


def format_quantity(quantity: float) -> str:
    if float(quantity).is_integer():
        return str(int(quantity))
    return f"{quantity:g}".replace(".", ",")


def _summary(
    calculation: Calculation,
    interpretation: Interpretation | None,
    project_type: str | None,
) -> str:
    total_items = sum(c.quantity for c in calculation.components)
    label = PROJECT_TYPE_LABELS.get(project_type or "", "el-installation")

    summary = f"Tilbuddet dækker {label}"
    if interpretation is not None:
        rooms = interpretation.rooms
        if len(rooms) == 1 and rooms[0].type in ROOM_NAMES:
            summary += f" i {ROOM_NAMES[rooms[0].type]}"
        elif len(rooms) > 1:
            summary += f" i {len(rooms)} rum"

    return (
        f"{summary} med {format_quantity(total_items)} enheder "
        f"fordelt på {len(calculation.components)} typer arbejde."
    )


def _labor_explanation(calculation: Calculation, locale: LocaleConfig | None) -> str:
    labor_cost = calculation.price.labor_cost
    percent = share(labor_cost, customer_price(calculation))

    text = (
        f"Arbejdsløn udgør {format_currency(labor_cost, locale)} "
        f"({round(percent)}% af totalprisen). "
    )
    if percent > 60:
        return text + (
            "Denne type arbejde er primært arbejdstid, "
            "da installationen kræver faglig ekspertise."
        )
    if percent > 40:
        return text + "Prisen er fordelt mellem materialer og kvalificeret installation."
    return text + "Materialerne udgør størstedelen af prisen, mens installationen er effektiv."


def _material_explanation(calculation: Calculation, locale: LocaleConfig | None) -> str:
    material_cost = calculation.price.material_cost
    percent = share(material_cost, customer_price(calculation))
    return (
        f"Materialer udgør {format_currency(material_cost, locale)} "
        f"({round(percent)}% af totalprisen). "
        "Alle materialer er af professionel kvalitet og leveres af anerkendte leverandører."
    )


def _value_propositions(
    calculation: Calculation, interpretation: Interpretation | None
) -> tuple[str, ...]:
    propositions = [
        "Autoriseret el-installatør med fuldt ansvar",
        "Udvidet garanti på udført arbejde",
        "Professionelle materialer fra anerkendte leverandører",
    ]
    if interpretation is not None and interpretation.building_type in (
        BuildingType.HOUSE,
        BuildingType.APARTMENT,
    ):
        propositions.append("Minimal gene i hjemmet - vi rydder op efter os")
    if len(calculation.components) > 5:
        propositions.append("Samlet pris for hele projektet - ingen skjulte omkostninger")
    return tuple(propositions)


def _whats_included(calculation: Calculation) -> tuple[str, ...]:
    included = [
        f"{format_quantity(c.quantity)}x {c.name}" if c.quantity > 1 else c.name
        for c in calculation.components
    ]
    return (*included, *STANDARD_INCLUSIONS)


def _whats_not_included(interpretation: Interpretation | None) -> tuple[str, ...]:
    if interpretation is not None and interpretation.building_type is BuildingType.APARTMENT:
        return (*STANDARD_EXCLUSIONS, "Arbejde på fælles el-tavle (koordineres separat)")
    return STANDARD_EXCLUSIONS


def payment_terms(total: Decimal) -> str:
    if total > INSTALMENT_THRESHOLD:
        return (
            "Betaling: 30% ved accept, 40% ved påbegyndelse, 30% ved afslutning. "
            "Faktura fremsendes med 8 dages betalingsfrist."
        )
    return "Betaling: Faktura fremsendes ved afslutning af arbejdet med 8 dages betalingsfrist."


def price_breakdown(calculation: Calculation) -> tuple[PriceBreakdownCategory, ...]:
    """Labour and materials, plus overhead when it is more than rounding noise."""
    price = calculation.price
    total = customer_price(calculation)

    categories = [
        PriceBreakdownCategory(
            name="Arbejdsløn",
            amount=price.labor_cost,
            percentage=share(price.labor_cost, total),
            description="Installation og montering af autoriseret elektriker",
        ),
        PriceBreakdownCategory(
            name="Materialer",
            amount=price.material_cost,
            percentage=share(price.material_cost, total),
            description="Kvalitetskomponenter fra anerkendte leverandører",
        ),
    ]

    direct = price.labor_cost + price.material_cost
    if total > direct * OVERHEAD_TOLERANCE:
        overhead = total - direct
        categories.append(
            PriceBreakdownCategory(
                name="Administration & garanti",
                amount=overhead,
                percentage=share(overhead, total),
                description="Inkluderer garanti, forsikring og projektkoordinering",
            )
        )
    return tuple(categories)


def explain_price(
    calculation: Calculation,
    interpretation: Interpretation | None = None,
    project_type: str | None = None,
    locale: LocaleConfig | None = None,
) -> PriceExplanation:
    """Build the customer-facing price explanation for a calculation.

    Args:
        calculation: Priced calculation
        interpretation: Source interpretation, for rooms and building type
        project_type: renovation, new_build, extension or maintenance
        locale: Currency formatting (defaults when omitted)

    Returns:
        PriceExplanation with text sections and the category breakdown
    """
    explanation = PriceExplanation(
        summary=_summary(calculation, interpretation, project_type),
        labor_explanation=_labor_explanation(calculation, locale),
        material_explanation=_material_explanation(calculation, locale),
        value_propositions=_value_propositions(calculation, interpretation),
        whats_included=_whats_included(calculation),
        whats_not_included=_whats_not_included(interpretation),
        quality_guarantees=QUALITY_GUARANTEES,
        payment_terms=payment_terms(customer_price(calculation)),
        categories=price_breakdown(calculation),
        labor_hours=calculation.time.total_hours,
        material_items=sum(c.quantity for c in calculation.components),
    )
    logger.debug(
        f"Explained price {customer_price(calculation)} "
        f"in {len(explanation.categories)} categories"
    )
    return explanation


def simple_summary(calculation: Calculation, locale: LocaleConfig | None = None) -> str:
    """One paragraph for the top of the offer."""
    total = customer_price(calculation)
    labor_percent = round(share(calculation.price.labor_cost, total))
    return (
        f"Den samlede pris på {format_currency(total, locale)} inkluderer alt: "
        f"materialer ({100 - labor_percent}%) og professionel installation ({labor_percent}%).\n"
        "Arbejdet udføres af autoriseret el-installatør med fuld garanti.\n"
        "Alle materialer er professionel kvalitet fra anerkendte leverandører."
    )


def bullet_summary(calculation: Calculation, locale: LocaleConfig | None = None) -> list[str]:
    total = customer_price(calculation)
    labor_percent = round(share(calculation.price.labor_cost, total))
    total_items = sum(c.quantity for c in calculation.components)
    return [
        f"✓ Samlet pris: {format_currency(total, locale)} ekskl. moms",
        f"✓ {format_quantity(total_items)} enheder fordelt på "
        f"{len(calculation.components)} typer installation",
        f"✓ Materialer: {format_currency(calculation.price.material_cost, locale)} "
        f"({100 - labor_percent}%)",
        f"✓ Installation: {format_currency(calculation.price.labor_cost, locale)} "
        f"({labor_percent}%)",
        "✓ Alt arbejde udføres af autoriseret el-installatør",
        "✓ Inkl. garanti og professionelle materialer",
    ]

"""Unit tests for the price explanation and the plain-text offer document."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from elcalc.models import (
    BuildingType,
    Calculation,
    PriceCalculation,
    RiskAnalysisResult,
    RiskContext,
    Room,
    RoomType,
    TimeBreakdown,
    TimeCalculation,
)
from elcalc.offers import (
    bullet_summary,
    explain_price,
    format_section_markdown,
    generate_offer_document,
    simple_summary,
)
from elcalc.offers.document import (
    materials_description,
    reservations,
    scope_description,
    terms,
    timeline_description,
    work_description,
)
from elcalc.offers.price_explanation import customer_price, format_quantity, payment_terms
from elcalc.risk import analyze


def _price(
    material: str = "2000.00",
    labor: str = "3000.00",
    total: str = "6300.00",
    final: str | None = None,
) -> PriceCalculation:
    subtotal = Decimal(material) + Decimal(labor)
    return PriceCalculation(
        material_cost=Decimal(material),
        labor_cost=Decimal(labor),
        subtotal=subtotal,
        risk_buffer_percentage=5.0,
        risk_buffer_amount=(subtotal * Decimal("0.05")).quantize(Decimal("0.01")),
        margin_percentage=20.0,
        margin_amount=Decimal(total) - subtotal * Decimal("1.05"),
        total_price=Decimal(total),
        hourly_rate=450.0,
        discount_percentage=10.0 if final else 0.0,
        final_price=Decimal(final) if final else None,
    )


@pytest.fixture
def calculation(sample_components, sample_materials) -> Calculation:
    return Calculation(
        components=tuple(sample_components),
        materials=tuple(sample_materials),
        time=TimeCalculation(
            base_hours=6.0,
            total_hours=6.5,
            breakdown=(
                TimeBreakdown(category="outlet", hours=4.0, description="Stikkontakter"),
                TimeBreakdown(category="lighting", hours=2.5, description="Belysning"),
            ),
        ),
        price=_price(),
    )


@pytest.fixture
def old_house_risks() -> RiskAnalysisResult:
    return analyze(RiskContext(building_age_years=65, room_count=2))


class TestPriceExplanation:
    def test_sections(self, calculation, villa_interpretation):
        explanation = explain_price(calculation, villa_interpretation)

        assert explanation.summary == (
            "Tilbuddet dækker el-installation i 3 rum med 16 enheder fordelt på 2 typer arbejde."
        )
        assert explanation.labor_explanation == (
            "Arbejdsløn udgør 3.000 kr. (48% af totalprisen). "
            "Prisen er fordelt mellem materialer og kvalificeret installation."
        )
        assert explanation.material_explanation.startswith(
            "Materialer udgør 2.000 kr. (32% af totalprisen)."
        )
        assert explanation.whats_included[:2] == ("10x Stikkontakt enkelt", "6x LED Spot indbygning")
        assert "Oprydning efter arbejdet" in explanation.whats_included
        assert "Minimal gene i hjemmet - vi rydder op efter os" in explanation.value_propositions
        assert explanation.labor_hours == 6.5
        assert explanation.material_items == 16

    def test_breakdown_shows_overhead(self, calculation):
        categories = explain_price(calculation).categories

        assert [c.name for c in categories] == [
            "Arbejdsløn",
            "Materialer",
            "Administration & garanti",
        ]
        assert categories[2].amount == Decimal("1300.00")
        assert sum(c.percentage for c in categories) == pytest.approx(100)

    def test_no_overhead_within_rounding(self, calculation):
        flat = calculation.model_copy(update={"price": _price(total="5040.00")})

        assert [c.name for c in explain_price(flat).categories] == ["Arbejdsløn", "Materialer"]

    def test_zero_price_does_not_divide(self, calculation):
        free = calculation.model_copy(update={"price": _price("0", "0", "0")})

        explanation = explain_price(free)

        assert all(c.percentage == 0 for c in explanation.categories)
        assert "(0% af totalprisen)" in explanation.labor_explanation
        assert "installation (0%)" in simple_summary(free)

    @pytest.mark.parametrize(
        "labor,expected",
        [
            ("4000.00", "primært arbejdstid"),
            ("3000.00", "fordelt mellem materialer"),
            ("1000.00", "Materialerne udgør størstedelen"),
        ],
    )
    def test_labor_share_wording(self, calculation, labor, expected):
        priced = calculation.model_copy(update={"price": _price(labor=labor)})

        assert expected in explain_price(priced).labor_explanation

    def test_single_room_and_project_type(self, calculation, villa_interpretation):
        kitchen_only = villa_interpretation.model_copy(
            update={"rooms": (Room(name="kitchen", type=RoomType.KITCHEN),)}
        )

        summary = explain_price(calculation, kitchen_only, project_type="renovation").summary

        assert summary.startswith("Tilbuddet dækker renovering i køkken med")

    def test_apartment_exclusion(self, calculation, villa_interpretation):
        apartment = villa_interpretation.model_copy(
            update={"building_type": BuildingType.APARTMENT}
        )

        excluded = explain_price(calculation, apartment).whats_not_included

        assert excluded[-1] == "Arbejde på fælles el-tavle (koordineres separat)"

    def test_payment_terms(self):
        assert payment_terms(Decimal("50000")).startswith("Betaling: Faktura fremsendes")
        assert payment_terms(Decimal("50000.01")).startswith("Betaling: 30% ved accept")

    def test_discount_uses_final_price(self, calculation):
        discounted = calculation.model_copy(update={"price": _price(final="5670.00")})

        assert customer_price(discounted) == Decimal("5670.00")
        assert bullet_summary(discounted)[0] == "✓ Samlet pris: 5.670 kr. ekskl. moms"

    def test_simple_and_bullet_summaries(self, calculation):
        assert simple_summary(calculation).splitlines()[0] == (
            "Den samlede pris på 6.300 kr. inkluderer alt: "
            "materialer (52%) og professionel installation (48%)."
        )
        bullets = bullet_summary(calculation)
        assert bullets[1] == "✓ 16 enheder fordelt på 2 typer installation"
        assert bullets[3] == "✓ Installation: 3.000 kr. (48%)"
        assert len(bullets) == 6

    @pytest.mark.parametrize("quantity,expected", [(16.0, "16"), (2.5, "2,5"), (0, "0")])
    def test_format_quantity(self, quantity, expected):
        assert format_quantity(quantity) == expected


class TestOfferSections:
    def test_work_description(self, calculation, villa_interpretation):
        lines = work_description(villa_interpretation, calculation).splitlines()

        assert lines[0] == "El-installation i villa/parcelhus på 140 m²."
        assert "• Stikkontakter: 10 stk. stikkontakt enkelt" in lines
        assert "• Belysning: 6 stk. led spot indbygning" in lines
        assert "Tavlearbejde indgår i projektet." not in lines

    def test_scope_lists_cable_work(self, calculation):
        lines = scope_description(calculation).splitlines()

        assert lines[:3] == ["OMFANG", "------", "Samlet antal elpunkter: 16 stk."]
        assert "  - Stikkontakt enkelt: 10 stk" in lines
        assert lines[-2:] == ["Kabelarbejde:", "  - Installationskabel NYM-J 3x2,5mm²: 60 m"]

    def test_materials_grouped(self, calculation):
        lines = materials_description(calculation).splitlines()

        assert lines.index("Kabler og ledninger:") < lines.index("Komponenter:")
        assert "  • Stikkontakt komplet (FUGA) - 10 stk" in lines
        assert "Øvrige materialer:" not in lines

    def test_timeline(self, calculation):
        lines = timeline_description(calculation).splitlines()

        assert "Estimeret arbejdstid: 6t 30min" in lines
        assert "Forventet varighed: 1 arbejdsdag" in lines
        assert "  • Stikkontakter: 4 timer" in lines

    def test_timeline_plural_workdays(self, calculation):
        lines = timeline_description(calculation, hours_per_day=3).splitlines()

        assert "Forventet varighed: 3 arbejdsdage" in lines

    def test_reservations_from_risks(self, old_house_risks):
        text = reservations(old_house_risks)

        assert "Særlige forbehold for dette projekt:" in text
        assert "• Findes stofledninger" in text
        assert text.endswith("BEMÆRK: Besigtigelse anbefales før endelig ordrebekræftelse.")

    def test_reservations_without_risks(self):
        text = reservations(RiskAnalysisResult())

        assert "Særlige forbehold" not in text
        assert text.endswith("• El-attest (lovpligtig) udstedes ved projektets afslutning.")

    def test_terms_instalments_above_threshold(self, calculation):
        large = calculation.model_copy(update={"price": _price(total="60000.00")})

        assert "Ved ordrer over 50.000 kr" not in terms(calculation)
        assert "Ved ordrer over 50.000 kr" in terms(large)


class TestOfferDocument:
    def test_full_text(self, calculation, villa_interpretation, old_house_risks):
        document = generate_offer_document(
            villa_interpretation,
            calculation,
            old_house_risks,
            customer_name="Familien Holm",
            project_address="Birkevej 4, 8600 Silkeborg",
            offer_date=date(2025, 3, 7),
            company_name="Nordlys El ApS",
        )
        lines = document.full_text.splitlines()

        assert document.calculation_id == calculation.id
        assert lines[1] == "TILBUD - EL-INSTALLATION"
        assert "Til: Familien Holm" in lines
        assert "Adresse: Birkevej 4, 8600 Silkeborg" in lines
        assert "Dato: 07.03.2025" in lines
        assert "TOTAL PRIS:     6.300 kr. ekskl. moms" in lines
        assert lines[-3:] == ["Nordlys El ApS", "Autoriseret elinstallatør", "=" * 50]
        for section in document.sections.model_dump().values():
            assert section in document.full_text

    def test_optional_header_lines(self, calculation, villa_interpretation):
        document = generate_offer_document(
            villa_interpretation, calculation, RiskAnalysisResult()
        )

        assert "Til:" not in document.full_text
        assert f"Dato: {date.today().strftime('%d.%m.%Y')}" in document.full_text
        assert document.full_text.splitlines()[-2] == "Autoriseret elinstallatør"

    def test_discount_line(self, calculation, villa_interpretation):
        discounted = calculation.model_copy(update={"price": _price(final="5670.00")})

        document = generate_offer_document(
            villa_interpretation, discounted, RiskAnalysisResult()
        )

        assert "Efter rabat (10%): 5.670 kr. ekskl. moms" in document.full_text

    def test_markdown_rendering(self, calculation):
        markdown = format_section_markdown(timeline_description(calculation))

        assert "**Fordeling:**" in markdown
        assert "- Stikkontakter: 4 timer" in markdown
        assert "---" in markdown.splitlines()

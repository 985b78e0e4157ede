"""Risk detection rules.

Each rule is an independent predicate over a ``RiskContext``. Rules do not
know about each other; the engine runs all of them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from elcalc.models import BuildingType, RiskCategory, RiskContext, Severity


@dataclass(frozen=True)
class RiskRule:
    code: str
    name: str
    category: RiskCategory
    severity: Severity
    check: Callable[[RiskContext], bool]
    title: str
    description: str
    recommendation: str | None = None
    show_to_customer: bool = False
    customer_message: str | None = None
    offer_reservation: str | None = None


def _age_over(years: int) -> Callable[[RiskContext], bool]:
    def check(ctx: RiskContext) -> bool:
        return ctx.building_age_years is not None and ctx.building_age_years > years

    return check


def _components_over(count: int) -> Callable[[RiskContext], bool]:
    def check(ctx: RiskContext) -> bool:
        return ctx.component_count > count

    return check


def _margin_below(percentage: float) -> Callable[[RiskContext], bool]:
    def check(ctx: RiskContext) -> bool:
        return ctx.margin_percentage is not None and ctx.margin_percentage < percentage

    return check


def _is_commercial(ctx: RiskContext) -> bool:
    return ctx.building_type in (BuildingType.COMMERCIAL, BuildingType.INDUSTRIAL)


def _high_price(ctx: RiskContext) -> bool:
    return ctx.total_price is not None and ctx.total_price > 100_000


def _unclear_scope(ctx: RiskContext) -> bool:
    return ctx.component_count == 0 and ctx.room_count == 0


DEFAULT_RULES: tuple[RiskRule, ...] = (
    # Technical
    RiskRule(
        code="RISK_OLD_WIRING",
        name="Gammel el-installation",
        category=RiskCategory.TECHNICAL,
        severity=Severity.MEDIUM,
        check=_age_over(40),
        title="Potentielt forældet el-installation",
        description="Bygningen er over 40 år gammel. El-installationen kan være "
        "forældet og kræve ekstra vurdering.",
        recommendation="Gennemgå eltavle og eksisterende installation før arbejdet "
        "påbegyndes. Overvej at tilbyde eltjek som tillægsydelse.",
        show_to_customer=True,
        customer_message="Ældre installation kan kræve ekstra gennemgang for at "
        "sikre kompatibilitet.",
        offer_reservation="Eksisterende installation forudsættes at være lovlig. "
        "Udbedring af fejl i eksisterende installation faktureres særskilt.",
    ),
    RiskRule(
        code="RISK_VERY_OLD",
        name="Meget gammel bygning",
        category=RiskCategory.TECHNICAL,
        severity=Severity.HIGH,
        check=_age_over(60),
        title="Meget gammel el-installation",
        description="Bygningen er over 60 år gammel. Høj sandsynlighed for forældet "
        "installation, potentielt stofledninger eller aluminium.",
        recommendation="Grundig inspektion af eksisterende installation. Muligt behov "
        "for delvis eller hel omkabling. Overvej ekstra buffer i tilbuddet.",
        show_to_customer=True,
        customer_message="Ældre installation kræver grundig vurdering. Der kan opstå "
        "behov for yderligere arbejde.",
        offer_reservation="Findes stofledninger eller aluminiumsledninger, udføres "
        "nødvendig omkabling efter regning.",
    ),
    RiskRule(
        code="RISK_BATHROOM_IP",
        name="Vådrums-installation",
        category=RiskCategory.SAFETY,
        severity=Severity.MEDIUM,
        check=lambda ctx: ctx.has_bathroom_work,
        title="Vådrums IP-krav",
        description="Arbejde i badeværelse kræver IP44/IP65 materiel og særlige "
        "installationsregler.",
        recommendation="Sikr at alle komponenter opfylder vådrumsklassificering. "
        "Verificer installationszoner.",
        show_to_customer=True,
        customer_message="Vådrumsinstallation udføres efter gældende sikkerhedsregler "
        "med godkendte komponenter.",
    ),
    RiskRule(
        code="RISK_OUTDOOR",
        name="Udendørs installation",
        category=RiskCategory.TECHNICAL,
        severity=Severity.LOW,
        check=lambda ctx: ctx.has_outdoor_work,
        title="Udendørs installation",
        description="Udendørs arbejde kræver vejrbestandigt materiel og kan påvirkes "
        "af vejrforhold.",
        recommendation="Planlæg med hensyn til vejret. Sikr IP65+ klassificerede komponenter.",
        show_to_customer=True,
        customer_message="Udendørs installation med vejrbestandigt materiel.",
        offer_reservation="Udendørs arbejde forudsætter egnede vejrforhold.",
    ),
    RiskRule(
        code="RISK_COMMERCIAL",
        name="Erhvervsinstallation",
        category=RiskCategory.LEGAL,
        severity=Severity.MEDIUM,
        check=_is_commercial,
        title="Erhvervs/industri krav",
        description="Erhvervs- og industriinstallationer har særlige krav til "
        "dokumentation og sikkerhed.",
        recommendation="Verificer krav til nødbelysning, brandalarmer og el-attest. "
        "Overvej højere sikkerhedsmargin.",
        show_to_customer=True,
        customer_message="Erhvervsinstallation udføres efter gældende lovkrav med "
        "fuld dokumentation.",
    ),
    RiskRule(
        code="RISK_PANEL_UPGRADE",
        name="Tavleudvidelse",
        category=RiskCategory.TECHNICAL,
        severity=Severity.MEDIUM,
        check=lambda ctx: ctx.panel_upgrade_needed and not ctx.new_panel_needed,
        title="Tavleudvidelse nødvendig",
        description="Projektets omfang kræver udvidelse af eksisterende eltavle.",
        recommendation="Husk at inkludere tavlearbejde i prisen. Tjek kapacitet ved "
        "besigtigelse.",
        show_to_customer=True,
        customer_message="Inkl. nødvendig tavleudvidelse for at rumme nye grupper.",
        offer_reservation="Tavleudvidelse forudsætter plads i eksisterende eltavle.",
    ),
    RiskRule(
        code="RISK_NEW_PANEL",
        name="Ny eltavle",
        category=RiskCategory.TECHNICAL,
        severity=Severity.HIGH,
        check=lambda ctx: ctx.new_panel_needed,
        title="Ny eltavle nødvendig",
        description="Eksisterende tavle er utilstrækkelig. Ny tavle skal installeres.",
        recommendation="Verificer med netselskab om hovedsikringen er tilstrækkelig.",
        show_to_customer=True,
        customer_message="Ny eltavle er inkluderet i tilbuddet. Eksisterende tavle udskiftes.",
        offer_reservation="Eventuel opgradering af hovedsikring hos netselskabet er ikke "
        "inkluderet.",
    ),
    # Time
    RiskRule(
        code="RISK_LARGE_PROJECT",
        name="Stort projekt",
        category=RiskCategory.TIME,
        severity=Severity.LOW,
        check=_components_over(20),
        title="Stort projekt - mange komponenter",
        description="Projektet indeholder mange komponenter, hvilket øger kompleksiteten.",
        recommendation="Overvej at opdele i faser. Indregn ekstra koordineringstid.",
    ),
    RiskRule(
        code="RISK_COMPLEX_PROJECT",
        name="Komplekst projekt",
        category=RiskCategory.TIME,
        severity=Severity.MEDIUM,
        check=_components_over(40),
        title="Komplekst projekt - høj komponenttæthed",
        description="Over 40 komponenter indikerer et komplekst projekt med højere "
        "risiko for forsinkelser.",
        recommendation="Buffer på 15-20% ekstra tid. Overvej faseopdeling med delleverancer.",
        show_to_customer=True,
        customer_message="Projektet opdeles eventuelt i faser for optimal kvalitet.",
    ),
    RiskRule(
        code="RISK_MULTI_ROOM",
        name="Fler-rums projekt",
        category=RiskCategory.TIME,
        severity=Severity.INFO,
        check=lambda ctx: ctx.room_count > 3,
        title="Arbejde i flere rum",
        description="Projektet spænder over flere rum, hvilket kan kræve ekstra koordinering.",
        recommendation="Planlæg rum-for-rum arbejdsflow. Koordiner med eventuelle "
        "andre håndværkere.",
    ),
    # Margin
    RiskRule(
        code="RISK_LOW_MARGIN",
        name="Lav margin",
        category=RiskCategory.MARGIN,
        severity=Severity.HIGH,
        check=_margin_below(20),
        title="Lav fortjenestemargin",
        description="Marginen er under 20%, hvilket efterlader lille buffer til "
        "uforudsete udgifter.",
        recommendation="Overvej at hæve prisen eller reducere omfanget. Under 20% "
        "margin er risikabelt.",
    ),
    RiskRule(
        code="RISK_VERY_LOW_MARGIN",
        name="Meget lav margin",
        category=RiskCategory.MARGIN,
        severity=Severity.CRITICAL,
        check=_margin_below(10),
        title="Kritisk lav margin",
        description="Marginen er under 10%. Ved uforudsete problemer risikerer "
        "projektet at give underskud.",
        recommendation="Tilbuddet bør genovervejes. Under 10% margin er ikke bæredygtigt.",
    ),
    RiskRule(
        code="RISK_HIGH_PRICE",
        name="Høj pris",
        category=RiskCategory.MARGIN,
        severity=Severity.INFO,
        check=_high_price,
        title="Større projekt - høj værdi",
        description="Projektet har en samlet værdi over 100.000 kr. Overvej kundens "
        "betalingsevne og eventuel ratebetaling.",
        recommendation="Tilbyd ratebetaling eller delbetaling. Sikr skriftlig kontrakt.",
    ),
    # Access
    RiskRule(
        code="RISK_APARTMENT",
        name="Lejlighed/etagebolig",
        category=RiskCategory.ACCESS,
        severity=Severity.LOW,
        check=lambda ctx: ctx.building_type is BuildingType.APARTMENT,
        title="Lejlighedsinstallation",
        description="Arbejde i lejlighed kan have begrænsninger ift. adgang til "
        "fælles eltavle.",
        recommendation="Afklar adgang til fælles eltavle på forhånd. Koordiner "
        "eventuelt med vicevært.",
        show_to_customer=True,
        customer_message="Adgang til eventuel fælles eltavle skal koordineres.",
        offer_reservation="Arbejde på fælles eltavle koordineres med ejerforening eller "
        "vicevært og er ikke inkluderet.",
    ),
    # Scope
    RiskRule(
        code="RISK_UNCLEAR_SCOPE",
        name="Uklart omfang",
        category=RiskCategory.SCOPE,
        severity=Severity.MEDIUM,
        check=_unclear_scope,
        title="Uklart projektomfang",
        description="Ingen komponenter eller rum er specificeret. Omfanget kan være uklart.",
        recommendation="Afklar præcist omfang med kunden før tilbud afgives. "
        "Overvej besigtigelse.",
        offer_reservation="Tilbuddet bygger på et foreløbigt omfang og justeres efter "
        "besigtigelse.",
    ),
)


@dataclass(frozen=True)
class RiskRuleSet:
    """Immutable, ordered collection of risk rules."""

    rules: tuple[RiskRule, ...] = DEFAULT_RULES

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def without(self, *codes: str) -> RiskRuleSet:
        return RiskRuleSet(tuple(rule for rule in self.rules if rule.code not in codes))


# Singleton instance (lazy-loaded)
_rule_set: RiskRuleSet | None = None


def get_risk_rules() -> RiskRuleSet:
    global _rule_set
    if _rule_set is None:
        _rule_set = RiskRuleSet()
    return _rule_set


def reload_risk_rules(rules: tuple[RiskRule, ...] | None = None) -> RiskRuleSet:
    """Replace the process-wide rule set (defaults when ``rules`` is omitted)."""
    global _rule_set
    _rule_set = RiskRuleSet(rules) if rules is not None else RiskRuleSet()
    return _rule_set

"""End-to-end estimation pipeline.

Text -> interpretation -> component match -> calculation -> risk analysis ->
offer text and offer document. Every stage is a pure in-process call; the
pipeline never touches the database, so a learning-store failure cannot affect it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import NamedTuple
from uuid import uuid4

from elcalc.calculation.engine import CalculationEngine, adjust_price_for_risk
from elcalc.calculation.parameters import CalculationParameters
from elcalc.config import LocaleConfig, get_config
from elcalc.core.logging import analysis_context, bind_calculation, bind_stage
from elcalc.interpreter import InterpreterRules, get_rules, interpret
from elcalc.matching.catalog import CatalogLookup
from elcalc.matching.matcher import ComponentMatcher, MatchingResult
from elcalc.models import (
    Calculation,
    GeneratedOfferContent,
    Interpretation,
    MarginRecommendation,
    OfferDocument,
    OfferTextTemplate,
    PriceExplanation,
    RiskAnalysisResult,
)
from elcalc.offers import (
    build_offer_context,
    explain_price,
    generate_content,
    generate_offer_document,
    get_template_library,
)
from elcalc.risk import RiskRuleSet, analyze, build_risk_context, recommended_margin

logger = logging.getLogger(__name__)

LOW_CONFIDENCE = 0.4
LOW_MATCH_CONFIDENCE = 0.5
RISK_PRICE_ADJUSTMENT_SCORE = 4


class AnalysisProgress(NamedTuple):
    stage: str  # interpreting, matching, calculating, analyzing_risks, generating_text, complete
    progress: int  # 0-100
    message: str


ProgressCallback = Callable[[AnalysisProgress], None]


@dataclass
class AnalysisResult:
    """Outcome of ``analyze_project``.

    On failure only ``success``, ``error``, ``warnings`` and
    ``processing_time_ms`` are set.
    """

    success: bool
    interpretation: Interpretation | None = None
    matching: MatchingResult | None = None
    calculation: Calculation | None = None
    risk_analysis: RiskAnalysisResult | None = None
    margin_recommendation: MarginRecommendation | None = None
    offer_content: GeneratedOfferContent | None = None
    price_explanation: PriceExplanation | None = None
    offer_document: OfferDocument | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    processing_time_ms: int = 0


class QuickAnalysis(NamedTuple):
    building_type: str
    size_m2: float | None
    total_points: int
    estimated_hours: float
    estimated_price: float
    complexity_score: int
    risk_score: int


def _report(callback: ProgressCallback | None, stage: str, progress: int, message: str) -> None:
    bind_stage(stage)
    if callback is not None:
        callback(AnalysisProgress(stage, progress, message))


def analyze_project(
    description: str,
    *,
    catalog: CatalogLookup | None = None,
    parameters: CalculationParameters | None = None,
    templates: Iterable[OfferTextTemplate] | None = None,
    risk_rules: RiskRuleSet | None = None,
    interpreter_rules: InterpreterRules | None = None,
    margin_percentage: float | None = None,
    risk_buffer_percentage: float | None = None,
    building_profile: str | None = None,
    customer_name: str | None = None,
    project_address: str | None = None,
    locale: LocaleConfig | None = None,
    on_progress: ProgressCallback | None = None,
) -> AnalysisResult:
    """Run the full estimation pipeline over a project description.

    Args:
        description: Free-text project description (Danish or English)
        catalog: Catalog lookup; built-in estimates are used when omitted
        parameters: Calculation coefficients (from config when omitted)
        templates: Offer text templates (built-in library when omitted)
        margin_percentage: Overrides the parameters' default margin
        risk_buffer_percentage: Overrides the parameters' default risk buffer
        customer_name: Addressee printed on the offer document
        project_address: Site address printed on the offer document
        on_progress: Called with an ``AnalysisProgress`` at each stage

    Returns:
        AnalysisResult; ``success=False`` with ``error`` set when an engine
        fails unexpectedly. No partially built result is returned.
    """
    started = time.perf_counter()
    warnings: list[str] = []

    def elapsed_ms() -> int:
        return int((time.perf_counter() - started) * 1000)

    with analysis_context(analysis_id=uuid4().hex[:8], stage=None, calculation_id=None):
        try:
            config = get_config()
            parameters = parameters or CalculationParameters.from_config(config)
            locale = locale or config.locale
            if interpreter_rules is None:
                interpreter_rules = replace(get_rules(), point_floor=config.estimation.point_floor)

            _report(on_progress, "interpreting", 10, "Analyserer projektbeskrivelse...")
            interpretation, confidence, interpret_warnings = interpret(
                description, interpreter_rules
            )
            warnings.extend(interpret_warnings)
            if confidence < LOW_CONFIDENCE:
                warnings.append("Low interpretation confidence; the result may be inaccurate")

            _report(on_progress, "matching", 30, "Finder komponenter og materialer...")
            matcher = ComponentMatcher(catalog, config.estimation.default_panel_groups)
            matching = matcher.match(interpretation)
            if matching.match_confidence < LOW_MATCH_CONFIDENCE:
                warnings.append("Many components were estimated; check prices manually")
            if matching.unmatched_points:
                warnings.append(
                    f"No component found for: {', '.join(matching.unmatched_points)}"
                )

            _report(on_progress, "calculating", 50, "Beregner tid og pris...")
            calculation = CalculationEngine(parameters).calculate(
                matching.components,
                matching.materials,
                risk_buffer_percentage,
                margin_percentage,
                interpretation,
            )
            bind_calculation(calculation.id)

            _report(on_progress, "analyzing_risks", 70, "Analyserer risici...")
            if interpretation.risk_score >= RISK_PRICE_ADJUSTMENT_SCORE:
                calculation = calculation.model_copy(
                    update={
                        "price": adjust_price_for_risk(
                            calculation.price, interpretation.risk_score
                        )
                    }
                )
                warnings.append("Price adjusted upwards for elevated risk")

            risk_context = build_risk_context(
                interpretation, calculation, building_profile=building_profile
            )
            risk_analysis = analyze(risk_context, risk_rules)
            margin = recommended_margin(risk_context, result=risk_analysis)

            _report(on_progress, "generating_text", 85, "Genererer tilbudstekst...")
            offer_context = build_offer_context(interpretation, calculation, building_profile)
            offer_content = generate_content(
                templates if templates is not None else get_template_library(),
                offer_context,
                risk_analysis,
                locale,
            )
            if not offer_content.technical_scope:
                warnings.append("No offer text template produced a technical scope")
            price_explanation = explain_price(calculation, interpretation, locale=locale)
            offer_document = generate_offer_document(
                interpretation,
                calculation,
                risk_analysis,
                customer_name=customer_name,
                project_address=project_address,
                company_name=config.offers.company_name,
                hours_per_day=config.estimation.hours_per_workday,
                locale=locale,
            )

            _report(on_progress, "complete", 100, "Analyse fuldført!")
        except Exception as e:
            logger.error(f"Project analysis failed: {e}", exc_info=True)
            return AnalysisResult(
                success=False,
                error=str(e) or e.__class__.__name__,
                warnings=warnings,
                processing_time_ms=elapsed_ms(),
            )

        result = AnalysisResult(
            success=True,
            interpretation=interpretation,
            matching=matching,
            calculation=calculation,
            risk_analysis=risk_analysis,
            margin_recommendation=margin,
            offer_content=offer_content,
            price_explanation=price_explanation,
            offer_document=offer_document,
            warnings=warnings,
            processing_time_ms=elapsed_ms(),
        )
        logger.info(
            f"Project analysed in {result.processing_time_ms} ms: "
            f"{calculation.component_count} components, {calculation.time.total_hours} h, "
            f"{calculation.price.total_price} DKK, risk {risk_analysis.overall_risk_level.value}"
        )
        return result


def quick_analyze(
    description: str,
    catalog: CatalogLookup | None = None,
    parameters: CalculationParameters | None = None,
) -> QuickAnalysis:
    """Headline figures without risk analysis or offer text."""
    interpretation = interpret(description).interpretation
    matching = ComponentMatcher(catalog).match(interpretation)
    calculation = CalculationEngine(parameters).calculate(
        matching.components, matching.materials, interpretation=interpretation
    )

    return QuickAnalysis(
        building_type=interpretation.building_type.value,
        size_m2=interpretation.building_size_m2,
        total_points=interpretation.total_points,
        estimated_hours=calculation.time.total_hours,
        estimated_price=float(calculation.price.total_price),
        complexity_score=interpretation.complexity_score,
        risk_score=interpretation.risk_score,
    )

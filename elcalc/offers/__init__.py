"""Offer text assembly, price explanation and the plain-text offer document."""

from elcalc.offers.engine import (
    assemble,
    build_offer_context,
    component_templates,
    default_templates,
    evaluate_conditions,
    generate_content,
    merge_offer_texts,
    relevance_score,
    room_templates,
    substitute_variables,
)
from elcalc.offers.document import format_section_markdown, generate_offer_document
from elcalc.offers.price_explanation import bullet_summary, explain_price, simple_summary
from elcalc.offers.templates import (
    TemplateLibrary,
    get_template_library,
    load_templates_yaml,
    reload_template_library,
)

__all__ = [
    "TemplateLibrary",
    "assemble",
    "build_offer_context",
    "bullet_summary",
    "component_templates",
    "default_templates",
    "evaluate_conditions",
    "explain_price",
    "format_section_markdown",
    "generate_content",
    "generate_offer_document",
    "get_template_library",
    "load_templates_yaml",
    "merge_offer_texts",
    "relevance_score",
    "reload_template_library",
    "room_templates",
    "simple_summary",
    "substitute_variables",
]

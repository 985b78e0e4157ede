"""Offer text templates: built-in library and YAML loading.

The built-in library always contains a required global ``description``
template so an offer never ships without a technical scope.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from elcalc.models import OfferTextTemplate, TemplateConditions, TemplateScope

logger = logging.getLogger(__name__)


BUILTIN_TEMPLATES: tuple[OfferTextTemplate, ...] = (
    OfferTextTemplate(
        id="builtin-description",
        scope_type=TemplateScope.GLOBAL,
        template_key="description",
        title="Arbejdets omfang",
        content="Komplet elinstallation omfattende {{antal_komponenter}} "
        "installationspunkter fordelt på {{antal_rum}} rum, udført i henhold til "
        "gældende stærkstrømsbekendtgørelse.",
        priority=10,
        is_required=True,
    ),
    OfferTextTemplate(
        id="builtin-terms",
        scope_type=TemplateScope.GLOBAL,
        template_key="terms",
        title="Betingelser",
        content="Tilbuddet er gældende i 30 dage. Samlet pris {{samlet_pris}} "
        "inkl. materialer og arbejdsløn, ekskl. moms.",
        priority=5,
        is_required=True,
    ),
    OfferTextTemplate(
        id="builtin-warranty",
        scope_type=TemplateScope.GLOBAL,
        template_key="warranty",
        title="Garanti",
        content="Der ydes 2 års garanti på udført arbejde og leverede materialer "
        "i henhold til AB-Forbruger.",
        priority=5,
        is_required=True,
    ),
    OfferTextTemplate(
        id="builtin-exclusion",
        scope_type=TemplateScope.GLOBAL,
        template_key="exclusion",
        title="Ikke inkluderet",
        content="Bygningsmæssige arbejder, murerarbejde og maling er ikke inkluderet.",
        priority=3,
    ),
    OfferTextTemplate(
        id="builtin-assumption",
        scope_type=TemplateScope.GLOBAL,
        template_key="assumption",
        title="Forudsætninger",
        content="Der forudsættes fri adgang til arbejdsområder og eltavle i normal "
        "arbejdstid.",
        priority=3,
    ),
    OfferTextTemplate(
        id="builtin-bathroom-obs",
        scope_type=TemplateScope.ROOM_TYPE,
        scope_id="bathroom",
        template_key="obs_point",
        title="Vådrum",
        content="Installation i vådrum udføres med IP44-klassificeret materiel og "
        "fejlstrømsbeskyttelse.",
        conditions=TemplateConditions(room_types=("bathroom",)),
        priority=5,
    ),
    OfferTextTemplate(
        id="builtin-outdoor-note",
        scope_type=TemplateScope.ROOM_TYPE,
        scope_id="outdoor",
        template_key="installation_note",
        title="Udendørs",
        content="Udendørs installation udføres med jordkabel og IP65-klassificeret materiel.",
        conditions=TemplateConditions(room_types=("outdoor",)),
        priority=3,
    ),
    OfferTextTemplate(
        id="builtin-ev-charger",
        scope_type=TemplateScope.COMPONENT,
        scope_id="ev_charger",
        template_key="technical_note",
        title="Ladestander",
        content="Installation af ladestander inkl. separat gruppe og typebestemt "
        "fejlstrømsafbryder.",
        conditions=TemplateConditions(component_codes=("ev_charger",)),
        priority=5,
    ),
    OfferTextTemplate(
        id="builtin-new-panel",
        scope_type=TemplateScope.COMPONENT,
        scope_id="panel_new",
        template_key="technical_note",
        title="Ny eltavle",
        content="Levering og montering af ny eltavle med HPFI-afbrydere og "
        "overspændingsbeskyttelse.",
        conditions=TemplateConditions(component_codes=("panel_new",)),
        priority=5,
    ),
    OfferTextTemplate(
        id="builtin-spots",
        scope_type=TemplateScope.CATEGORY,
        scope_id="lighting",
        template_key="installation_note",
        title="Spots",
        content="Hulskæring og montering af indbygningsspots i eksisterende loft er inkluderet.",
        conditions=TemplateConditions(component_codes=("spot_light",)),
        priority=2,
    ),
)


@dataclass(frozen=True)
class TemplateLibrary:
    """Immutable set of offer text templates."""

    templates: tuple[OfferTextTemplate, ...] = BUILTIN_TEMPLATES

    def __iter__(self):
        return iter(self.templates)

    def __len__(self) -> int:
        return len(self.templates)

    def extended(self, templates: list[OfferTextTemplate] | tuple[OfferTextTemplate, ...]) -> TemplateLibrary:
        return TemplateLibrary(self.templates + tuple(templates))


def load_templates_yaml(path: Path) -> list[OfferTextTemplate]:
    """Load offer text templates from YAML.

    Expected shape::

        templates:
          - template_key: obs_point
            scope_type: room_type
            scope_id: kitchen
            content: "..."
            conditions: {room_types: [kitchen]}

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file or a template entry is invalid
    """
    if not path.exists():
        raise FileNotFoundError(f"Offer text templates not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data or "templates" not in data:
        raise ValueError(f"Invalid template file {path}: missing 'templates' section")

    templates = []
    for index, entry in enumerate(data["templates"]):
        try:
            templates.append(OfferTextTemplate.model_validate(entry))
        except ValidationError as e:
            raise ValueError(f"Invalid template #{index} in {path}: {e}") from e

    logger.info(f"Loaded {len(templates)} offer text templates from {path}")
    return templates


# Singleton instance (lazy-loaded)
_library: TemplateLibrary | None = None


def get_template_library() -> TemplateLibrary:
    global _library
    if _library is None:
        _library = TemplateLibrary()
    return _library


def reload_template_library(path: Path | None = None) -> TemplateLibrary:
    """Rebuild the library from the built-ins plus an optional YAML file."""
    global _library
    library = TemplateLibrary()
    if path is not None:
        library = library.extended(load_templates_yaml(path))
    _library = library
    return _library

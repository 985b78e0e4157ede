"""Component matcher.

Maps interpreted electrical point counts onto catalog components and derives
the material list (cables, fittings, junction boxes, conduit). Catalog misses
fall back to the built-in estimate tables; kinds known to neither are reported
as unmatched rather than failing.
"""

from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import Mapping

from pydantic import BaseModel, ConfigDict

from elcalc.matching.catalog import (
    DEFAULT_COMPONENTS,
    DEFAULT_MATERIALS,
    CatalogComponent,
    CatalogLookup,
    CatalogMaterial,
    InMemoryCatalog,
)
from elcalc.models import (
    CalculationComponent,
    CalculationMaterial,
    ComponentSource,
    Interpretation,
)

logger = logging.getLogger(__name__)

POINT_TO_COMPONENT: Mapping[str, str] = {
    "outlets": "outlet_single",
    "double_outlets": "outlet_double",
    "switches": "switch_single",
    "multi_switches": "switch_multi",
    "dimmers": "dimmer",
    "spots": "spot_light",
    "ceiling_lights": "ceiling_light",
    "outdoor_lights": "outdoor_light",
    "power_16a": "power_16a",
    "power_32a": "power_32a",
    "ev_charger": "ev_charger",
    "data_outlets": "data_outlet",
    "tv_outlets": "tv_outlet",
}

CABLE_TO_MATERIAL: Mapping[str, str] = {
    "nym_1_5mm": "cable_1_5mm",
    "nym_2_5mm": "cable_2_5mm",
    "nym_4mm": "cable_4mm",
    "nym_6mm": "cable_6mm",
    "nym_10mm": "cable_10mm",
    "outdoor_cable": "cable_outdoor",
    "data_cable": "cable_data",
}

# Installation cable laid in conduit
CONDUIT_CABLES = ("nym_1_5mm", "nym_2_5mm", "nym_4mm")
CONDUIT_SHARE = 0.7
POINTS_PER_JUNCTION_BOX = 4


class MatchingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    components: tuple[CalculationComponent, ...] = ()
    materials: tuple[CalculationMaterial, ...] = ()
    unmatched_points: tuple[str, ...] = ()
    match_confidence: float = 0.5


class ComponentMatcher:
    """Match interpretations against a catalog.

    Args:
        catalog: External catalog lookup (empty catalog when omitted)
        existing_panel_groups: Groups assumed present in an existing panel
    """

    def __init__(self, catalog: CatalogLookup | None = None, existing_panel_groups: int = 8):
        self.catalog = catalog if catalog is not None else InMemoryCatalog()
        self.existing_panel_groups = existing_panel_groups

    def match(self, interpretation: Interpretation) -> MatchingResult:
        components: list[CalculationComponent] = []
        unmatched: list[str] = []

        for kind, quantity in interpretation.electrical_points.items():
            if quantity <= 0:
                continue
            code = POINT_TO_COMPONENT.get(kind, kind)
            component = self._resolve_component(code, quantity)
            if component is None:
                unmatched.append(kind)
                continue
            components.append(component)

        components.extend(self._panel_components(interpretation))
        materials = self._materials(interpretation, components)

        if components:
            from_catalog = sum(1 for c in components if c.source is ComponentSource.CATALOG)
            confidence = from_catalog / len(components)
        else:
            confidence = 0.5

        if unmatched:
            logger.warning(f"No catalog or default component for point kinds: {unmatched}")

        return MatchingResult(
            components=tuple(components),
            materials=tuple(materials),
            unmatched_points=tuple(unmatched),
            match_confidence=round(confidence, 2),
        )

    def _resolve_component(self, code: str, quantity: float) -> CalculationComponent | None:
        hits = self.catalog.lookup(code)
        if hits:
            return _to_component(hits[0], quantity, ComponentSource.CATALOG)
        default = DEFAULT_COMPONENTS.get(code)
        if default is not None:
            return _to_component(default, quantity, ComponentSource.ESTIMATE)
        return None

    def _panel_components(self, interpretation: Interpretation) -> list[CalculationComponent]:
        panel = interpretation.panel_requirements
        if panel.new_panel_needed:
            component = self._resolve_component("panel_new", 1)
            return [component] if component else []
        if panel.upgrade_needed:
            groups_to_add = max(panel.required_groups - self.existing_panel_groups, 0)
            if groups_to_add > 0:
                component = self._resolve_component("panel_group", groups_to_add)
                return [component] if component else []
        return []

    def _resolve_material(self, key: str, quantity: float) -> CalculationMaterial | None:
        if quantity <= 0:
            return None
        material = self.catalog.material(key)
        source = ComponentSource.CATALOG
        if material is None:
            material = DEFAULT_MATERIALS.get(key)
            source = ComponentSource.ESTIMATE
        if material is None:
            return None
        return _to_material(material, quantity, source)

    def _materials(
        self, interpretation: Interpretation, components: list[CalculationComponent]
    ) -> list[CalculationMaterial]:
        materials: list[CalculationMaterial | None] = []
        cables = interpretation.cable_requirements

        for cable, key in CABLE_TO_MATERIAL.items():
            materials.append(self._resolve_material(key, cables.get(cable, 0)))

        for component in components:
            if component.category == "outlet":
                materials.append(self._resolve_material("outlet_material", component.quantity))
            elif component.category == "switch":
                materials.append(self._resolve_material("switch_material", component.quantity))
            elif component.code == "spot_light":
                materials.append(self._resolve_material("spot_material", component.quantity))

        total_points = sum(c.quantity for c in components)
        materials.append(
            self._resolve_material(
                "junction_box", math.ceil(total_points / POINTS_PER_JUNCTION_BOX)
            )
        )

        conduit_cable = sum(cables.get(cable, 0) for cable in CONDUIT_CABLES)
        materials.append(self._resolve_material("conduit", round(conduit_cable * CONDUIT_SHARE)))

        return [m for m in materials if m is not None]


def _to_component(
    entry: CatalogComponent, quantity: float, source: ComponentSource
) -> CalculationComponent:
    return CalculationComponent(
        code=entry.code,
        name=entry.name,
        category=entry.category,
        quantity=quantity,
        unit=entry.unit,
        unit_time_minutes=entry.unit_time_minutes,
        unit_price=entry.unit_price,
        source=source,
        component_id=entry.component_id,
    )


def _to_material(
    entry: CatalogMaterial, quantity: float, source: ComponentSource
) -> CalculationMaterial:
    return CalculationMaterial(
        code=entry.key,
        name=entry.name,
        quantity=quantity,
        unit=entry.unit,
        unit_cost=entry.unit_cost,
        unit_price=entry.unit_price or Decimal("0"),
        source=source,
        sku=entry.sku,
        supplier_name=entry.supplier_name,
    )


def match_components(
    interpretation: Interpretation,
    catalog: CatalogLookup | None = None,
    existing_panel_groups: int = 8,
) -> MatchingResult:
    """Match an interpretation against ``catalog`` (built-in estimates only when omitted)."""
    return ComponentMatcher(catalog, existing_panel_groups).match(interpretation)

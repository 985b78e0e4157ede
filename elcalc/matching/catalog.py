"""Component and material catalog lookup.

The matcher depends only on the ``CatalogLookup`` protocol. ``InMemoryCatalog``
serves exact code hits first and falls back to RapidFuzz similarity on code
and name; ``load_catalog()`` builds one from the active database rows.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from rapidfuzz import fuzz
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from elcalc.db.models import CatalogComponentModel, CatalogMaterialModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogComponent:
    code: str
    name: str
    category: str
    unit: str
    unit_time_minutes: float
    unit_price: Decimal
    component_id: str | None = None


@dataclass(frozen=True)
class CatalogMaterial:
    key: str
    name: str
    unit: str
    unit_cost: Decimal
    unit_price: Decimal
    material_id: str | None = None
    sku: str | None = None
    supplier_name: str | None = None


class CatalogLookup(Protocol):
    """External catalog interface used by the component matcher."""

    def lookup(self, keyword: str) -> list[CatalogComponent]:
        """Return catalog components for a point kind or keyword, best first."""
        ...

    def material(self, key: str) -> CatalogMaterial | None:
        """Return the catalog material for a material key, if any."""
        ...


def _component(code, name, category, price, minutes) -> CatalogComponent:
    return CatalogComponent(
        code=code,
        name=name,
        category=category,
        unit="stk",
        unit_time_minutes=minutes,
        unit_price=Decimal(price),
    )


def _material(key, name, unit, cost, price) -> CatalogMaterial:
    return CatalogMaterial(
        key=key, name=name, unit=unit, unit_cost=Decimal(cost), unit_price=Decimal(price)
    )


# Built-in estimates, used when the catalog has no entry
DEFAULT_COMPONENTS: dict[str, CatalogComponent] = {
    c.code: c
    for c in (
        _component("outlet_single", "Stikkontakt enkelt", "outlet", "450", 25),
        _component("outlet_double", "Stikkontakt dobbelt", "outlet", "650", 30),
        _component("switch_single", "Afbryder enkelt", "switch", "350", 20),
        _component("switch_multi", "Korrespondanceafbryder", "switch", "550", 35),
        _component("dimmer", "Dæmper", "switch", "750", 30),
        _component("spot_light", "LED Spot indbygning", "lighting", "350", 20),
        _component("ceiling_light", "Loftudtag", "lighting", "400", 25),
        _component("outdoor_light", "Udendørs lampeudtag", "lighting", "650", 40),
        _component("power_16a", "Kraftstik 16A", "power", "850", 35),
        _component("power_32a", "Kraftstik 32A", "power", "1250", 45),
        _component("ev_charger", "Elbillader installation", "power", "4500", 120),
        _component("data_outlet", "Dataudtag CAT6", "data", "550", 30),
        _component("tv_outlet", "Antenne/TV udtag", "data", "450", 25),
        _component("panel_group", "Gruppeudvidelse i tavle", "panel", "650", 30),
        _component("panel_new", "Ny eltavle komplet", "panel", "8500", 240),
    )
}

DEFAULT_MATERIALS: dict[str, CatalogMaterial] = {
    m.key: m
    for m in (
        _material("cable_1_5mm", "Installationskabel NYM-J 3x1,5mm²", "m", "8.50", "12.00"),
        _material("cable_2_5mm", "Installationskabel NYM-J 3x2,5mm²", "m", "12.50", "18.00"),
        _material("cable_4mm", "Installationskabel NYM-J 3x4mm²", "m", "22.00", "32.00"),
        _material("cable_6mm", "Installationskabel NYM-J 5x6mm²", "m", "45.00", "65.00"),
        _material("cable_10mm", "Installationskabel NYM-J 5x10mm²", "m", "85.00", "120.00"),
        _material("cable_outdoor", "Jordkabel XPUJ 3x2,5mm²", "m", "28.00", "40.00"),
        _material("cable_data", "Datakabel CAT6 U/UTP", "m", "6.50", "10.00"),
        _material("outlet_material", "Stikkontakt komplet (FUGA)", "stk", "85.00", "120.00"),
        _material("switch_material", "Afbryder komplet (FUGA)", "stk", "75.00", "105.00"),
        _material("spot_material", "LED Spot 7W indbygning", "stk", "125.00", "180.00"),
        _material("junction_box", "Samledåse IP55", "stk", "18.00", "28.00"),
        _material("conduit", "Flexrør 16mm", "m", "3.50", "6.00"),
    )
}


def _search_text(value: str) -> str:
    return value.replace("_", " ").replace("-", " ").lower().strip()


class InMemoryCatalog:
    """Catalog held in memory; an empty catalog matches nothing."""

    def __init__(
        self,
        components: Iterable[CatalogComponent] = (),
        materials: Iterable[CatalogMaterial] = (),
        fuzzy_min_score: int = 85,
    ):
        self._components = {c.code: c for c in components}
        self._materials = {m.key: m for m in materials}
        self.fuzzy_min_score = fuzzy_min_score

    def __len__(self) -> int:
        return len(self._components) + len(self._materials)

    def lookup(self, keyword: str) -> list[CatalogComponent]:
        exact = self._components.get(keyword)
        if exact is not None:
            return [exact]

        query = _search_text(keyword)
        if not query:
            return []

        ranked: list[tuple[float, CatalogComponent]] = []
        for component in self._components.values():
            score = max(
                fuzz.token_sort_ratio(query, _search_text(component.code)),
                fuzz.token_sort_ratio(query, _search_text(component.name)),
            )
            if score >= self.fuzzy_min_score:
                ranked.append((score, component))

        ranked.sort(key=lambda pair: pair[0], reverse=True)
        if ranked:
            logger.debug(
                f"Fuzzy catalog hit for '{keyword}': {ranked[0][1].code} ({ranked[0][0]:.0f})"
            )
        return [component for _, component in ranked]

    def material(self, key: str) -> CatalogMaterial | None:
        return self._materials.get(key)


async def load_catalog(session: AsyncSession, fuzzy_min_score: int = 85) -> InMemoryCatalog:
    """Build an ``InMemoryCatalog`` from the active catalog tables.

    Raises:
        SQLAlchemyError: If the catalog tables cannot be read
    """
    component_rows = (
        await session.execute(
            select(CatalogComponentModel).where(CatalogComponentModel.is_active.is_(True))
        )
    ).scalars().all()
    material_rows = (
        await session.execute(
            select(CatalogMaterialModel).where(CatalogMaterialModel.is_active.is_(True))
        )
    ).scalars().all()

    components = [
        CatalogComponent(
            code=row.code,
            name=row.name,
            category=row.category or "general",
            unit=row.unit or "stk",
            unit_time_minutes=float(row.unit_time_minutes or 30),
            unit_price=Decimal(str(row.unit_price or 0)),
            component_id=str(row.id),
        )
        for row in component_rows
    ]
    materials = [
        CatalogMaterial(
            key=row.key,
            name=row.name,
            unit=row.unit or "stk",
            unit_cost=Decimal(str(row.unit_cost or 0)),
            unit_price=Decimal(str(row.unit_price or 0)),
            material_id=str(row.id),
            sku=row.sku,
            supplier_name=row.supplier_name,
        )
        for row in material_rows
    ]

    logger.info(f"Loaded catalog: {len(components)} components, {len(materials)} materials")
    return InMemoryCatalog(components, materials, fuzzy_min_score=fuzzy_min_score)

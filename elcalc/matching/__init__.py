"""Catalog lookup and component matching."""

from elcalc.matching.catalog import (
    CatalogComponent,
    CatalogLookup,
    CatalogMaterial,
    InMemoryCatalog,
    load_catalog,
)
from elcalc.matching.matcher import ComponentMatcher, MatchingResult, match_components

__all__ = [
    "CatalogComponent",
    "CatalogLookup",
    "CatalogMaterial",
    "ComponentMatcher",
    "InMemoryCatalog",
    "MatchingResult",
    "load_catalog",
    "match_components",
]

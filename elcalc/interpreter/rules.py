"""Declarative pattern tables for the project interpreter.

Rule tables are immutable configuration objects. They are loaded once via
``get_rules()`` and replaced only through ``reload_rules()``; a YAML file may
override individual sections (same loading style as the classification
mapping rules).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from functools import cached_property
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from elcalc.models import Severity

logger = logging.getLogger(__name__)

# Longest digit run read as a count or size; longer numbers are ignored
MAX_NUMBER_DIGITS = 6
NUMBER = rf"(?<!\d)(\d{{1,{MAX_NUMBER_DIGITS}}})"


def parse_number(digits: str) -> int:
    """Value of a captured digit group, 0 when it is too long to be real."""
    if len(digits) > MAX_NUMBER_DIGITS:
        return 0
    return int(digits)


@dataclass(frozen=True)
class PatternRule:
    """Ordered regex patterns mapped onto one key.

    Attributes:
        key: Value produced when any pattern matches
        patterns: Regex sources, evaluated case-insensitively in order
    """

    key: str
    patterns: tuple[str, ...]

    @cached_property
    def compiled(self) -> tuple[re.Pattern[str], ...]:
        return tuple(re.compile(p, re.IGNORECASE) for p in self.patterns)

    def search(self, text: str) -> re.Match[str] | None:
        """Return the first match of the first matching pattern."""
        for pattern in self.compiled:
            match = pattern.search(text)
            if match:
                return match
        return None


@dataclass(frozen=True)
class AgeKeywordRule(PatternRule):
    age_years: int = 0


@dataclass(frozen=True)
class RoomRule(PatternRule):
    default_points: Mapping[str, int] = field(default_factory=dict)

    def count(self, text: str) -> int:
        """Number of rooms of this type mentioned, 0 when absent.

        A number directly in front of the room word is taken as the count.
        """
        for pattern in self.compiled:
            if not pattern.search(text):
                continue
            quantity = re.search(rf"{NUMBER}\s*(?:{pattern.pattern})", text, re.IGNORECASE)
            return parse_number(quantity.group(1)) if quantity else 1
        return 0


@dataclass(frozen=True)
class PointRule(PatternRule):
    """Electrical point kind.

    ``patterns`` must capture the count in group 1; every mention is summed.
    ``presence_patterns`` yield a count of 1 when no numeric mention exists.
    """

    presence_patterns: tuple[str, ...] = ()

    def count(self, text: str) -> int:
        total = 0
        for pattern in self.compiled:
            for match in pattern.finditer(text):
                total += parse_number(match.group(1))
        if total == 0:
            for source in self.presence_patterns:
                if re.search(source, text, re.IGNORECASE):
                    return 1
        return total


@dataclass(frozen=True)
class ComplexityRule(PatternRule):
    name: str = ""
    category: str = "other"
    multiplier: float = 1.0


@dataclass(frozen=True)
class RiskPatternRule(PatternRule):
    type: str = "scope"
    title: str = ""
    description: str = ""
    severity: Severity = Severity.MEDIUM


BUILDING_TYPE_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        "house",
        (
            r"\b(hus|villa|parcelhus|rækkehus|bungalow)\b",
            r"\b(enfamiliehus|enfamilies|sommerhus)\b",
        ),
    ),
    PatternRule(
        "apartment",
        (
            r"\b(lejlighed|ejerlejlighed|andel|etage)\b",
            r"\b(penthouse|stueetage)\b",
        ),
    ),
    PatternRule(
        "commercial",
        (
            r"\b(erhverv|kontor|butik|restaurant|cafe)\b",
            r"\b(klinik|salon|værksted)\b",
        ),
    ),
    PatternRule("industrial", (r"\b(industri|lager|fabrik|produktion|hal)\b",)),
)

SIZE_PATTERNS: tuple[str, ...] = (
    r"(?<!\d)(\d{1,6})\s*m2",
    r"(?<!\d)(\d{1,6})\s*m²",
    r"(?<!\d)(\d{1,6})\s*kvm",
    r"(?<!\d)(\d{1,6})\s*kvadratmeter",
)

YEAR_PATTERN = r"\b(19\d{2}|20[0-2]\d)\b"

AGE_KEYWORD_RULES: tuple[AgeKeywordRule, ...] = (
    AgeKeywordRule("old", (r"\bgammelt?\s*(hus|bygning|ejendom)\b",), age_years=60),
    AgeKeywordRule("older", (r"\bældre\s*(hus|bygning|ejendom)\b",), age_years=50),
    AgeKeywordRule("new", (r"\bny(t|bygger?i?)\b",), age_years=5),
)

ROOM_RULES: tuple[RoomRule, ...] = (
    RoomRule(
        "kitchen",
        (r"\bkøkken(?:et|er)?\b", r"\bkøkkenalrum\b"),
        default_points=MappingProxyType(
            {"outlets": 8, "switches": 2, "spots": 6, "ceiling_lights": 1}
        ),
    ),
    RoomRule(
        "living",
        (r"\bstue(?:n|r)?\b", r"\bopholdsrum\b", r"\balrum\b"),
        default_points=MappingProxyType(
            {"outlets": 6, "switches": 2, "spots": 4, "ceiling_lights": 1, "tv_outlets": 1}
        ),
    ),
    RoomRule(
        "bedroom",
        (r"\bsoveværelse(?:r|t|rne)?\b", r"\bværelse(?:r|t|rne)?\b", r"\bsoverum\b"),
        default_points=MappingProxyType(
            {"outlets": 4, "switches": 1, "ceiling_lights": 1}
        ),
    ),
    RoomRule(
        "bathroom",
        (r"\bbadeværelse(?:r|t)?\b", r"\bbad\b", r"\btoilet(?:ter)?\b"),
        default_points=MappingProxyType({"outlets": 2, "switches": 1, "spots": 3}),
    ),
    RoomRule(
        "office",
        (r"\bkontor\b", r"\barbejdsværelse\b", r"\bhjemmekontor\b"),
        default_points=MappingProxyType(
            {"outlets": 6, "switches": 1, "ceiling_lights": 1, "data_outlets": 2}
        ),
    ),
    RoomRule(
        "utility",
        (r"\bbryggers\b", r"\bvaskerum\b", r"\bteknik(?:rum)?\b"),
        default_points=MappingProxyType(
            {"outlets": 3, "switches": 1, "ceiling_lights": 1, "power_16a": 1}
        ),
    ),
    RoomRule(
        "garage",
        (r"\bgarage\b", r"\bcarport\b"),
        default_points=MappingProxyType(
            {"outlets": 2, "switches": 1, "ceiling_lights": 2, "power_16a": 1}
        ),
    ),
    RoomRule(
        "outdoor",
        (r"\budendørs\b", r"\bterrasse\b", r"\bhave\b", r"\baltan\b"),
        default_points=MappingProxyType({"outdoor_lights": 4, "outlets": 2}),
    ),
)

POINT_RULES: tuple[PointRule, ...] = (
    PointRule("outlets", (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:stikkontakt(?:er)?|stik)\b",)),
    PointRule(
        "double_outlets",
        (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?dobbelt\s*(?:stikkontakt(?:er)?|stik|kontakt(?:er)?)\b",),
    ),
    PointRule("switches", (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:afbryder(?:e|ne)?|kontakt(?:er)?)\b",)),
    PointRule("spots", (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:spot|downlight|indbygning)",)),
    PointRule(
        "ceiling_lights",
        (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:loftlampe(?:r)?|pendel(?:er)?|lampe(?:r)?)\b",),
    ),
    PointRule("outdoor_lights", (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:udendørs|udelampe|facade)\s*lampe",)),
    PointRule(
        "ev_charger",
        (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:ladestander(?:e)?|ladeboks(?:e)?|elbillader(?:e)?)\b",),
        presence_patterns=(
            r"\b(elbil\w*|ladestander\w*|ladeboks\w*|wallbox|ev[\s-]*(charger|lader))\b",
        ),
    ),
    PointRule("power_16a", (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:x\s*)?16\s*a\b",)),
    PointRule("power_32a", (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:x\s*)?32\s*a\b",)),
    PointRule("data_outlets", (r"(?<!\d)(\d{1,6})\s*(?:stk\.?\s*)?(?:data|netværk|ethernet)\w*",)),
)

COMPLEXITY_RULES: tuple[ComplexityRule, ...] = (
    ComplexityRule("concrete_walls", (r"\bbeton\b", r"\bbetonvæg\w*"), "concrete walls", "material", 1.40),
    ComplexityRule("brick_walls", (r"\bmursten\b", r"\bmur\b", r"\btegl\b"), "brick walls", "material", 1.25),
    ComplexityRule("drywall", (r"\bgips\b", r"\bgipsvæg\w*"), "drywall", "material", 0.90),
    ComplexityRule("old_building", (r"\bgammel\b", r"\bældre\b", r"\b19[0-5]\d\b"), "old building", "building", 1.35),
    ComplexityRule("new_construction", (r"\bnybyg\w*", r"\bnyt\s*hus\b"), "new construction", "building", 0.85),
    ComplexityRule("high_ceiling", (r"\bhøj[te]?\s*loft\b", r"\b[34]\s*meter\b"), "high ceiling", "access", 1.20),
    ComplexityRule("attic", (r"\btag\s*etage\b", r"\bloft\b", r"\bskrå"), "attic", "access", 1.15),
    ComplexityRule("crawl_space", (r"\bkrybekælder\b", r"\bkravle\w*"), "crawl space", "access", 1.30),
    ComplexityRule(
        "panel_upgrade",
        (r"\b(ny|udskift\w*|opgrad[ée]r\w*)\s*(el)?tavle\b", r"\beltavle\b"),
        "panel upgrade",
        "electrical",
        1.25,
    ),
)

RISK_PATTERN_RULES: tuple[RiskPatternRule, ...] = (
    RiskPatternRule(
        "old_wiring",
        (r"\bgammel\s*(el|installation)\b", r"\bældre\s*(el|ledning\w*)\b"),
        type="electrical",
        title="Ældre installation",
        description="Eksisterende installation kan kræve udskiftning. "
        "Forbehold for uforudsete udfordringer.",
        severity=Severity.HIGH,
    ),
    RiskPatternRule(
        "unknown_scope",
        (r"\bca\.?(?=\s|$)", r"\bcirka\b", r"\bomkring\b", r"\bved\s*ikke\b"),
        type="scope",
        title="Ukendt omfang",
        description="Præcist omfang ukendt. Anbefaler besigtigelse før endelig pris.",
        severity=Severity.MEDIUM,
    ),
    RiskPatternRule(
        "panel_capacity",
        (r"\bfuldudnyttet\b", r"\bikke\s*plads\b", r"\bmange\s*grupper\b"),
        type="electrical",
        title="Tavlekapacitet",
        description="Eksisterende tavle kan være utilstrækkelig. "
        "Mulig tavleudvidelse nødvendig.",
        severity=Severity.HIGH,
    ),
    RiskPatternRule(
        "grounding",
        (r"\bjording\b", r"\bHFI\b", r"\bfejlstrøm"),
        type="safety",
        title="Jording/HFI",
        description="Jordings- eller fejlstrømsforhold skal verificeres. "
        "Kan kræve opgradering.",
        severity=Severity.HIGH,
    ),
    RiskPatternRule(
        "outdoor_work",
        (r"\budendørs\b", r"\bhave\b", r"\bfacade\b"),
        type="timeline",
        title="Udendørs arbejde",
        description="Udendørs arbejde er vejrafhængigt. "
        "Tidsplan kan påvirkes af vejrforhold.",
        severity=Severity.LOW,
    ),
    RiskPatternRule(
        "renovation",
        (r"\brenovering\b", r"\bombygning\b", r"\bistandsæt"),
        type="scope",
        title="Renoveringsarbejde",
        description="Renoveringsarbejde kan afsløre skjulte forhold. "
        "Forbehold for uforudsete udgifter.",
        severity=Severity.MEDIUM,
    ),
)

# Upper bounds (inclusive) of the average multiplier per complexity score
COMPLEXITY_BANDS: tuple[tuple[float, int], ...] = (
    (0.90, 1),
    (1.00, 2),
    (1.15, 3),
    (1.30, 4),
)

# Upper bounds (inclusive) of the average severity weight per risk score
RISK_BANDS: tuple[tuple[float, int], ...] = (
    (1.5, 1),
    (2.0, 2),
    (2.5, 3),
    (3.0, 4),
)

SEVERITY_WEIGHTS: Mapping[Severity, int] = MappingProxyType(
    {
        Severity.INFO: 1,
        Severity.LOW: 1,
        Severity.MEDIUM: 2,
        Severity.HIGH: 3,
        Severity.CRITICAL: 4,
    }
)


@dataclass(frozen=True)
class InterpreterRules:
    """Complete, immutable rule set used by ``interpret()``."""

    building_types: tuple[PatternRule, ...] = BUILDING_TYPE_RULES
    size_patterns: tuple[str, ...] = SIZE_PATTERNS
    year_pattern: str = YEAR_PATTERN
    age_keywords: tuple[AgeKeywordRule, ...] = AGE_KEYWORD_RULES
    rooms: tuple[RoomRule, ...] = ROOM_RULES
    points: tuple[PointRule, ...] = POINT_RULES
    complexity: tuple[ComplexityRule, ...] = COMPLEXITY_RULES
    risks: tuple[RiskPatternRule, ...] = RISK_PATTERN_RULES
    point_floor: int = 10
    min_description_words: int = 10
    max_rooms_per_type: int = 20
    max_points_per_kind: int = 500
    max_size_m2: float = 100_000

    def room_defaults(self, room_type: str) -> Mapping[str, int]:
        for rule in self.rooms:
            if rule.key == room_type:
                return rule.default_points
        return MappingProxyType({})

    @classmethod
    def from_yaml(cls, path: Path, base: InterpreterRules | None = None) -> InterpreterRules:
        """Load rule overrides from YAML.

        Sections absent from the file keep the values of ``base`` (defaults
        when omitted). Example::

            point_floor: 12
            building_types:
              - key: house
                patterns: ["\\\\bvilla\\\\b"]
            rooms:
              - key: kitchen
                patterns: ["\\\\bkøkken\\\\b"]
                default_points: {outlets: 8}

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the YAML is not a mapping or a section is malformed
        """
        if not path.exists():
            raise FileNotFoundError(f"Interpreter rules not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Invalid interpreter rules in {path}: expected a mapping")

        overrides: dict[str, Any] = {}
        try:
            if "building_types" in data:
                overrides["building_types"] = tuple(
                    PatternRule(r["key"], tuple(r["patterns"])) for r in data["building_types"]
                )
            if "size_patterns" in data:
                overrides["size_patterns"] = tuple(data["size_patterns"])
            if "year_pattern" in data:
                overrides["year_pattern"] = str(data["year_pattern"])
            if "age_keywords" in data:
                overrides["age_keywords"] = tuple(
                    AgeKeywordRule(r["key"], tuple(r["patterns"]), age_years=int(r["age_years"]))
                    for r in data["age_keywords"]
                )
            if "rooms" in data:
                overrides["rooms"] = tuple(
                    RoomRule(
                        r["key"],
                        tuple(r["patterns"]),
                        default_points=MappingProxyType(dict(r.get("default_points") or {})),
                    )
                    for r in data["rooms"]
                )
            if "points" in data:
                overrides["points"] = tuple(
                    PointRule(
                        r["key"],
                        tuple(r["patterns"]),
                        presence_patterns=tuple(r.get("presence_patterns") or ()),
                    )
                    for r in data["points"]
                )
            if "complexity" in data:
                overrides["complexity"] = tuple(
                    ComplexityRule(
                        r["key"],
                        tuple(r["patterns"]),
                        name=r.get("name", r["key"].replace("_", " ")),
                        category=r.get("category", "other"),
                        multiplier=float(r["multiplier"]),
                    )
                    for r in data["complexity"]
                )
            if "risks" in data:
                overrides["risks"] = tuple(
                    RiskPatternRule(
                        r["key"],
                        tuple(r["patterns"]),
                        type=r.get("type", "scope"),
                        title=r.get("title", r["key"]),
                        description=r.get("description", ""),
                        severity=Severity(r.get("severity", "medium")),
                    )
                    for r in data["risks"]
                )
            if "point_floor" in data:
                overrides["point_floor"] = int(data["point_floor"])
            if "min_description_words" in data:
                overrides["min_description_words"] = int(data["min_description_words"])
            for key in ("max_rooms_per_type", "max_points_per_kind"):
                if key in data:
                    overrides[key] = int(data[key])
            if "max_size_m2" in data:
                overrides["max_size_m2"] = float(data["max_size_m2"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid interpreter rules in {path}: {e}") from e

        logger.info(f"Loaded interpreter rule overrides from {path}: {sorted(overrides)}")
        return replace(base or cls(), **overrides)


# Singleton instance (lazy-loaded)
_rules: InterpreterRules | None = None


def get_rules() -> InterpreterRules:
    """Get the process-wide interpreter rules, loading defaults on first use."""
    global _rules
    if _rules is None:
        _rules = InterpreterRules()
    return _rules


def reload_rules(path: Path | None = None) -> InterpreterRules:
    """Replace the process-wide rules with defaults or a YAML override file."""
    global _rules
    _rules = InterpreterRules.from_yaml(path) if path else InterpreterRules()
    return _rules

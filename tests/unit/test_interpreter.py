"""Unit tests for the project interpreter."""

from __future__ import annotations

from datetime import date

import pytest

from elcalc.interpreter import InterpreterRules, interpret
from elcalc.interpreter.interpreter import complexity_score, risk_score
from elcalc.interpreter.rules import parse_number
from elcalc.models import BuildingType, ComplexityFactor, RiskFactor, RoomType, Severity

from tests.conftest import VILLA_DESCRIPTION


class TestReferenceDescription:
    """The villa description from the estimation handbook."""

    def test_building_facts(self):
        interpretation, _, _ = interpret(VILLA_DESCRIPTION)

        assert interpretation.building_type is BuildingType.HOUSE
        assert interpretation.building_size_m2 == 140
        assert interpretation.building_age_years == date.today().year - 1975

    def test_rooms(self, villa_interpretation):
        room_types = [room.type for room in villa_interpretation.rooms]

        assert RoomType.KITCHEN in room_types
        assert room_types.count(RoomType.BEDROOM) == 2
        assert [room.name for room in villa_interpretation.rooms] == [
            "kitchen",
            "bedroom_1",
            "bedroom_2",
        ]

    def test_room_defaults_fill_points(self, villa_interpretation):
        # kitchen + 2 bedrooms
        assert villa_interpretation.electrical_points == {
            "outlets": 16,
            "switches": 4,
            "spots": 6,
            "ceiling_lights": 3,
        }

    def test_old_building_needs_panel_upgrade(self, villa_interpretation):
        panel = villa_interpretation.panel_requirements

        assert panel.upgrade_needed is True
        assert panel.new_panel_needed is False
        assert panel.required_groups == 7

    def test_no_factors_gives_neutral_complexity(self, villa_interpretation):
        assert villa_interpretation.complexity_factors == ()
        assert villa_interpretation.complexity_score == 3

    def test_inferred_old_wiring_only_above_fifty_years(self):
        at_fifty = interpret(VILLA_DESCRIPTION, current_year=2025).interpretation
        at_fiftyone = interpret(VILLA_DESCRIPTION, current_year=2026).interpretation

        assert not at_fifty.has_risk("old_wiring_inferred")
        assert at_fiftyone.has_risk("old_wiring_inferred")
        assert at_fiftyone.risk_score == 2

    def test_confidence(self):
        _, confidence, warnings = interpret(VILLA_DESCRIPTION, current_year=2026)

        assert confidence == 0.95
        assert warnings == []


class TestExtraction:
    """Individual extraction steps."""

    def test_explicit_points_are_summed(self):
        interpretation = interpret(
            "Hus på 120 m2 med 6 stikkontakter i stuen og 4 stikkontakter i køkkenet, "
            "samt 12 spots og 2 afbrydere"
        ).interpretation

        assert interpretation.electrical_points["outlets"] == 10
        assert interpretation.electrical_points["spots"] == 12
        assert interpretation.electrical_points["switches"] == 2

    def test_explicit_points_above_floor_skip_room_defaults(self):
        interpretation = interpret("Køkken med 12 stikkontakter og 8 spots").interpretation

        assert interpretation.electrical_points == {"outlets": 12, "spots": 8}

    def test_ev_charger_presence_without_count(self):
        interpretation = interpret("Installation af ladestander til elbil i carport").interpretation

        assert interpretation.electrical_points["ev_charger"] == 1
        assert interpretation.panel_requirements.required_amperage >= 32
        assert interpretation.cable_requirements["nym_6mm"] == 15

    def test_age_keyword(self):
        interpretation = interpret("Gammelt hus der skal have ny el i alle rum").interpretation

        assert interpretation.building_age_years == 60

    def test_future_year_clamps_age(self):
        interpretation = interpret("Lejlighed bygget 2024", current_year=2020).interpretation

        assert interpretation.building_age_years == 0

    def test_apartment_detection(self):
        interpretation = interpret("Ejerlejlighed på 3. sal, 85 kvm").interpretation

        assert interpretation.building_type is BuildingType.APARTMENT
        assert interpretation.building_size_m2 == 85

    def test_complexity_factors(self):
        interpretation = interpret(
            "Renovering af rækkehus med betonvægge og krybekælder, 110 m2"
        ).interpretation
        codes = {factor.code for factor in interpretation.complexity_factors}

        assert {"concrete_walls", "crawl_space"} <= codes
        assert interpretation.complexity_score >= 4

    def test_new_panel_adds_risk(self):
        interpretation = interpret(
            "Værksted med 3 stk 32A udtag og 20 stikkontakter og 16 loftlamper"
        ).interpretation

        assert interpretation.panel_requirements.new_panel_needed is True
        assert interpretation.has_risk("panel_upgrade_required")

    def test_cables_scale_with_size(self):
        small = interpret("Hus på 50 m2 med 10 spots").interpretation
        large = interpret("Hus på 200 m2 med 10 spots").interpretation

        assert small.cable_requirements["nym_1_5mm"] == 40
        assert large.cable_requirements["nym_1_5mm"] == 160


class TestDegradation:
    """Malformed input never raises."""

    @pytest.mark.parametrize("description", ["", "   ", None, "!!!", "køkken"])
    def test_never_raises_and_stays_in_range(self, description):
        interpretation, confidence, _ = interpret(description)

        assert len(interpretation.rooms) >= 1
        assert 1 <= interpretation.complexity_score <= 5
        assert 1 <= interpretation.risk_score <= 5
        assert 0.5 <= confidence <= 0.95

    def test_empty_text_synthesizes_generic_room(self):
        interpretation, _, warnings = interpret("")

        assert [room.type for room in interpretation.rooms] == [RoomType.OTHER]
        assert any("short" in w for w in warnings)
        assert any("Building type" in w for w in warnings)

    def test_short_description_always_flags_minimal_description(self):
        interpretation = interpret("Villa 140 m2, 20 spots og ny eltavle").interpretation

        assert interpretation.has_risk("minimal_description")

    def test_long_description_not_flagged(self):
        interpretation = interpret(
            "Vi ønsker en komplet ny elinstallation i vores hus med køkken, stue og to værelser"
        ).interpretation

        assert not interpretation.has_risk("minimal_description")


class TestNumericExtremes:
    """Absurd numbers in otherwise valid text are ignored or capped."""

    @pytest.mark.parametrize(
        "description",
        [
            "Villa på " + "9" * 400 + " m2 med køkken",
            "Hus med " + "1" * 5000 + " stikkontakter",
            "Hus med " + "1" * 5000 + " soveværelser",
            "Hus med 100000000 værelser",
        ],
    )
    def test_long_numbers_never_raise(self, description):
        interpretation, _, _ = interpret(description)

        assert 1 <= len(interpretation.rooms) <= InterpreterRules().max_rooms_per_type
        assert all(
            count <= InterpreterRules().max_points_per_kind
            for count in interpretation.electrical_points.values()
        )
        assert all(meters < 10**9 for meters in interpretation.cable_requirements.values())

    def test_overlong_size_is_not_read(self):
        interpretation = interpret("Villa på " + "9" * 400 + " m2").interpretation

        assert interpretation.building_size_m2 is None

    @pytest.mark.parametrize("size", ["0", "200000"])
    def test_implausible_size_ignored(self, size):
        interpretation, _, warnings = interpret(f"Villa på {size} m2 med køkken og bad")

        assert interpretation.building_size_m2 is None
        assert any("implausible" in w for w in warnings)

    def test_room_count_capped(self):
        interpretation, _, warnings = interpret("Kollegium med 500000 værelser")

        assert len(interpretation.rooms) == 20
        assert "Room count for bedroom capped at 20" in warnings

    def test_point_count_capped(self):
        interpretation, _, warnings = interpret("Hal med 900 stikkontakter")

        assert interpretation.electrical_points["outlets"] == 500
        assert "Point count for outlets capped at 500" in warnings

    def test_parse_number(self):
        assert parse_number("42") == 42
        assert parse_number("1" * 7) == 0


class TestScores:
    def _factor(self, multiplier: float) -> ComplexityFactor:
        return ComplexityFactor(
            code="x", name="x", category="material", multiplier=multiplier, detected_from="x"
        )

    def _risk(self, severity: Severity) -> RiskFactor:
        return RiskFactor(code="x", type="scope", title="x", description="x", severity=severity)

    @pytest.mark.parametrize(
        "multiplier,expected",
        [(0.85, 1), (0.90, 1), (1.0, 2), (1.1, 3), (1.25, 4), (1.4, 5)],
    )
    def test_complexity_bands(self, multiplier, expected):
        assert complexity_score([self._factor(multiplier)]) == expected

    def test_complexity_uses_average(self):
        assert complexity_score([self._factor(1.1), self._factor(1.4)]) == 4

    def test_risk_bands(self):
        assert risk_score([]) == 1
        assert risk_score([self._risk(Severity.LOW)]) == 1
        assert risk_score([self._risk(Severity.MEDIUM)]) == 2
        assert risk_score([self._risk(Severity.HIGH)]) == 4
        assert risk_score([self._risk(Severity.CRITICAL)]) == 5


class TestRules:
    def test_yaml_overrides_keep_other_sections(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(
            "point_floor: 0\n"
            "building_types:\n"
            "  - key: commercial\n"
            "    patterns: ['\\bsalon\\b']\n",
            encoding="utf-8",
        )

        rules = InterpreterRules.from_yaml(path)
        interpretation = interpret("Frisør salon med køkken", rules).interpretation

        assert interpretation.building_type is BuildingType.COMMERCIAL
        assert interpretation.electrical_points == {}
        assert rules.rooms == InterpreterRules().rooms

    def test_missing_yaml_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            InterpreterRules.from_yaml(tmp_path / "missing.yaml")

    def test_non_mapping_yaml_raises(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError):
            InterpreterRules.from_yaml(path)

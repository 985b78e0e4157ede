"""Unit tests for structured logging setup."""

from __future__ import annotations

import io
import json
import logging

import structlog

from elcalc.core.logging import (
    add_app_name,
    analysis_context,
    bind_calculation,
    bind_stage,
    build_formatter,
    drop_unset_context,
)


class TestProcessors:
    def test_unset_context_keys_dropped(self):
        event = {"event": "x", "stage": None, "calculation_id": "c1", "analysis_id": None}

        assert drop_unset_context(None, "info", event) == {"event": "x", "calculation_id": "c1"}

    def test_other_keys_untouched(self):
        assert drop_unset_context(None, "info", {"event": "x", "count": None}) == {
            "event": "x",
            "count": None,
        }

    def test_app_name(self):
        assert add_app_name(None, "info", {"event": "x"})["app"] == "elcalc"
        assert add_app_name(None, "info", {"app": "worker"})["app"] == "worker"


class TestAnalysisContext:
    def test_rebound_keys_restored_on_exit(self):
        with analysis_context(analysis_id="a1", stage=None, calculation_id=None):
            bind_stage("matching")
            bind_calculation("c1")

            assert structlog.contextvars.get_contextvars() == {
                "analysis_id": "a1",
                "stage": "matching",
                "calculation_id": "c1",
            }

        assert structlog.contextvars.get_contextvars() == {}

    def test_outer_values_survive_nested_block(self):
        with analysis_context(analysis_id="outer"):
            with analysis_context(analysis_id="inner"):
                assert structlog.contextvars.get_contextvars()["analysis_id"] == "inner"

            assert structlog.contextvars.get_contextvars()["analysis_id"] == "outer"


class TestRendering:
    def _render(self, json_logs: bool) -> str:
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(build_formatter(json_logs))
        logger = logging.getLogger("elcalc.tests.rendering")
        logger.addHandler(handler)
        logger.propagate = False
        logger.setLevel(logging.INFO)
        try:
            with analysis_context(analysis_id="a1", stage="calculating", calculation_id=None):
                logger.info("Calculated 4 components")
        finally:
            logger.removeHandler(handler)
        return stream.getvalue()

    def test_stdlib_record_rendered_as_json_with_context(self):
        line = json.loads(self._render(json_logs=True))

        assert line["event"] == "Calculated 4 components"
        assert line["level"] == "info"
        assert line["logger"] == "elcalc.tests.rendering"
        assert line["app"] == "elcalc"
        assert line["analysis_id"] == "a1"
        assert line["stage"] == "calculating"
        assert "calculation_id" not in line
        assert "timestamp" in line

    def test_console_rendering(self):
        output = self._render(json_logs=False)

        assert "Calculated 4 components" in output
        assert "calculating" in output

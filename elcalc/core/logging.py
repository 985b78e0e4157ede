"""Structured logging for elcalc.

Modules log through ``logging.getLogger(__name__)``. Their records run through
the same structlog processor chain as native structlog events, so values
bound with ``analysis_context`` (analysis id, pipeline stage, calculation id)
appear on every line emitted while a project is analysed.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

# Context keys bound during an analysis; unset keys are left off the line
CONTEXT_KEYS = ("analysis_id", "stage", "calculation_id")


def add_app_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("app", "elcalc")
    return event_dict


def drop_unset_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    for key in CONTEXT_KEYS:
        if event_dict.get(key) is None:
            event_dict.pop(key, None)
    return event_dict


def shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        drop_unset_context,
        add_app_name,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def build_formatter(json_logs: bool) -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering stdlib records through the structlog chain."""
    renderer = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level name (``LOG_LEVEL``, default INFO)
        json_logs: JSON lines instead of console output (``JSON_LOGS``)
    """
    if json_logs is None:
        json_logs = os.getenv("JSON_LOGS", "false").lower() == "true"

    structlog.configure(
        processors=[
            *shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    # Add FileHandler if logs directory exists
    log_file = Path("logs/elcalc.log")
    if log_file.parent.exists():
        handlers.append(logging.FileHandler(log_file))

    formatter = build_formatter(json_logs)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        handlers=handlers,
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
    )


@contextmanager
def analysis_context(**values: Any) -> Iterator[None]:
    """Bind values to every log line emitted inside the block.

    Keys bound here (also with ``None``) are restored on exit, including
    keys rebound inside the block with ``bind_stage`` or ``bind_calculation``.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def bind_stage(stage: str) -> None:
    structlog.contextvars.bind_contextvars(stage=stage)


def bind_calculation(calculation_id: Any) -> None:
    structlog.contextvars.bind_contextvars(calculation_id=str(calculation_id))

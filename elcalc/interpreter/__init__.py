"""Rule-based interpretation of free-text project descriptions."""

from elcalc.interpreter.interpreter import InterpretationResult, interpret
from elcalc.interpreter.rules import InterpreterRules, get_rules, reload_rules

__all__ = [
    "InterpretationResult",
    "InterpreterRules",
    "get_rules",
    "interpret",
    "reload_rules",
]

"""elcalc - self-calibrating estimation pipeline for electrical installation offers."""

__version__ = "0.1.0"

"""Causal decision graph drafting with deterministic repair."""

__version__ = "0.1.0"

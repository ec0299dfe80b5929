"""
PM (Project Management) module for the readiness engine.

Turns a story plus repository context into ranked, reviewable task
suggestions.
"""

from readiness.pm.synthesizer import (
    SuggestionRun,
    SuggestionSynthesizer,
    clamp_max_suggestions,
    compute_confidence,
    is_duplicate,
)

__all__ = [
    "SuggestionRun",
    "SuggestionSynthesizer",
    "clamp_max_suggestions",
    "compute_confidence",
    "is_duplicate",
]

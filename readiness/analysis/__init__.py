"""Task readiness scoring primitives."""

from readiness.analysis.analyzer import analyze, merge_llm_review
from readiness.analysis.clarity import score
from readiness.analysis.missing_elements import detect as detect_missing
from readiness.analysis.recommendations import generate as generate_recommendations
from readiness.analysis.story_readiness import evaluate as evaluate_story
from readiness.analysis.summary import summarize_story
from readiness.analysis.vague_terms import detect as detect_vague_terms

__all__ = [
    "analyze",
    "merge_llm_review",
    "score",
    "detect_missing",
    "generate_recommendations",
    "evaluate_story",
    "summarize_story",
    "detect_vague_terms",
]

"""
Clarity scoring.

score() is pure and total: any text, including an empty one, yields a valid
ClarityScore. Each sub-score comes from its own rule set over TaskSignals.
"""

from readiness.analysis import signals as sig
from readiness.analysis import vague_terms
from readiness.analysis.models import ClarityScore, StoryContext, TaskInput

VAGUE_TERM_PENALTY = 20
HEDGE_PENALTY = 10

# Distinct success-signal kinds -> sub-score
SUCCESS_LEVELS = {0: 0, 1: 50, 2: 75}

DEPENDENCIES_EXPLICIT = 100
DEPENDENCIES_NOT_NEEDED = 80
DEPENDENCIES_UNSTATED = 30


def technical_specificity(signals: sig.TaskSignals) -> int:
    score = 0
    if signals.file_paths:
        score += 40
    if signals.function_refs:
        score += 30
    if signals.identifiers:
        score += 15
    if signals.tech_terms:
        score += 15
    return min(score, 100)


def vague_language(signals: sig.TaskSignals, vague_count: int) -> int:
    if signals.word_count == 0:
        return 0
    penalty = VAGUE_TERM_PENALTY * vague_count + HEDGE_PENALTY * len(signals.hedges)
    return max(0, 100 - penalty)


def ac_references(signals: sig.TaskSignals) -> int:
    if not signals.ac_refs:
        return 0
    if not signals.story_has_acs:
        # Referenced, but nothing to check the ids against
        return 50
    if not signals.invalid_ac_refs:
        return 100
    if signals.valid_ac_refs:
        return 50
    return 25


def success_criteria(signals: sig.TaskSignals) -> int:
    return SUCCESS_LEVELS.get(signals.success_kinds, 100)


def dependencies(signals: sig.TaskSignals) -> int:
    if signals.has_prerequisite:
        return DEPENDENCIES_EXPLICIT
    if not signals.integration_terms:
        return DEPENDENCIES_NOT_NEEDED
    return DEPENDENCIES_UNSTATED


def test_expectations(signals: sig.TaskSignals) -> int:
    if signals.has_given_when_then:
        return 100
    if signals.explicit_tests:
        return 100 if signals.edge_scenarios else 80
    if signals.has_generic_test:
        return 50
    return 0


def score_signals(signals: sig.TaskSignals, vague_count: int) -> ClarityScore:
    return ClarityScore(
        technical_specificity=technical_specificity(signals),
        vague_language=vague_language(signals, vague_count),
        ac_references=ac_references(signals),
        success_criteria=success_criteria(signals),
        dependencies=dependencies(signals),
        test_expectations=test_expectations(signals),
    )


def as_task(task: TaskInput | str, story: StoryContext | None = None) -> TaskInput:
    if isinstance(task, TaskInput):
        return task
    return TaskInput(task_id="", story_id=story.story_id if story else "", title=task)


def score(task: TaskInput | str, story: StoryContext | None = None) -> ClarityScore:
    """Score a task (or bare task text) against its story context."""
    task = as_task(task, story)
    signals = sig.extract(task, story)
    return score_signals(signals, len(vague_terms.detect(task.text)))

"""
Missing-element rules.

Each rule returns zero or one MissingElement. detect() is the union of all
rules, stable-sorted by category so repeated runs compare equal.
"""

from readiness.analysis import signals as sig
from readiness.analysis.clarity import as_task
from readiness.analysis.models import (
    MissingCategory,
    MissingElement,
    Priority,
    StoryContext,
    TaskInput,
)


def check_technical_details(signals: sig.TaskSignals) -> MissingElement | None:
    if signals.has_technical_detail:
        return None
    return MissingElement(
        category=MissingCategory.TECHNICAL_DETAILS,
        description="No file path, function or code identifier is mentioned",
        importance=Priority.HIGH,
        remediation="Name the files, classes or functions to touch, e.g. 'src/auth/session.py: refresh_token()'",
    )


def check_acceptance_criteria(signals: sig.TaskSignals) -> MissingElement | None:
    if not signals.ac_refs:
        if signals.story_has_acs:
            description = "Task does not reference any of the story's acceptance criteria"
        else:
            description = "Task does not reference any acceptance criteria and the story defines none"
        return MissingElement(
            category=MissingCategory.ACCEPTANCE_CRITERIA,
            description=description,
            importance=Priority.CRITICAL,
            remediation="Link the acceptance criteria this task satisfies, e.g. 'Covers AC-1, AC-3'",
        )
    if signals.invalid_ac_refs:
        refs = ", ".join(signals.invalid_ac_refs)
        return MissingElement(
            category=MissingCategory.ACCEPTANCE_CRITERIA,
            description=f"Task references acceptance criteria the story does not define: {refs}",
            importance=Priority.HIGH,
            remediation="Fix or remove the unknown ids so every reference points at a story criterion",
        )
    return None


def check_success_criteria(signals: sig.TaskSignals) -> MissingElement | None:
    if signals.success_kinds:
        return None
    return MissingElement(
        category=MissingCategory.SUCCESS_CRITERIA,
        description="No measurable completion condition is stated",
        importance=Priority.MEDIUM,
        remediation="State what done looks like: a return value, a status code, a number, or 'done when ...'",
    )


def check_dependencies(signals: sig.TaskSignals) -> MissingElement | None:
    if not signals.integration_terms or signals.has_prerequisite:
        return None
    terms = ", ".join(signals.integration_terms)
    return MissingElement(
        category=MissingCategory.DEPENDENCIES,
        description=f"Mentions integration points ({terms}) without stating prerequisites",
        importance=Priority.MEDIUM,
        remediation="Say what must exist first, e.g. 'Depends on the payments API keys being provisioned'",
    )


def check_test_expectations(signals: sig.TaskSignals) -> MissingElement | None:
    if signals.has_given_when_then or signals.explicit_tests or signals.has_generic_test:
        return None
    return MissingElement(
        category=MissingCategory.TEST_EXPECTATIONS,
        description="No test expectations are described",
        importance=Priority.HIGH,
        remediation="Describe the tests to write, e.g. 'unit tests for invalid input' or a given/when/then scenario",
    )


RULES = (
    check_technical_details,
    check_acceptance_criteria,
    check_success_criteria,
    check_dependencies,
    check_test_expectations,
)

_CATEGORY_ORDER = {category: i for i, category in enumerate(MissingCategory)}


def detect_signals(signals: sig.TaskSignals) -> list[MissingElement]:
    found = []
    for rule in RULES:
        element = rule(signals)
        if element is not None:
            found.append(element)
    return sorted(found, key=lambda e: _CATEGORY_ORDER[e.category])


def detect(task: TaskInput | str, story: StoryContext | None = None) -> list[MissingElement]:
    """Return the missing elements for a task within its story."""
    task = as_task(task, story)
    return detect_signals(sig.extract(task, story))

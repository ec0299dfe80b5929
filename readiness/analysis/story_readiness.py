"""
Story-level readiness: does the story have acceptance criteria, and does
every criterion have at least one task working towards it?

Scoring starts at 100 and subtracts fixed penalties:
    no acceptance criteria          -50
    any criterion not covered       -30  (one missing item per criterion)
    no tasks                        -20

A story is ready when the score clears STORY_READY_THRESHOLD and nothing is
missing. Task clarity is not part of this score; that is the task analysis.
"""

import re
import uuid
from datetime import datetime, timezone

from readiness.analysis.models import StoryContext, StoryReadiness, TaskInput
from readiness.analysis.signals import collect_ac_refs, normalize_ac_id
from readiness.lib.constants import (
    AC_ID_PATTERN,
    PENALTY_NO_CRITERIA,
    PENALTY_NO_TASKS,
    PENALTY_UNCOVERED_CRITERIA,
)


def covered_ac_keys(story: StoryContext, tasks: list[TaskInput]) -> set[str]:
    """Normalized AC ids referenced by any task, explicitly or in its text."""
    keys = set()
    for task in tasks:
        keys.update(normalize_ac_id(ref) for ref in collect_ac_refs(task, story))
    return keys


def evaluate(
    story: StoryContext,
    tasks: list[TaskInput],
    evaluation_id: str | None = None,
    now: datetime | None = None,
) -> StoryReadiness:
    score = 100
    missing = []

    if not story.acceptance_criteria:
        score -= PENALTY_NO_CRITERIA
        missing.append("Story must have at least one acceptance criterion")

    covered = covered_ac_keys(story, tasks)
    uncovered = [ac.ac_id for ac in story.acceptance_criteria if normalize_ac_id(ac.ac_id) not in covered]
    if uncovered:
        score -= PENALTY_UNCOVERED_CRITERIA
        missing.extend(f"AC '{ac_id}' not covered by any task" for ac_id in uncovered)

    if not tasks:
        score -= PENALTY_NO_TASKS
        missing.append("Story has no implementation tasks")

    return StoryReadiness(
        id=evaluation_id or str(uuid.uuid4()),
        story_id=story.story_id,
        score=max(0, min(100, score)),
        missing_items=tuple(missing),
        uncovered_ac_ids=tuple(uncovered),
        task_count=len(tasks),
        evaluated_at=now or datetime.now(timezone.utc),
    )


def invalid_refs(story: StoryContext, refs: list[str]) -> list[str]:
    """Refs that name no acceptance criterion of the story, in input order."""
    known = {normalize_ac_id(ac_id) for ac_id in story.ac_ids}
    return [ref for ref in refs if normalize_ac_id(ref) not in known]


def criterion_text(given: str, when: str, then: str) -> str:
    return f"Given {given.strip()}, when {when.strip()}, then {then.strip()}"


def next_ac_id(ac_ids) -> str:
    """AC<n+1> where n is the highest numbered AC id in use (AC1 if none)."""
    numbers = [int(re.sub(r"\D", "", ac_id)) for ac_id in ac_ids if AC_ID_PATTERN.fullmatch(ac_id.strip())]
    return f"AC{max(numbers, default=0) + 1}"

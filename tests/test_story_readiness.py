"""Tests for readiness.analysis.story_readiness module."""

from datetime import datetime, timezone

import pytest

from readiness.analysis.models import AcceptanceCriterion, StoryContext, TaskInput
from readiness.analysis.story_readiness import (
    criterion_text,
    evaluate,
    invalid_refs,
    next_ac_id,
)

from conftest import GOOD_TASK


def task(task_id, title, refs=()):
    return TaskInput(task_id=task_id, story_id="story-1", title=title, acceptance_criteria_refs=tuple(refs))


class TestEvaluate:
    """Test evaluate function."""

    def test_every_criterion_covered(self, story):
        tasks = [
            task("task-1", GOOD_TASK),
            task("task-2", "Show the error banner on invalid login", refs=["AC-2"]),
        ]
        readiness = evaluate(story, tasks)
        assert readiness.score == 100
        assert readiness.missing_items == ()
        assert readiness.is_ready
        assert readiness.task_count == 2

    def test_uncovered_criteria_listed_once_each(self, story):
        readiness = evaluate(story, [task("task-1", GOOD_TASK)])
        assert readiness.score == 70
        assert readiness.uncovered_ac_ids == ("AC-2",)
        assert readiness.missing_items == ("AC 'AC-2' not covered by any task",)
        assert not readiness.is_ready

    def test_no_tasks(self, story):
        readiness = evaluate(story, [])
        assert readiness.score == 50
        assert readiness.missing_items == (
            "AC 'AC-1' not covered by any task",
            "AC 'AC-2' not covered by any task",
            "Story has no implementation tasks",
        )

    def test_no_criteria(self):
        bare = StoryContext(story_id="story-1", title="User login")
        readiness = evaluate(bare, [task("task-1", GOOD_TASK)])
        assert readiness.score == 50
        assert readiness.missing_items == ("Story must have at least one acceptance criterion",)
        assert readiness.uncovered_ac_ids == ()

    def test_empty_story_floor(self):
        readiness = evaluate(StoryContext(story_id="story-1", title="User login"), [])
        assert readiness.score == 30
        assert len(readiness.missing_items) == 2

    def test_ref_spellings_match(self):
        story = StoryContext(
            story_id="story-1",
            title="User login",
            acceptance_criteria=(AcceptanceCriterion(ac_id="AC-1"), AcceptanceCriterion(ac_id="AC-002")),
        )
        tasks = [task("task-1", "Add refresh", refs=["ac_001"]), task("task-2", "Covers AC2 in text")]
        assert evaluate(story, tasks).uncovered_ac_ids == ()

    def test_ids_and_timestamps(self, story):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        readiness = evaluate(story, [], evaluation_id="eval-1", now=now)
        assert readiness.id == "eval-1"
        assert readiness.evaluated_at == now
        assert readiness.to_dict()["evaluated_at"] == "2026-03-01T00:00:00+00:00"
        assert readiness.to_dict()["is_ready"] is False


class TestCriteriaHelpers:
    """Test invalid_refs, next_ac_id and criterion_text."""

    def test_invalid_refs_keep_input_order(self, story):
        assert invalid_refs(story, ["AC-9", "ac1", "login", "AC_2"]) == ["AC-9", "login"]

    @pytest.mark.parametrize("ac_ids,expected", [
        ([], "AC1"),
        (["AC-1", "AC-2"], "AC3"),
        (["setup", "AC9", "ac-004"], "AC10"),
    ])
    def test_next_ac_id(self, ac_ids, expected):
        assert next_ac_id(ac_ids) == expected

    def test_criterion_text(self):
        text = criterion_text(" a locked account ", "the user logs in", "a lockout message is shown")
        assert text == "Given a locked account, when the user logs in, then a lockout message is shown"

"""Tests for readiness.analysis.missing_elements module."""

from readiness.analysis.missing_elements import detect
from readiness.analysis.models import (
    AcceptanceCriterion,
    MissingCategory,
    Priority,
    StoryContext,
    TaskInput,
)

from conftest import GOOD_TASK


def story_with(*ac_ids):
    return StoryContext(
        story_id="s1",
        title="Story",
        acceptance_criteria=tuple(AcceptanceCriterion(ac_id=a) for a in ac_ids),
    )


def categories(elements):
    return [e.category for e in elements]


class TestDetect:
    """Test detect function."""

    def test_vague_task_misses_everything_relevant(self):
        elements = detect("implement login", StoryContext(story_id="s1", title="Add login"))
        assert categories(elements) == [
            MissingCategory.TECHNICAL_DETAILS,
            MissingCategory.ACCEPTANCE_CRITERIA,
            MissingCategory.SUCCESS_CRITERIA,
            MissingCategory.TEST_EXPECTATIONS,
        ]

    def test_good_task_misses_nothing(self):
        assert detect(GOOD_TASK, story_with("AC-1")) == []

    def test_stable_across_runs(self):
        story = story_with("AC-1")
        assert detect("fix it", story) == detect("fix it", story)


class TestAcceptanceCriteria:
    """Acceptance-criteria rule."""

    def test_no_refs_is_critical(self):
        elements = detect("Create src/app.py with unit tests", story_with("AC-1", "AC-2"))
        ac = [e for e in elements if e.category == MissingCategory.ACCEPTANCE_CRITERIA]
        assert len(ac) == 1
        assert ac[0].importance == Priority.CRITICAL
        assert "story's acceptance criteria" in ac[0].description

    def test_no_refs_and_story_without_criteria(self):
        ac = [e for e in detect("fix it", story_with()) if e.category == MissingCategory.ACCEPTANCE_CRITERIA]
        assert ac[0].importance == Priority.CRITICAL
        assert "defines none" in ac[0].description

    def test_unknown_refs_are_high(self):
        task = TaskInput(task_id="t", story_id="s1", title="Do it", acceptance_criteria_refs=("AC-9",))
        ac = [e for e in detect(task, story_with("AC-1")) if e.category == MissingCategory.ACCEPTANCE_CRITERIA]
        assert ac[0].importance == Priority.HIGH
        assert "AC-9" in ac[0].description

    def test_valid_refs_satisfy_rule(self):
        task = TaskInput(task_id="t", story_id="s1", title="Do it", acceptance_criteria_refs=("AC-1",))
        assert MissingCategory.ACCEPTANCE_CRITERIA not in categories(detect(task, story_with("AC-1")))


class TestOtherRules:
    """Technical, success, dependency and test rules."""

    def test_technical_detail_from_identifier(self):
        assert MissingCategory.TECHNICAL_DETAILS not in categories(detect("Rename OrderService"))

    def test_dependencies_only_when_integrating(self):
        assert MissingCategory.DEPENDENCIES not in categories(detect("Rename a variable"))

        elements = detect("Integrate Stripe payments")
        deps = [e for e in elements if e.category == MissingCategory.DEPENDENCIES]
        assert deps[0].importance == Priority.MEDIUM
        assert "stripe" in deps[0].description

    def test_stated_prerequisite_satisfies_dependencies(self):
        elements = detect("Integrate Stripe payments once the keys PR is merged")
        assert MissingCategory.DEPENDENCIES not in categories(elements)

    def test_success_criteria_from_status_code(self):
        assert MissingCategory.SUCCESS_CRITERIA not in categories(detect("respond with 204"))

    def test_generic_test_mention_is_enough(self):
        assert MissingCategory.TEST_EXPECTATIONS not in categories(detect("make sure it is tested"))

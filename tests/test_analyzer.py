"""Tests for readiness.analysis.analyzer and readiness.analysis.summary."""

from datetime import datetime, timedelta, timezone

from readiness.analysis import analyze, merge_llm_review, summarize_story
from readiness.analysis.models import (
    AcceptanceCriterion,
    Priority,
    RecommendationCategory,
    StoryContext,
    TaskInput,
)

from conftest import GOOD_TASK

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)

STORY = StoryContext(
    story_id="s1",
    title="Login",
    acceptance_criteria=(AcceptanceCriterion("ac-001", "User can log in"),),
)


def task(task_id, title):
    return TaskInput(task_id=task_id, story_id="s1", title=title)


class TestAnalyze:
    """Test analyze function."""

    def test_vague_task(self):
        result = analyze("implement login", StoryContext(story_id="s1", title="Add login"))
        assert result.score.overall < 40
        assert [t.term for t in result.vague_terms] == ["implement"]
        critical = [e for e in result.missing_elements if e.importance == Priority.CRITICAL]
        assert critical and critical[0].category.value == "acceptance-criteria"
        assert result.recommendations[0].priority == Priority.CRITICAL

    def test_good_task(self):
        result = analyze(task("t1", GOOD_TASK), STORY)
        assert result.score.overall >= 80
        assert result.vague_terms == ()
        assert not any(e.importance == Priority.CRITICAL for e in result.missing_elements)
        assert result.task_id == "t1"
        assert result.story_id == "s1"

    def test_identity_and_timestamp(self):
        result = analyze(task("t1", "fix it"), analysis_id="a-1", now=T0)
        assert result.id == "a-1"
        assert result.analyzed_at == T0

    def test_generates_fresh_id(self):
        assert analyze("fix it").id != analyze("fix it").id

    def test_to_dict_is_json_safe(self):
        data = analyze(task("t1", "fix it"), now=T0).to_dict()
        assert data["analyzed_at"] == T0.isoformat()
        assert data["score"]["level"] == "poor"
        assert data["vague_terms"][0]["term"] == "fix"
        assert isinstance(data["recommendations"], list)


class TestMergeLlmReview:
    """Test merge_llm_review function."""

    def test_appends_and_resorts(self):
        base = analyze("implement login", StoryContext(story_id="s1", title="Add login"))
        review = {
            "summary": "Too vague to start.",
            "recommendations": [
                {
                    "category": "dependencies",
                    "priority": "critical",
                    "title": "Confirm the identity provider",
                    "description": "Pick the IdP before starting.",
                },
            ],
        }
        merged = merge_llm_review(base, review, "primary")
        assert len(merged.recommendations) == len(base.recommendations) + 1
        assert merged.recommendations[1].title == "Confirm the identity provider"
        assert [r.id for r in merged.recommendations] == [
            f"rec-{i:02d}" for i in range(1, len(merged.recommendations) + 1)
        ]
        assert merged.summary == "Too vague to start."
        assert merged.provider == "primary"

    def test_score_is_untouched(self):
        base = analyze(task("t1", GOOD_TASK), STORY)
        review = {
            "summary": "Fine.",
            "recommendations": [
                {"category": "examples", "priority": "low", "title": "Add a sample JWT", "description": "x"},
            ],
        }
        merged = merge_llm_review(base, review, "primary")
        assert merged.score == base.score
        assert merged.recommendations[-1].category == RecommendationCategory.EXAMPLES

    def test_skips_duplicate_titles(self):
        base = analyze("implement login", StoryContext(story_id="s1", title="Add login"))
        review = {
            "summary": "",
            "recommendations": [
                {"category": "acceptance-criteria", "priority": "high",
                 "title": "link ACCEPTANCE criteria", "description": "dup"},
            ],
        }
        merged = merge_llm_review(base, review, "primary")
        assert len(merged.recommendations) == len(base.recommendations)


class TestSummarizeStory:
    """Test summarize_story function."""

    def test_latest_analysis_per_task_wins(self):
        old = analyze(task("t1", "fix it"), STORY, now=T0)
        new = analyze(task("t1", GOOD_TASK), STORY, now=T0 + timedelta(minutes=5))

        # Completion order must not matter
        for history in ([old, new], [new, old]):
            summary = summarize_story("s1", ["t1"], history)
            assert summary.average_score == new.score.overall
            assert summary.analyzed_tasks == 1
            assert summary.ai_ready_tasks == 1
            assert summary.last_analyzed_at == new.analyzed_at

    def test_counts_and_issues(self):
        vague = analyze(task("t1", "fix it"), STORY, now=T0)
        good = analyze(task("t2", GOOD_TASK), STORY, now=T0)
        summary = summarize_story("s1", ["t1", "t2", "t3"], [vague, good])

        assert summary.task_count == 3
        assert summary.analyzed_tasks == 2
        assert summary.tasks_needing_improvement == 1
        assert summary.ai_ready_tasks == 1
        assert summary.issues_by_type["acceptance-criteria"] == ["t1"]
        expected = int((vague.score.overall + good.score.overall) / 2 + 0.5)
        assert summary.average_score == expected

    def test_ignores_tasks_outside_story(self):
        stray = analyze(task("other", GOOD_TASK), STORY, now=T0)
        summary = summarize_story("s1", ["t1"], [stray])
        assert summary.analyzed_tasks == 0
        assert summary.average_score is None
        assert summary.issues_by_type == {}

    def test_to_dict(self):
        summary = summarize_story("s1", [], [])
        data = summary.to_dict()
        assert data["story_id"] == "s1"
        assert data["last_analyzed_at"] is None

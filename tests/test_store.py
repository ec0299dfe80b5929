"""Tests for readiness.store.repository module."""

import time
from dataclasses import replace
from datetime import datetime, timezone

from readiness.analysis import analyze
from readiness.analysis.models import AcceptanceCriterion, SuggestionStatus, TaskInput, TaskSuggestion
from readiness.analysis.story_readiness import evaluate
from readiness.store.models import JobRecord

from conftest import ORG

OTHER_ORG = "org-2"


def job_record(job_id, state="completed", updated_at=None, input_hash="h"):
    now = time.time()
    return JobRecord(
        id=job_id,
        organization_id=ORG,
        kind="task_analysis",
        target_id="task-1",
        state=state,
        input_hash=input_hash,
        created_at=now,
        updated_at=updated_at if updated_at is not None else now,
    )


class TestBacklog:
    """Stories and tasks."""

    def test_story_round_trip(self, store, story):
        store.upsert_story(ORG, story, "proj-1")
        assert store.get_story(ORG, "story-1") == story
        assert store.get_story_project(ORG, "story-1") == "proj-1"

    def test_story_scoped_by_org(self, store, story):
        store.upsert_story(ORG, story, "proj-1")
        assert store.get_story(OTHER_ORG, "story-1") is None

    def test_task_upsert_replaces(self, store, good_task):
        store.upsert_task(ORG, good_task)
        store.upsert_task(ORG, replace(good_task, title="Renamed", acceptance_criteria_refs=("AC-1",)))
        task = store.get_task(ORG, "task-1")
        assert task.title == "Renamed"
        assert task.acceptance_criteria_refs == ("AC-1",)
        assert len(store.list_tasks(ORG, "story-1")) == 1


class TestJobs:
    """Job rows and events."""

    def test_compare_and_swap(self, store):
        store.create_job(job_record("j1", state="requested"))
        assert store.compare_and_swap_state("j1", "requested", "processing")
        assert not store.compare_and_swap_state("j1", "requested", "processing")
        assert store.get_job(ORG, "j1").state == "processing"

    def test_get_job_scoped(self, store):
        store.create_job(job_record("j1"))
        assert store.get_job(OTHER_ORG, "j1") is None
        assert store.get_job_unscoped("j1").organization_id == ORG

    def test_find_completed_job_window(self, store):
        store.create_job(job_record("old", updated_at=time.time() - 1000))
        assert store.find_completed_job(ORG, "task_analysis", "task-1", "h", time.time() - 300) is None

        store.create_job(job_record("fresh"))
        found = store.find_completed_job(ORG, "task_analysis", "task-1", "h", time.time() - 300)
        assert found.id == "fresh"
        assert store.find_completed_job(ORG, "task_analysis", "task-1", "other", 0) is None

    def test_list_jobs_in_state(self, store):
        store.create_job(job_record("a", state="requested"))
        store.create_job(job_record("b", state="completed"))
        assert [j.id for j in store.list_jobs_in_state("requested")] == ["a"]


class TestAnalyses:
    """Task analysis projections."""

    def test_round_trip(self, store, story, good_task):
        now = datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc)
        analysis = replace(analyze(good_task, story, now=now), job_id="j1")
        store.insert_analysis(ORG, analysis)
        loaded = store.get_analysis(ORG, analysis.id)
        assert loaded.to_dict() == analysis.to_dict()
        assert store.get_analysis(OTHER_ORG, analysis.id) is None

    def test_history_newest_first(self, store, story, good_task):
        t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
        t1 = datetime(2026, 1, 2, tzinfo=timezone.utc)
        store.insert_analysis(ORG, analyze(good_task, story, analysis_id="a0", now=t0))
        store.insert_analysis(ORG, analyze(good_task, story, analysis_id="a1", now=t1))
        assert [a.id for a in store.list_task_analyses(ORG, "task-1")] == ["a1", "a0"]

    def test_latest_only_for_current_tasks(self, store, story, good_task):
        store.upsert_task(ORG, good_task)
        stray = TaskInput(task_id="gone", story_id="story-1", title="fix it")
        store.insert_analysis(ORG, analyze(good_task, story, analysis_id="a0"))
        store.insert_analysis(ORG, analyze(stray, story, analysis_id="a1"))
        assert [a.task_id for a in store.latest_story_analyses(ORG, "story-1")] == ["task-1"]


class TestSuggestions:
    """Suggestion projections and review."""

    def make(self, suggestion_id, confidence):
        return TaskSuggestion(
            id=suggestion_id,
            story_id="story-1",
            title=f"Task {suggestion_id}",
            description="d",
            confidence=confidence,
            batch_id="b1",
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

    def test_listed_by_confidence(self, store):
        store.insert_suggestions(ORG, [self.make("s1", 60), self.make("s2", 90)])
        assert [s.id for s in store.list_suggestions(ORG, "story-1")] == ["s2", "s1"]

    def test_review_only_from_pending(self, store):
        store.insert_suggestions(ORG, [self.make("s1", 60)])
        assert store.review_suggestion(ORG, "s1", SuggestionStatus.APPROVED)
        assert not store.review_suggestion(ORG, "s1", SuggestionStatus.REJECTED)

        suggestion = store.get_suggestion(ORG, "s1")
        assert suggestion.status == SuggestionStatus.APPROVED
        assert suggestion.reviewed_at is not None
        assert store.list_suggestions(ORG, "story-1", SuggestionStatus.PENDING) == []

    def test_review_scoped_by_org(self, store):
        store.insert_suggestions(ORG, [self.make("s1", 60)])
        assert not store.review_suggestion(OTHER_ORG, "s1", SuggestionStatus.APPROVED)


class TestRepoConfig:
    """Repository configuration."""

    def test_save_and_update(self, store):
        store.save_repo_config(ORG, "proj-1", "rc-1", "https://github.com/acme/a", None, False)
        store.save_repo_config(ORG, "proj-1", "rc-2", "https://github.com/acme/b", "main", True)
        config = store.get_repo_config(ORG, "proj-1")
        assert config.id == "rc-1"
        assert config.repo_url == "https://github.com/acme/b"
        assert config.validated
        assert store.get_repo_config(OTHER_ORG, "proj-1") is None

    def test_last_validated_kept_when_revalidation_fails(self, store):
        store.save_repo_config(ORG, "proj-1", "rc-1", "https://github.com/acme/a", None, False)
        assert store.get_repo_config(ORG, "proj-1").last_validated_at is None

        store.save_repo_config(ORG, "proj-1", "rc-1", "https://github.com/acme/a", "main", True)
        validated_at = store.get_repo_config(ORG, "proj-1").last_validated_at
        assert validated_at is not None

        store.save_repo_config(ORG, "proj-1", "rc-1", "https://github.com/acme/a", None, False)
        config = store.get_repo_config(ORG, "proj-1")
        assert not config.validated
        assert config.last_validated_at == validated_at


class TestStoryReadiness:
    """Readiness history and criteria edits."""

    def test_latest_wins(self, store, story):
        older = evaluate(story, [], evaluation_id="e-1", now=datetime(2026, 1, 1, tzinfo=timezone.utc))
        newer = evaluate(story, [], evaluation_id="e-2", now=datetime(2026, 1, 2, tzinfo=timezone.utc))
        store.insert_readiness(ORG, newer)
        store.insert_readiness(ORG, older)
        latest = store.latest_readiness(ORG, "story-1")
        assert latest == newer
        assert store.latest_readiness(OTHER_ORG, "story-1") is None

    def test_save_acceptance_criteria(self, store, story):
        store.upsert_story(ORG, story, "proj-1")
        criteria = story.acceptance_criteria + (AcceptanceCriterion(ac_id="AC-3", text="Given g, when w, then t"),)
        assert store.save_acceptance_criteria(ORG, "story-1", criteria)
        assert store.get_story(ORG, "story-1").acceptance_criteria == criteria
        assert store.get_story_project(ORG, "story-1") == "proj-1"
        assert not store.save_acceptance_criteria(OTHER_ORG, "story-1", criteria)

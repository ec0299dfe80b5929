"""Tests for the job state machine (readiness.workflow.fsm)."""

import time

import pytest

from readiness.store.models import JobRecord
from readiness.workflow.events import JOB_COMPLETED, JOB_FAILED, JOB_PROCESSING
from readiness.workflow.fsm import JobFSM
from readiness.workflow.state_machine import InvalidTransition, JobState

from conftest import ORG


def make_job(store, state="requested", job_id="job-1"):
    now = time.time()
    job = JobRecord(
        id=job_id,
        organization_id=ORG,
        kind="story_analysis",
        target_id="story-1",
        state=state,
        input_hash="h",
        created_at=now,
        updated_at=now,
    )
    store.create_job(job)
    return store.get_job(ORG, job_id)


class TestTransitions:
    """Happy-path transitions persist state and append events."""

    def test_claim_then_complete(self, store):
        fsm = JobFSM(store, make_job(store))

        assert fsm.fire("claim")
        assert fsm.job_state == JobState.PROCESSING
        assert fsm.fire("complete", result_count=3, provider="primary")

        job = store.get_job(ORG, "job-1")
        assert job.state == "completed"
        assert job.result_count == 3
        assert job.provider == "primary"
        assert store.list_events(ORG, "job-1") == [
            (JOB_PROCESSING, {"from": "requested"}),
            (JOB_COMPLETED, {"result_count": 3, "provider": "primary", "from": "processing"}),
        ]

    def test_fail_records_error(self, store):
        fsm = JobFSM(store, make_job(store))
        fsm.fire("claim")
        fsm.fire("fail", error_kind="provider_unavailable", error_message="no provider")

        job = store.get_job(ORG, "job-1")
        assert job.state == "failed"
        assert job.error_kind == "provider_unavailable"
        assert store.list_events(ORG, "job-1")[-1][0] == JOB_FAILED

    def test_fail_from_requested(self, store):
        fsm = JobFSM(store, make_job(store))
        assert fsm.fire("fail", error_kind="validation", error_message="bad")
        assert store.get_job(ORG, "job-1").state == "failed"

    def test_unknown_fields_not_written(self, store):
        fsm = JobFSM(store, make_job(store))
        fsm.fire("claim", state="completed", bogus=1)
        assert store.get_job(ORG, "job-1").state == "processing"


class TestGuards:
    """Invalid triggers and lost races."""

    def test_complete_from_requested_is_invalid(self, store):
        fsm = JobFSM(store, make_job(store))
        with pytest.raises(InvalidTransition) as exc_info:
            fsm.fire("complete")
        assert exc_info.value.from_state == "requested"
        assert exc_info.value.job_id == "job-1"

    def test_terminal_states_have_no_triggers(self, store):
        fsm = JobFSM(store, make_job(store, state="completed"))
        assert not fsm.can("claim")
        assert not fsm.can("fail")
        with pytest.raises(InvalidTransition):
            fsm.fire("claim")

    def test_lost_race_returns_false(self, store):
        job = make_job(store)
        first = JobFSM(store, job)
        second = JobFSM(store, job)

        assert first.fire("claim")
        assert not second.fire("claim")
        assert second.job_state == JobState.REQUESTED
        assert len(store.list_events(ORG, "job-1")) == 1

    def test_unknown_state_treated_as_failed(self, store):
        fsm = JobFSM(store, make_job(store, state="paused"))
        assert fsm.job_state == JobState.FAILED
        assert not fsm.can("claim")

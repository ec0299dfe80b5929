"""Tests for job states, kinds and event helpers."""

from readiness.workflow.events import JOB_REQUESTED, content_hash, event_type_for
from readiness.workflow.state_machine import InvalidTransition, JobKind, JobState, parse_state


class TestJobState:
    """Test JobState enum."""

    def test_terminal(self):
        assert JobState.COMPLETED.is_terminal
        assert JobState.FAILED.is_terminal
        assert not JobState.REQUESTED.is_terminal
        assert not JobState.PROCESSING.is_terminal

    def test_parse_state(self):
        assert parse_state("processing") == JobState.PROCESSING
        assert parse_state("paused") is None
        assert parse_state(None) is None

    def test_kinds(self):
        assert JobKind("task_suggestions") == JobKind.TASK_SUGGESTIONS


class TestInvalidTransition:
    """Test InvalidTransition message."""

    def test_message(self):
        error = InvalidTransition("completed", "claim", "job-9")
        assert "'claim' from completed" in str(error)
        assert "job-9" in str(error)


class TestEvents:
    """Test event helpers."""

    def test_event_type_for(self):
        assert event_type_for("requested") == JOB_REQUESTED

    def test_content_hash_ignores_key_order(self):
        assert content_hash({"a": 1, "b": [1, 2]}) == content_hash({"b": [1, 2], "a": 1})

    def test_content_hash_changes_with_input(self):
        assert content_hash({"a": 1}) != content_hash({"a": 2})

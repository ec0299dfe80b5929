"""Shared fixtures and in-memory port doubles."""

import pytest

from readiness.agents.language_model import FailoverLanguageModel, LanguageModelProvider
from readiness.analysis.models import AcceptanceCriterion, StoryContext, TaskInput
from readiness.lib.github import CodeMatch
from readiness.lib.repo_context import (
    CodeSearchResult,
    RepoContextPort,
    RepoStructure,
    RepoUnavailable,
)
from readiness.store.db import Database
from readiness.store.repository import ReadinessStore

ORG = "org-1"

GOOD_TASK = (
    "Create src/services/AuthService.ts with login(email, password) returning a JWT; "
    "link ac-001; add unit tests for invalid credentials"
)


def suggestion_payload(count: int = 3) -> dict:
    """Model output whose candidates all clear the readiness bar."""
    items = [
        {
            "title": "[Backend] Add session refresh endpoint",
            "description": (
                "Create src/auth/refresh.py with refresh_session(token) returning a new JWT; "
                "add unit tests for expired tokens"
            ),
            "confidence": 80,
            "acceptance_criteria_refs": ["AC-1"],
            "file_paths": ["src/auth/refresh.py"],
            "estimated_hours": 3,
        },
        {
            "title": "[Backend] Lock account after failed logins",
            "description": (
                "Update src/auth/login.py so login(email, password) returns 423 after 5 failures; "
                "add unit tests for invalid passwords"
            ),
            "confidence": 70,
            "acceptance_criteria_refs": ["AC-2"],
            "file_paths": ["src/auth/login.py"],
            "estimated_hours": 4,
        },
        {
            "title": "[Frontend] Show login error banner",
            "description": (
                "Create web/components/Login/ErrorBanner.tsx rendering the error message returned by "
                "POST /login; add unit tests for empty messages"
            ),
            "confidence": 60,
            "acceptance_criteria_refs": ["AC-2"],
            "file_paths": ["web/components/Login/ErrorBanner.tsx"],
            "estimated_hours": 2,
        },
    ]
    return {"suggestions": items[:count]}


class ScriptedProvider(LanguageModelProvider):
    """Returns (or raises) queued responses; the last one repeats."""

    def __init__(self, name: str, *responses):
        self.name = name
        self.responses = list(responses)
        self.calls: list[str] = []

    def complete_json(self, prompt: str, schema_name: str) -> dict:
        self.calls.append(schema_name)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class StaticRepoContext(RepoContextPort):
    """Repo context with a fixed answer."""

    def __init__(self, paths=None, matches=None, default_branch="main", unavailable_reason=None):
        self.paths = tuple(paths or ())
        self.matches = tuple(matches or ())
        self.branch = default_branch
        self.unavailable_reason = unavailable_reason
        self.structure_calls = 0
        self.search_calls = 0

    def get_repo_structure(self, repo_url, branch=None):
        self.structure_calls += 1
        if self.unavailable_reason or not repo_url:
            return RepoUnavailable(self.unavailable_reason or "No repository configured")
        return RepoStructure(repo_url=repo_url, sha="abc1234def", paths=self.paths)

    def default_branch(self, repo_url):
        if self.unavailable_reason:
            return RepoUnavailable(self.unavailable_reason)
        return self.branch

    def search_code(self, repo_url, query):
        self.search_calls += 1
        if self.unavailable_reason:
            return RepoUnavailable(self.unavailable_reason)
        return CodeSearchResult(query=query, matches=self.matches)


@pytest.fixture
def story():
    return StoryContext(
        story_id="story-1",
        title="User login",
        description="Users sign in with email and password.",
        acceptance_criteria=(
            AcceptanceCriterion(ac_id="AC-1", text="Sessions can be refreshed before expiry"),
            AcceptanceCriterion(ac_id="AC-2", text="Invalid login shows an error"),
        ),
    )


@pytest.fixture
def good_task():
    return TaskInput(task_id="task-1", story_id="story-1", title=GOOD_TASK)


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "readiness.db")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def store(db):
    return ReadinessStore(db)


@pytest.fixture
def repo_context():
    return StaticRepoContext(
        paths=["src/auth/login.py", "src/auth/session.py", "tests/test_login.py"],
        matches=[CodeMatch(path="src/auth/session.py", snippet="def refresh_session(token):")],
    )


def failover(*providers) -> FailoverLanguageModel:
    return FailoverLanguageModel(list(providers))

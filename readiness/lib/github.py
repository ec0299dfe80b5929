"""
GitHub REST helpers for repository context.

Thin httpx client over the three endpoints the readiness engine needs:
repository metadata (default branch), the recursive git tree for a commit,
and code search with text-match fragments.
"""

import logging
import re
from dataclasses import dataclass
from typing import NamedTuple

import httpx

from readiness.lib.errors import RepoHostError

logger = logging.getLogger(__name__)


# Timeout for GitHub API calls (seconds)
GH_TIMEOUT_SECONDS = 20

# Paths never worth showing to a model or a reviewer
IGNORED_DIRS = {
    ".git", "node_modules", "target", "dist", "build", "vendor",
    "__pycache__", ".venv", "venv", ".next", "coverage",
}

MAX_TREE_ENTRIES = 5000

_REPO_URL_PATTERN = re.compile(
    r'^(?:https?://(?:www\.)?github\.com/|git@github\.com:)'
    r'(?P<owner>[A-Za-z0-9_.-]+)/(?P<name>[A-Za-z0-9_.-]+?)(?:\.git)?/?$'
)


class RepoRef(NamedTuple):
    """owner/name pair parsed from a repository URL."""
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class CodeMatch:
    """One code-search hit."""
    path: str
    snippet: str


def parse_repo_url(url: str) -> RepoRef:
    """Parse https://github.com/owner/name(.git) or git@github.com:owner/name.git.

    Raises:
        ValueError: If the URL isn't a GitHub repository URL
    """
    match = _REPO_URL_PATTERN.match((url or "").strip())
    if not match:
        raise ValueError(f"Not a GitHub repository URL: {url!r}")
    return RepoRef(match.group("owner"), match.group("name"))


def is_ignored_path(path: str) -> bool:
    return any(part in IGNORED_DIRS for part in path.split("/"))


class GitHubClient:
    """Minimal GitHub REST client.

    Every failure (transport error, timeout, non-2xx) is raised as
    RepoHostError so callers have exactly one thing to catch.
    """

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: str | None = None,
        timeout: float = GH_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str, params: dict | None = None, headers: dict | None = None) -> dict:
        try:
            response = self._client.get(path, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise RepoHostError(f"GitHub API timeout: {path}") from e
        except httpx.HTTPError as e:
            raise RepoHostError(f"GitHub API unreachable: {e}") from e

        if response.status_code >= 400:
            remaining = response.headers.get("X-RateLimit-Remaining")
            if response.status_code == 403 and remaining == "0":
                message = "GitHub rate limit exhausted"
            else:
                message = f"GitHub API {response.status_code} for {path}"
            raise RepoHostError(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise RepoHostError(f"Invalid JSON from GitHub for {path}") from e

    def get_default_branch(self, repo: RepoRef) -> str:
        data = self._get(f"/repos/{repo.full_name}")
        return data.get("default_branch") or "main"

    def get_branch_sha(self, repo: RepoRef, branch: str) -> str:
        data = self._get(f"/repos/{repo.full_name}/commits/{branch}")
        sha = data.get("sha")
        if not sha:
            raise RepoHostError(f"No commit SHA for {repo.full_name}@{branch}")
        return sha

    def get_tree(self, repo: RepoRef, sha: str) -> list[str]:
        """Return file paths (blobs only) for a commit, minus ignored dirs."""
        data = self._get(f"/repos/{repo.full_name}/git/trees/{sha}", params={"recursive": "1"})
        if data.get("truncated"):
            logger.warning(f"[REPO] Tree for {repo.full_name}@{sha[:8]} truncated by GitHub")

        paths = []
        for entry in data.get("tree", []):
            if entry.get("type") != "blob":
                continue
            path = entry.get("path", "")
            if path and not is_ignored_path(path):
                paths.append(path)
            if len(paths) >= MAX_TREE_ENTRIES:
                break
        return sorted(paths)

    def search_code(self, repo: RepoRef, query: str, limit: int = 10) -> list[CodeMatch]:
        data = self._get(
            "/search/code",
            params={"q": f"{query} repo:{repo.full_name}", "per_page": str(limit)},
            headers={"Accept": "application/vnd.github.text-match+json"},
        )

        matches = []
        for item in data.get("items", [])[:limit]:
            path = item.get("path", "")
            if not path or is_ignored_path(path):
                continue
            fragments = [tm.get("fragment", "") for tm in item.get("text_matches") or []]
            snippet = next((f for f in fragments if f), "")
            matches.append(CodeMatch(path=path, snippet=snippet.strip()))
        return matches

"""
Repository context port.

Callers ask for a repository's file listing or for code matching a query.
The answer is either data or an explicit RepoUnavailable value; nothing on
this path raises past the port, so suggestion runs degrade to story-only
context instead of failing.

Wrapping order for the GitHub adapter:
  fallback (no repo / host error -> RepoUnavailable)
    -> rate limiter (structure waits, search fails fast)
      -> structure cache (keyed by repo url + commit SHA)
        -> GitHubClient
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from readiness.lib.cache import TTLCache
from readiness.lib.errors import RepoHostError
from readiness.lib.github import CodeMatch, GitHubClient, parse_repo_url
from readiness.lib.ratelimit import TokenBucket

logger = logging.getLogger(__name__)

STRUCTURE_CACHE_TTL_SECONDS = 3600
STRUCTURE_WAIT_SECONDS = 10.0


@dataclass(frozen=True)
class RepoUnavailable:
    """Repository context could not be obtained. Not an error."""
    reason: str
    available: bool = field(default=False, init=False)


@dataclass(frozen=True)
class RepoStructure:
    """File listing of a repository at a specific commit."""
    repo_url: str
    sha: str
    paths: tuple[str, ...]
    available: bool = field(default=True, init=False)


@dataclass(frozen=True)
class CodeSearchResult:
    """Code search hits for one query."""
    query: str
    matches: tuple[CodeMatch, ...]
    available: bool = field(default=True, init=False)


class RepoContextPort(ABC):
    """Capability boundary to a source-code host."""

    @abstractmethod
    def get_repo_structure(self, repo_url: str | None, branch: str | None = None) -> RepoStructure | RepoUnavailable:
        """File paths of the repository's branch head."""

    @abstractmethod
    def default_branch(self, repo_url: str) -> str | RepoUnavailable:
        """Default branch name, used to validate a repository link."""

    @abstractmethod
    def search_code(self, repo_url: str | None, query: str) -> CodeSearchResult | RepoUnavailable:
        """Paths and snippets matching query. Never cached."""


class GitHubRepoContext(RepoContextPort):
    """RepoContextPort backed by the GitHub REST API."""

    def __init__(
        self,
        client: GitHubClient,
        bucket: TokenBucket,
        cache: TTLCache | None = None,
        structure_wait_seconds: float = STRUCTURE_WAIT_SECONDS,
    ):
        self.client = client
        self.bucket = bucket
        self.cache = cache if cache is not None else TTLCache(STRUCTURE_CACHE_TTL_SECONDS)
        self.structure_wait_seconds = structure_wait_seconds

    def get_repo_structure(self, repo_url: str | None, branch: str | None = None) -> RepoStructure | RepoUnavailable:
        if not repo_url:
            return RepoUnavailable("No repository configured")

        try:
            repo = parse_repo_url(repo_url)
        except ValueError as e:
            return RepoUnavailable(str(e))

        ref = branch or "HEAD"

        # Structure fetches are worth waiting for
        if not self.bucket.acquire(timeout=self.structure_wait_seconds):
            logger.warning(f"[REPO] Rate limit wait exceeded resolving {repo.full_name}@{ref}")
            return RepoUnavailable("Source host rate limit exceeded")

        try:
            sha = self.client.get_branch_sha(repo, ref)
        except RepoHostError as e:
            logger.warning(f"[REPO] Could not resolve {repo.full_name}@{ref}: {e}")
            return RepoUnavailable(str(e))

        key = (repo_url, sha)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"[REPO] Structure cache hit for {repo.full_name}@{sha[:8]}")
            return cached

        if not self.bucket.acquire(timeout=self.structure_wait_seconds):
            logger.warning(f"[REPO] Rate limit wait exceeded fetching tree for {repo.full_name}")
            return RepoUnavailable("Source host rate limit exceeded")

        try:
            paths = self.client.get_tree(repo, sha)
        except RepoHostError as e:
            logger.warning(f"[REPO] Could not list {repo.full_name}@{sha[:8]}: {e}")
            return RepoUnavailable(str(e))

        structure = RepoStructure(repo_url=repo_url, sha=sha, paths=tuple(paths))
        self.cache.set(key, structure)
        logger.info(f"[REPO] Cached {len(paths)} paths for {repo.full_name}@{sha[:8]}")
        return structure

    def default_branch(self, repo_url: str) -> str | RepoUnavailable:
        try:
            repo = parse_repo_url(repo_url)
        except ValueError as e:
            return RepoUnavailable(str(e))

        if not self.bucket.acquire(timeout=self.structure_wait_seconds):
            return RepoUnavailable("Source host rate limit exceeded")

        try:
            return self.client.get_default_branch(repo)
        except RepoHostError as e:
            logger.warning(f"[REPO] Could not validate {repo.full_name}: {e}")
            return RepoUnavailable(str(e))

    def search_code(self, repo_url: str | None, query: str) -> CodeSearchResult | RepoUnavailable:
        if not repo_url:
            return RepoUnavailable("No repository configured")

        try:
            repo = parse_repo_url(repo_url)
        except ValueError as e:
            return RepoUnavailable(str(e))

        # Ad-hoc search fails fast rather than queueing
        if not self.bucket.try_acquire():
            logger.info(f"[REPO] Search for {query!r} skipped: rate limited")
            return RepoUnavailable("Source host rate limit exceeded")

        try:
            matches = self.client.search_code(repo, query)
        except RepoHostError as e:
            logger.warning(f"[REPO] Search for {query!r} in {repo.full_name} failed: {e}")
            return RepoUnavailable(str(e))

        return CodeSearchResult(query=query, matches=tuple(matches))


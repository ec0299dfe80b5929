"""
Language-model port.

Providers are ranked by their order in providers.yaml. Selection is
fail-over, not load-balancing: the primary is tried first and the secondary
only after a transient failure (timeout, 5xx, malformed payload, schema
mismatch). At most two attempts are made per request. A rejected API key
(401/403) is a configuration problem: it raises ProviderAuthError straight
away instead of failing over.

Every payload is schema-validated before it is returned, so a structurally
invalid response is a provider failure, never silently accepted data.
"""

import logging
import re
from abc import ABC, abstractmethod

import httpx

from readiness.analysis.models import ClarityScore, StoryContext, TaskInput
from readiness.lib.config import ProvidersConfig, SecretsStore
from readiness.lib.constants import MAX_GENERATED_CRITERIA, MIN_GENERATED_CRITERIA
from readiness.lib.errors import ProviderAuthError, ProviderTransientError, ProviderUnavailable
from readiness.lib.prompts import build_list_section, build_section, render_prompt
from readiness.lib.repo_context import RepoStructure, RepoUnavailable
from readiness.lib.validate import SchemaValidationError, parse_and_validate

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2
AUTH_STATUSES = (401, 403)
REPO_PATHS_IN_PROMPT = 150

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n(.*?)\n```\s*$", re.DOTALL)


def strip_markdown_fences(text: str) -> str:
    """Strip a surrounding markdown code fence if present."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


class LanguageModelProvider(ABC):
    """One concrete model endpoint."""

    name: str

    @abstractmethod
    def complete_json(self, prompt: str, schema_name: str) -> dict:
        """Send prompt and return the schema-validated JSON reply.

        Raises:
            ProviderAuthError: API key rejected
            ProviderTransientError: on timeout, HTTP error, or invalid payload
        """


class ChatCompletionsProvider(LanguageModelProvider):
    """Adapter for OpenAI-compatible /chat/completions endpoints."""

    def __init__(
        self,
        name: str,
        base_url: str,
        model: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.name = name
        self.model = model
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def complete_json(self, prompt: str, schema_name: str) -> dict:
        body = {
            "model": self.model,
            "temperature": 0,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            response = self._client.post("/chat/completions", json=body)
        except httpx.TimeoutException:
            raise ProviderTransientError(self.name, "request timed out") from None
        except httpx.HTTPError as e:
            raise ProviderTransientError(self.name, f"request failed: {e}") from None

        if response.status_code in AUTH_STATUSES:
            logger.error(f"[LLM] {self.name} rejected the API key (HTTP {response.status_code})")
            raise ProviderAuthError(self.name, f"HTTP {response.status_code}: API key rejected")
        if response.status_code >= 400:
            raise ProviderTransientError(self.name, f"HTTP {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise ProviderTransientError(self.name, "unexpected response envelope") from None

        try:
            return parse_and_validate(strip_markdown_fences(content or ""), schema_name)
        except SchemaValidationError as e:
            raise ProviderTransientError(self.name, f"invalid payload: {e}") from None

    def close(self) -> None:
        self._client.close()


def _criteria_section(story: StoryContext) -> str:
    items = [f"{ac.ac_id}: {ac.text}" for ac in story.acceptance_criteria]
    return build_list_section(items, "## Acceptance Criteria", "(none defined)")


def _repo_section(repo: RepoStructure | RepoUnavailable | None) -> str:
    if repo is None or not repo.available:
        reason = repo.reason if repo is not None else "no repository linked"
        return build_section(None, "## Repository", f"(not available: {reason})")
    return build_list_section(
        list(repo.paths), f"## Repository files ({repo.sha[:7]})", limit=REPO_PATHS_IN_PROMPT
    )


class FailoverLanguageModel:
    """Primary/secondary fail-over over configured providers."""

    def __init__(self, providers: list[LanguageModelProvider]):
        self.providers = list(providers)

    @property
    def is_configured(self) -> bool:
        return bool(self.providers)

    def complete(self, prompt: str, schema_name: str) -> tuple[dict, str]:
        """Return (payload, provider name) from the first provider that succeeds.

        Raises:
            ProviderUnavailable: no provider configured
            ProviderTransientError: every attempted provider failed
        """
        if not self.providers:
            raise ProviderUnavailable()

        last_error = None
        for provider in self.providers[:MAX_ATTEMPTS]:
            try:
                payload = provider.complete_json(prompt, schema_name)
            except ProviderTransientError as e:
                logger.warning(f"[LLM] {provider.name} failed: {e}")
                last_error = e
                continue
            logger.info(f"[LLM] {schema_name} answered by {provider.name}")
            return payload, provider.name

        raise last_error

    def analyze_task(self, task: TaskInput, story: StoryContext | None, score: ClarityScore) -> tuple[dict, str]:
        story_section = ""
        criteria_section = ""
        if story is not None:
            story_section = build_section(story.description or None, f"## Story: {story.title}", "")
            criteria_section = _criteria_section(story)
        score_lines = [f"{name}: {value}" for name, value in score.subscores.items()]
        score_lines.append(f"overall: {score.overall}")
        prompt = render_prompt(
            "analyze_task",
            task_title=task.title,
            task_description=task.description or "(no description)",
            story_section=story_section,
            criteria_section=criteria_section,
            score_section=build_list_section(score_lines, "## Rule-based scores"),
        )
        return self.complete(prompt, "task_analysis")

    def suggest_tasks(
        self,
        story: StoryContext,
        existing_titles: list[str],
        repo: RepoStructure | RepoUnavailable | None,
        max_suggestions: int,
    ) -> tuple[dict, str]:
        prompt = render_prompt(
            "suggest_tasks",
            story_title=story.title,
            story_description=story.description or "(no description)",
            criteria_section=_criteria_section(story),
            existing_tasks_section=build_list_section(existing_titles, "## Existing tasks", "(none)"),
            repo_section=_repo_section(repo),
            max_suggestions=max_suggestions,
        )
        return self.complete(prompt, "task_suggestions")

    def generate_acceptance_criteria(self, story: StoryContext, next_ac_id: str) -> tuple[dict, str]:
        prompt = render_prompt(
            "generate_criteria",
            story_title=story.title,
            story_description=story.description or "(no description)",
            criteria_section=_criteria_section(story),
            min_criteria=MIN_GENERATED_CRITERIA,
            max_criteria=MAX_GENERATED_CRITERIA,
            next_ac_id=next_ac_id,
        )
        return self.complete(prompt, "acceptance_criteria")


def build_language_model(
    config: ProvidersConfig,
    secrets: SecretsStore,
    transport: httpx.BaseTransport | None = None,
) -> FailoverLanguageModel:
    """Instantiate providers in configured order, skipping those without a key."""
    providers = []
    for entry in config.providers:
        api_key = secrets.get(entry.api_key_secret)
        if not api_key:
            logger.warning(f"[LLM] Skipping provider {entry.name}: secret {entry.api_key_secret} not set")
            continue
        providers.append(ChatCompletionsProvider(
            name=entry.name,
            base_url=entry.base_url,
            model=entry.model,
            api_key=api_key,
            timeout=entry.timeout,
            transport=transport,
        ))

    if not providers:
        logger.warning("[LLM] No language model provider configured")
    return FailoverLanguageModel(providers)

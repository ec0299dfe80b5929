"""
Task suggestion synthesis.

Combines a story, the repository context (when the host is reachable) and
language-model candidates into a ranked, de-duplicated list of new tasks.
Each candidate is re-scored with the clarity scorer and dropped if it would
not itself be ready; suggestions that would need their own rewrite are noise.

Repository context is optional. When it is unavailable the run still
completes from story context alone, with lower confidence.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from difflib import SequenceMatcher

from readiness.agents.language_model import FailoverLanguageModel
from readiness.analysis import clarity
from readiness.analysis.models import (
    CodeExample,
    StoryContext,
    SuggestionStatus,
    TaskInput,
    TaskSuggestion,
)
from readiness.analysis.recommendations import suggest_relevant_ac_ids
from readiness.analysis.signals import IDENTIFIER_RE, keywords, normalize_ac_id
from readiness.lib.constants import MAX_SUGGESTIONS, MIN_SUGGESTIONS, READY_THRESHOLD
from readiness.lib.repo_context import RepoContextPort, RepoStructure, RepoUnavailable

logger = logging.getLogger(__name__)

DUPLICATE_THRESHOLD = 0.8

LLM_WEIGHT = 0.6
CLARITY_WEIGHT = 0.4
REPO_MATCH_BONUS = 10
REPO_UNAVAILABLE_PENALTY = 15

MAX_FILE_PATHS = 5
MAX_CODE_EXAMPLES = 2


@dataclass
class SuggestionRun:
    """Output of one synthesis run."""
    suggestions: list[TaskSuggestion]
    provider: str
    repo_available: bool
    dropped: int = 0


def clamp_max_suggestions(value: int) -> int:
    return max(MIN_SUGGESTIONS, min(MAX_SUGGESTIONS, value))


def is_duplicate(title: str, existing: list[str], threshold: float = DUPLICATE_THRESHOLD) -> bool:
    """True if title is close to any existing title (case-insensitive)."""
    lowered = title.lower().strip()
    for candidate in existing:
        if SequenceMatcher(None, lowered, candidate.lower().strip()).ratio() >= threshold:
            return True
    return False


def _normalize_confidence(value) -> int:
    # Some models answer a 0-1 fraction despite the 0-100 scale; integers are taken as-is
    value = float(value)
    if 0 < value < 1:
        value *= 100
    return int(max(0, min(100, value)))


def _valid_refs(refs: list[str], story: StoryContext) -> list[str]:
    by_key = {normalize_ac_id(ac_id): ac_id for ac_id in story.ac_ids}
    out = []
    for ref in refs:
        ac_id = by_key.get(normalize_ac_id(ref))
        if ac_id and ac_id not in out:
            out.append(ac_id)
    return out


def _match_repo_paths(candidate_paths: list[str], title: str, repo: RepoStructure) -> list[str]:
    """Candidate paths that exist in the repo, then paths sharing title keywords."""
    known = set(repo.paths)
    matched = [p for p in candidate_paths if p in known]
    words = keywords(title)
    for path in repo.paths:
        if len(matched) >= MAX_FILE_PATHS:
            break
        if path not in matched and words & keywords(path.replace("/", " ").replace(".", " ")):
            matched.append(path)
    return matched[:MAX_FILE_PATHS]


def _search_query(title: str, description: str) -> str | None:
    identifiers = IDENTIFIER_RE.findall(f"{title} {description}")
    if identifiers:
        return identifiers[0]
    words = sorted(keywords(title), key=lambda w: (-len(w), w))
    return words[0] if words else None


def _enrich_description(description: str, file_paths: list[str], refs: list[str]) -> str:
    lines = [description.strip()]
    missing_paths = [p for p in file_paths if p not in description]
    if missing_paths:
        lines.append(f"Files: {', '.join(missing_paths)}")
    missing_refs = [r for r in refs if r.lower() not in description.lower()]
    if missing_refs:
        lines.append(f"Covers: {', '.join(missing_refs)}")
    return "\n".join(lines)


def compute_confidence(llm_confidence: int, clarity_score: int, repo_available: bool, repo_matched: bool) -> int:
    value = LLM_WEIGHT * llm_confidence + CLARITY_WEIGHT * clarity_score
    if not repo_available:
        value -= REPO_UNAVAILABLE_PENALTY
    elif repo_matched:
        value += REPO_MATCH_BONUS
    return int(max(0, min(100, value + 0.5)))


class SuggestionSynthesizer:
    """Builds TaskSuggestions for a story from model output plus repo context."""

    def __init__(
        self,
        language_model: FailoverLanguageModel,
        repo_context: RepoContextPort,
        max_suggestions: int = MAX_SUGGESTIONS,
    ):
        self.language_model = language_model
        self.repo_context = repo_context
        self.max_suggestions = clamp_max_suggestions(max_suggestions)

    def synthesize(
        self,
        story: StoryContext,
        existing_titles: list[str],
        repo_url: str | None = None,
        branch: str | None = None,
        batch_id: str | None = None,
    ) -> SuggestionRun:
        """Produce ranked suggestions for a story.

        Raises:
            ProviderUnavailable: no language model configured
            ProviderTransientError: every provider attempt failed
        """
        if repo_url:
            repo = self.repo_context.get_repo_structure(repo_url, branch)
        else:
            repo = RepoUnavailable("no repository linked")
        if not repo.available:
            logger.info(f"[SUGGEST] {story.story_id}: repository context unavailable ({repo.reason})")

        payload, provider = self.language_model.suggest_tasks(
            story, existing_titles, repo, self.max_suggestions
        )

        batch_id = batch_id or str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        seen_titles = list(existing_titles)
        kept = []
        dropped = 0

        for candidate in payload["suggestions"]:
            title = candidate["title"].strip()
            if is_duplicate(title, seen_titles):
                logger.debug(f"[SUGGEST] Dropping duplicate: {title}")
                dropped += 1
                continue

            suggestion = self._build(candidate, story, repo, repo_url, batch_id, now)
            if suggestion is None:
                dropped += 1
                continue
            seen_titles.append(title)
            kept.append(suggestion)

        kept.sort(key=lambda s: (-s.confidence, s.title))
        if len(kept) > self.max_suggestions:
            dropped += len(kept) - self.max_suggestions
            kept = kept[:self.max_suggestions]

        logger.info(
            f"[SUGGEST] {story.story_id}: {len(kept)} suggestions from {provider} "
            f"({dropped} dropped, repo={'yes' if repo.available else 'no'})"
        )
        return SuggestionRun(suggestions=kept, provider=provider, repo_available=repo.available, dropped=dropped)

    def _build(
        self,
        candidate: dict,
        story: StoryContext,
        repo: RepoStructure | RepoUnavailable,
        repo_url: str | None,
        batch_id: str,
        now: datetime,
    ) -> TaskSuggestion | None:
        title = candidate["title"].strip()
        description = candidate["description"].strip()

        refs = _valid_refs(candidate.get("acceptance_criteria_refs", []), story)
        if not refs:
            draft = TaskInput(task_id="", story_id=story.story_id, title=title, description=description)
            refs = suggest_relevant_ac_ids(draft, story)

        file_paths = list(candidate.get("file_paths", []))[:MAX_FILE_PATHS]
        code_examples = []
        repo_matched = False
        if repo.available:
            matched = _match_repo_paths(file_paths, title, repo)
            repo_matched = bool(matched)
            file_paths = matched or file_paths
            code_examples = self._code_examples(repo_url, title, description)

        description = _enrich_description(description, file_paths, refs)
        task = TaskInput(
            task_id="",
            story_id=story.story_id,
            title=title,
            description=description,
            acceptance_criteria_refs=tuple(refs),
        )
        score = clarity.score(task, story)
        if score.overall < READY_THRESHOLD:
            logger.debug(f"[SUGGEST] Dropping '{title}': clarity {score.overall} < {READY_THRESHOLD}")
            return None

        confidence = compute_confidence(
            _normalize_confidence(candidate.get("confidence", 50)),
            score.overall,
            repo.available,
            repo_matched,
        )
        return TaskSuggestion(
            id=str(uuid.uuid4()),
            story_id=story.story_id,
            title=title,
            description=description,
            confidence=confidence,
            file_paths=tuple(file_paths),
            code_examples=tuple(code_examples),
            acceptance_criteria_refs=tuple(refs),
            estimated_hours=candidate.get("estimated_hours"),
            status=SuggestionStatus.PENDING,
            clarity_score=score.overall,
            batch_id=batch_id,
            created_at=now,
        )

    def _code_examples(self, repo_url: str, title: str, description: str) -> list[CodeExample]:
        query = _search_query(title, description)
        if not query:
            return []
        result = self.repo_context.search_code(repo_url, query)
        if not result.available:
            return []
        return [
            CodeExample(file_path=m.path, snippet=m.snippet, relevance=f"Matches '{query}'")
            for m in result.matches[:MAX_CODE_EXAMPLES]
        ]

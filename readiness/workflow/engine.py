"""Job orchestration for task analysis and suggestion runs.

Commands create a job in `requested`, record the request event and hand the
job id to the dispatcher. A worker claims the job (compare-and-swap), calls
the ports, writes projections and completes or fails the job. Queries only
read projections.

Single-task analysis runs inline: it is cheap enough to answer synchronously
and goes through the same job lifecycle so it shows up in the audit log.

Story readiness evaluation and acceptance-criteria edits are synchronous and
create no job. Criteria edits of one engine are serialized so ids stay unique.

Port errors are classified before they reach the job row:
  ProviderUnavailable     -> failed (provider_unavailable) straight from requested
                             when no provider is configured, not retried
  ProviderTransientError  -> failed (provider_transient) after fail-over
  RepoUnavailable         -> not an error; suggestions use story context only
"""

import json
import logging
import threading
import time
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from readiness.agents.language_model import FailoverLanguageModel
from readiness.analysis import analyzer, story_readiness
from readiness.analysis.models import (
    AcceptanceCriterion,
    StoryAnalysisSummary,
    StoryContext,
    StoryReadiness,
    SuggestionStatus,
    TaskAnalysis,
    TaskInput,
    TaskSuggestion,
)
from readiness.analysis.signals import normalize_ac_id
from readiness.analysis.summary import summarize_story
from readiness.lib.constants import MAX_GENERATED_CRITERIA
from readiness.lib.errors import (
    ErrorKind,
    NotFound,
    ProviderTransientError,
    ProviderUnavailable,
    ReadinessError,
    ValidationError,
)
from readiness.lib.github import parse_repo_url
from readiness.lib.repo_context import RepoContextPort
from readiness.pm.synthesizer import SuggestionSynthesizer
from readiness.store.models import JobRecord, RepoConfigRecord
from readiness.store.repository import ReadinessStore
from readiness.workflow.events import JOB_REQUESTED, content_hash
from readiness.workflow.fsm import JobFSM
from readiness.workflow.projections import Projector
from readiness.workflow.state_machine import JobKind, JobState

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 300


class ReadinessEngine:
    """Commands, job execution and queries for one deployment."""

    def __init__(
        self,
        store: ReadinessStore,
        language_model: FailoverLanguageModel,
        repo_context: RepoContextPort,
        synthesizer: SuggestionSynthesizer | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        llm_enrich_analysis: bool = False,
    ):
        self.store = store
        self.language_model = language_model
        self.repo_context = repo_context
        self.synthesizer = synthesizer or SuggestionSynthesizer(language_model, repo_context)
        self.projector = Projector(store)
        self.debounce_seconds = debounce_seconds
        self.llm_enrich_analysis = llm_enrich_analysis
        self._dispatch: Callable[[str], None] = self.run_job
        self._criteria_lock = threading.Lock()

    def set_dispatcher(self, dispatch: Callable[[str], None]) -> None:
        """Route queued job ids somewhere other than inline execution (e.g. WorkerPool)."""
        self._dispatch = dispatch

    # Backlog ingestion

    def upsert_story(self, org_id: str, story_id: str, project_id: str, title: str,
                     description: str = "", acceptance_criteria: list[dict] | None = None) -> StoryContext:
        if not title.strip():
            raise ValidationError("Story title must not be empty")
        criteria = tuple(
            AcceptanceCriterion(ac_id=str(ac["ac_id"]).strip(), text=ac.get("text", ""))
            for ac in acceptance_criteria or []
        )
        if any(not ac.ac_id for ac in criteria):
            raise ValidationError("Acceptance criteria need an ac_id")
        story = StoryContext(story_id=story_id, title=title.strip(), description=description,
                             acceptance_criteria=criteria)
        self.store.upsert_story(org_id, story, project_id)
        logger.debug(f"[INGEST] story {story_id} ({len(criteria)} criteria)")
        return story

    def upsert_task(self, org_id: str, task_id: str, story_id: str, title: str, description: str = "",
                    acceptance_criteria_refs: list[str] | None = None,
                    estimated_hours: float | None = None) -> TaskInput:
        if not (title.strip() or description.strip()):
            raise ValidationError("Task text must not be empty")
        if self.store.get_story(org_id, story_id) is None:
            raise NotFound(f"Story {story_id} not found")
        task = TaskInput(
            task_id=task_id,
            story_id=story_id,
            title=title.strip(),
            description=description,
            acceptance_criteria_refs=tuple(acceptance_criteria_refs or ()),
            estimated_hours=estimated_hours,
        )
        self.store.upsert_task(org_id, task)
        logger.debug(f"[INGEST] task {task_id} in story {story_id}")
        return task

    # Commands

    def analyze_task(self, org_id: str, task_id: str) -> TaskAnalysis:
        """Analyze one task inline and return the analysis.

        Raises:
            NotFound: unknown task or story
            ValidationError: task has no text
            ProviderUnavailable / ProviderTransientError: LLM enrichment is on and failed
        """
        task = self._require_task(org_id, task_id)
        story = self._require_story(org_id, task.story_id)

        inputs = self._analysis_inputs(story, [task])
        job, reused = self._create_job(org_id, JobKind.TASK_ANALYSIS, task_id, inputs)
        if not reused:
            self._start(job, self.run_job)
            job = self.store.get_job(org_id, job.id)

        if job.state == JobState.FAILED.value:
            raise _error_for(job)
        history = self.store.list_task_analyses(org_id, task_id)
        for analysis in history:
            if analysis.job_id == job.id:
                return analysis
        raise ReadinessError(f"Job {job.id} completed without an analysis")

    def submit_story_analysis(self, org_id: str, story_id: str) -> JobRecord:
        story = self._require_story(org_id, story_id)
        tasks = self.store.list_tasks(org_id, story_id)
        job, reused = self._create_job(org_id, JobKind.STORY_ANALYSIS, story_id,
                                       self._analysis_inputs(story, tasks))
        if not reused:
            job = self._start(job, self._dispatch)
        return job

    def submit_suggestions(self, org_id: str, story_id: str, use_repo_context: bool = True) -> JobRecord:
        story = self._require_story(org_id, story_id)
        tasks = self.store.list_tasks(org_id, story_id)
        repo_url, branch = self._repo_for_story(org_id, story_id) if use_repo_context else (None, None)
        inputs = {
            "story": _story_inputs(story),
            "existing": sorted(t.title for t in tasks),
            "repo_url": repo_url,
            "branch": branch,
        }
        job, reused = self._create_job(org_id, JobKind.TASK_SUGGESTIONS, story_id, inputs,
                                       params={"use_repo_context": use_repo_context})
        if not reused:
            job = self._start(job, self._dispatch)
        return job

    def review_suggestion(self, org_id: str, suggestion_id: str, status: SuggestionStatus) -> TaskSuggestion:
        if status == SuggestionStatus.PENDING:
            raise ValidationError("A suggestion can only be approved or rejected")
        current = self.store.get_suggestion(org_id, suggestion_id)
        if current is None:
            raise NotFound(f"Suggestion {suggestion_id} not found")
        if not self.store.review_suggestion(org_id, suggestion_id, status):
            raise ValidationError(
                f"Suggestion {suggestion_id} is already {self.store.get_suggestion(org_id, suggestion_id).status.value}"
            )
        logger.info(f"[SUGGEST] {suggestion_id}: {status.value}")
        return self.store.get_suggestion(org_id, suggestion_id)

    def configure_repo(self, org_id: str, project_id: str, repo_url: str) -> RepoConfigRecord:
        """Link a repository to a project. Unreachable repos are saved unvalidated."""
        repo_url = repo_url.strip()
        try:
            parse_repo_url(repo_url)
        except ValueError as e:
            raise ValidationError(str(e)) from None

        branch = self.repo_context.default_branch(repo_url)
        validated = isinstance(branch, str)
        if not validated:
            logger.info(f"[REPO] {repo_url} saved unvalidated: {branch.reason}")
        existing = self.store.get_repo_config(org_id, project_id)
        return self.store.save_repo_config(
            org_id,
            project_id,
            config_id=existing.id if existing else str(uuid.uuid4()),
            repo_url=repo_url,
            default_branch=branch if validated else None,
            validated=validated,
        )

    def get_repo_config(self, org_id: str, project_id: str) -> RepoConfigRecord:
        config = self.store.get_repo_config(org_id, project_id)
        if config is None:
            raise NotFound(f"No repository configured for project {project_id}")
        return config

    # Story readiness and acceptance criteria

    def evaluate_story_readiness(self, org_id: str, story_id: str) -> StoryReadiness:
        story = self._require_story(org_id, story_id)
        tasks = self.store.list_tasks(org_id, story_id)
        readiness = story_readiness.evaluate(story, tasks)
        self.store.insert_readiness(org_id, readiness)
        logger.info(f"[READINESS] {story_id}: score={readiness.score} ready={readiness.is_ready}")
        return readiness

    def story_readiness(self, org_id: str, story_id: str) -> StoryReadiness:
        self._require_story(org_id, story_id)
        readiness = self.store.latest_readiness(org_id, story_id)
        if readiness is None:
            raise NotFound(f"Story {story_id} has not been evaluated")
        return readiness

    def acceptance_criteria(self, org_id: str, story_id: str) -> list[AcceptanceCriterion]:
        return list(self._require_story(org_id, story_id).acceptance_criteria)

    def add_acceptance_criteria(self, org_id: str, story_id: str, criteria: list[dict]) -> list[AcceptanceCriterion]:
        """Append Given/When/Then criteria to a story.

        Raises:
            NotFound: unknown story
            ValidationError: empty batch, a blank part, or an ac_id the story already has
        """
        added = []
        for item in criteria:
            ac_id = str(item.get("ac_id", "")).strip()
            parts = [str(item.get(key, "")).strip() for key in ("given", "when", "then")]
            if not ac_id or not all(parts):
                raise ValidationError("Each acceptance criterion needs ac_id, given, when and then")
            added.append(AcceptanceCriterion(ac_id=ac_id, text=story_readiness.criterion_text(*parts)))
        if not added:
            raise ValidationError("No acceptance criteria given")

        with self._criteria_lock:
            story = self._require_story(org_id, story_id)
            taken = {normalize_ac_id(ac_id) for ac_id in story.ac_ids}
            for ac in added:
                key = normalize_ac_id(ac.ac_id)
                if key in taken:
                    raise ValidationError(f"Story {story_id} already has acceptance criterion {ac.ac_id}")
                taken.add(key)
            self.store.save_acceptance_criteria(org_id, story_id, story.acceptance_criteria + tuple(added))
        logger.info(f"[CRITERIA] {story_id}: added {', '.join(ac.ac_id for ac in added)}")
        return added

    def generate_acceptance_criteria(self, org_id: str, story_id: str) -> list[AcceptanceCriterion]:
        """Ask the language model for new criteria and append them to the story.

        Ids the model reuses are renumbered to the next free AC<n>.

        Raises:
            NotFound: unknown story
            ProviderUnavailable / ProviderTransientError: no usable language model
        """
        story = self._require_story(org_id, story_id)
        payload, provider = self.language_model.generate_acceptance_criteria(
            story, story_readiness.next_ac_id(story.ac_ids)
        )

        with self._criteria_lock:
            story = self._require_story(org_id, story_id)
            ids = list(story.ac_ids)
            generated = []
            for item in payload["criteria"][:MAX_GENERATED_CRITERIA]:
                ac_id = item["ac_id"].strip()
                if not ac_id or normalize_ac_id(ac_id) in {normalize_ac_id(i) for i in ids}:
                    ac_id = story_readiness.next_ac_id(ids)
                ids.append(ac_id)
                generated.append(AcceptanceCriterion(
                    ac_id=ac_id,
                    text=story_readiness.criterion_text(item["given"], item["when"], item["then"]),
                ))
            self.store.save_acceptance_criteria(org_id, story_id, story.acceptance_criteria + tuple(generated))
        logger.info(f"[CRITERIA] {story_id}: {len(generated)} generated by {provider}")
        return generated

    def invalid_ac_refs(self, org_id: str, story_id: str, refs: list[str]) -> list[str]:
        """Refs that match none of the story's acceptance criteria."""
        return story_readiness.invalid_refs(self._require_story(org_id, story_id), refs)

    # Job execution

    def _needs_provider(self, kind: JobKind) -> bool:
        return kind == JobKind.TASK_SUGGESTIONS or self.llm_enrich_analysis

    def _start(self, job: JobRecord, run: Callable[[str], None]) -> JobRecord:
        """Hand a new job to run, or fail it from requested when no provider is configured.

        A job that cannot succeed without a language model never reaches
        processing; it is not retried either.
        """
        if self._needs_provider(JobKind(job.kind)) and not self.language_model.is_configured:
            error = ProviderUnavailable()
            logger.warning(f"[JOB] {job.id}: {error}")
            JobFSM(self.store, job).fire("fail", error_kind=error.kind.value, error_message=str(error))
            return self.store.get_job(job.organization_id, job.id)
        run(job.id)
        return job

    def run_job(self, job_id: str) -> None:
        """Claim and execute a job. Safe to call from several workers."""
        job = self.store.get_job_unscoped(job_id)
        if job is None:
            logger.warning(f"[JOB] {job_id}: not found, skipping")
            return

        fsm = JobFSM(self.store, job)
        if not fsm.can("claim") or not fsm.fire("claim"):
            logger.debug(f"[JOB] {job_id}: not claimable (state={fsm.state})")
            return

        try:
            result_count, provider = self._execute(job)
        except ReadinessError as e:
            logger.warning(f"[JOB] {job_id}: failed ({e.kind.value}): {e}")
            fsm.fire("fail", error_kind=e.kind.value, error_message=str(e))
            return
        except Exception as e:
            logger.exception(f"[JOB] {job_id}: unexpected error")
            fsm.fire("fail", error_kind=ErrorKind.INTERNAL.value, error_message=str(e))
            return

        fsm.fire("complete", result_count=result_count, provider=provider)

    def _execute(self, job: JobRecord) -> tuple[int, str | None]:
        org_id = job.organization_id
        kind = JobKind(job.kind)

        if kind == JobKind.TASK_ANALYSIS:
            task = self._require_task(org_id, job.target_id)
            story = self._require_story(org_id, task.story_id)
            analyses, provider = self._analyze_all(story, [task], job.id)
            self.projector.record_analyses(org_id, story.story_id, analyses)
            return len(analyses), provider

        if kind == JobKind.STORY_ANALYSIS:
            story = self._require_story(org_id, job.target_id)
            tasks = self.store.list_tasks(org_id, story.story_id)
            analyses, provider = self._analyze_all(story, tasks, job.id)
            self.projector.record_analyses(org_id, story.story_id, analyses)
            return len(analyses), provider

        story = self._require_story(org_id, job.target_id)
        params = json.loads(job.params_json)
        tasks = self.store.list_tasks(org_id, story.story_id)
        repo_url, branch = (None, None)
        if params.get("use_repo_context", True):
            repo_url, branch = self._repo_for_story(org_id, story.story_id)
        run = self.synthesizer.synthesize(
            story,
            [t.title for t in tasks],
            repo_url=repo_url,
            branch=branch,
            batch_id=job.id,
        )
        self.projector.record_suggestions(org_id, story.story_id, run.suggestions)
        return len(run.suggestions), run.provider

    def _analyze_all(self, story: StoryContext, tasks: list[TaskInput],
                     job_id: str) -> tuple[list[TaskAnalysis], str | None]:
        """Analyze every task before writing anything, so a failed job leaves no partial rows."""
        now = datetime.now(timezone.utc)
        provider = None
        analyses = []
        for task in tasks:
            analysis = analyzer.analyze(task, story, now=now)
            if self.llm_enrich_analysis:
                review, provider = self.language_model.analyze_task(task, story, analysis.score)
                analysis = analyzer.merge_llm_review(analysis, review, provider)
            analyses.append(replace(analysis, job_id=job_id))
        return analyses, provider

    def recover(self) -> list[str]:
        """Re-dispatch jobs left in requested (e.g. after a restart)."""
        pending = self.store.list_jobs_in_state(JobState.REQUESTED.value)
        for job in pending:
            self._dispatch(job.id)
        if pending:
            logger.info(f"[JOB] Re-enqueued {len(pending)} requested jobs")
        return [job.id for job in pending]

    # Queries

    def get_job(self, org_id: str, job_id: str) -> JobRecord:
        job = self.store.get_job(org_id, job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")
        return job

    def story_task_analyses(self, org_id: str, story_id: str) -> list[TaskAnalysis]:
        self._require_story(org_id, story_id)
        return self.store.latest_story_analyses(org_id, story_id)

    def task_analysis_history(self, org_id: str, task_id: str) -> list[TaskAnalysis]:
        self._require_task(org_id, task_id)
        return self.store.list_task_analyses(org_id, task_id)

    def story_summary(self, org_id: str, story_id: str) -> StoryAnalysisSummary:
        self._require_story(org_id, story_id)
        summary = self.store.get_summary(org_id, story_id)
        if summary is None:
            # Nothing analyzed yet; an empty fold, not an error
            task_ids = [t.task_id for t in self.store.list_tasks(org_id, story_id)]
            return summarize_story(story_id, task_ids, [])
        return summary

    def story_suggestions(self, org_id: str, story_id: str) -> list[TaskSuggestion]:
        self._require_story(org_id, story_id)
        return self.store.list_suggestions(org_id, story_id)

    # Helpers

    def _require_story(self, org_id: str, story_id: str) -> StoryContext:
        story = self.store.get_story(org_id, story_id)
        if story is None:
            raise NotFound(f"Story {story_id} not found")
        return story

    def _require_task(self, org_id: str, task_id: str) -> TaskInput:
        task = self.store.get_task(org_id, task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found")
        if not task.text.strip():
            raise ValidationError(f"Task {task_id} has no text to analyze")
        return task

    def _repo_for_story(self, org_id: str, story_id: str) -> tuple[str | None, str | None]:
        project_id = self.store.get_story_project(org_id, story_id)
        config = self.store.get_repo_config(org_id, project_id) if project_id else None
        if config is None:
            return None, None
        return config.repo_url, config.default_branch

    def _analysis_inputs(self, story: StoryContext, tasks: list[TaskInput]) -> dict:
        return {
            "story": _story_inputs(story),
            "tasks": [
                [t.task_id, t.title, t.description, list(t.acceptance_criteria_refs)]
                for t in sorted(tasks, key=lambda t: t.task_id)
            ],
            "llm": self.llm_enrich_analysis,
        }

    def _create_job(self, org_id: str, kind: JobKind, target_id: str, inputs: dict,
                    params: dict | None = None) -> tuple[JobRecord, bool]:
        """Create a requested job, or return a recent completed one with identical inputs."""
        input_hash = content_hash({"kind": kind.value, "target": target_id, "inputs": inputs})
        if self.debounce_seconds > 0:
            recent = self.store.find_completed_job(
                org_id, kind.value, target_id, input_hash, time.time() - self.debounce_seconds
            )
            if recent is not None:
                logger.info(f"[JOB] {kind.value} {target_id}: reusing completed job {recent.id}")
                return recent, True

        now = time.time()
        job = JobRecord(
            id=str(uuid.uuid4()),
            organization_id=org_id,
            kind=kind.value,
            target_id=target_id,
            state=JobState.REQUESTED.value,
            input_hash=input_hash,
            params_json=json.dumps(params or {}),
            created_at=now,
            updated_at=now,
        )
        self.store.create_job(job)
        self.store.append_event(org_id, job.id, JOB_REQUESTED, {"kind": kind.value, "target_id": target_id})
        logger.info(f"[JOB] {job.id}: requested {kind.value} for {target_id}")
        return job, False


def _story_inputs(story: StoryContext) -> list:
    return [story.title, story.description, [[ac.ac_id, ac.text] for ac in story.acceptance_criteria]]


def _error_for(job: JobRecord) -> ReadinessError:
    """Rebuild the classified error a failed job recorded."""
    message = job.error_message or "Job failed"
    if job.error_kind == ErrorKind.PROVIDER_UNAVAILABLE.value:
        return ProviderUnavailable(message)
    if job.error_kind == ErrorKind.PROVIDER_TRANSIENT.value:
        return ProviderTransientError("all providers", message)
    if job.error_kind == ErrorKind.VALIDATION.value:
        return ValidationError(message)
    return ReadinessError(message)

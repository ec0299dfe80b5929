"""HTTP routes for the readiness service.

Handlers parse and validate input, then call the engine in a worker thread;
all engine calls block on SQLite or external ports.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

import pydantic
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from readiness import __version__
from readiness.analysis.models import AcceptanceCriterion, SuggestionStatus
from readiness.api.schemas import CriteriaBody, RefsBody, RepoConfigBody, StoryBody, SuggestBody, TaskBody
from readiness.lib.errors import ValidationError
from readiness.store.models import JobRecord, RepoConfigRecord
from readiness.workflow.engine import ReadinessEngine
from readiness.workflow.worker import WorkerPool

logger = logging.getLogger(__name__)


async def _body(request: Request, model: type[pydantic.BaseModel], allow_empty: bool = False) -> Any:
    raw = await request.body()
    if not raw.strip():
        if allow_empty:
            return model()
        raise ValidationError("Request body is required")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON: {e}") from None
    return model.model_validate(data)


def job_to_dict(job: JobRecord) -> dict:
    return {
        "id": job.id,
        "kind": job.kind,
        "target_id": job.target_id,
        "status": job.state,
        "error_kind": job.error_kind,
        "error_message": job.error_message,
        "provider": job.provider,
        "result_count": job.result_count,
    }


def _iso(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def repo_config_to_dict(config: RepoConfigRecord) -> dict:
    return {
        "id": config.id,
        "project_id": config.project_id,
        "repo_url": config.repo_url,
        "default_branch": config.default_branch,
        "validated": config.validated,
        "last_validated_at": _iso(config.last_validated_at),
    }


def criterion_to_dict(ac: AcceptanceCriterion) -> dict:
    return {"ac_id": ac.ac_id, "text": ac.text}


def create_routes(engine: ReadinessEngine, pool: WorkerPool | None = None) -> list[Route]:
    """Create HTTP routes bound to the engine."""

    def org(request: Request) -> str:
        return request.state.organization_id

    async def health(request: Request) -> JSONResponse:
        _ = request  # unused
        return JSONResponse({
            "status": "healthy",
            "version": __version__,
            "providers": [p.name for p in engine.language_model.providers],
            "workers": pool.running if pool is not None else 0,
        })

    # Backlog ingestion

    async def put_story(request: Request) -> JSONResponse:
        body = await _body(request, StoryBody)
        story = await run_in_threadpool(
            engine.upsert_story,
            org(request),
            request.path_params["story_id"],
            body.project_id,
            body.title,
            body.description,
            [ac.model_dump() for ac in body.acceptance_criteria],
        )
        return JSONResponse({
            "id": story.story_id,
            "project_id": body.project_id,
            "title": story.title,
            "description": story.description,
            "acceptance_criteria": [criterion_to_dict(ac) for ac in story.acceptance_criteria],
        })

    async def put_task(request: Request) -> JSONResponse:
        body = await _body(request, TaskBody)
        task = await run_in_threadpool(
            engine.upsert_task,
            org(request),
            request.path_params["task_id"],
            body.story_id,
            body.title,
            body.description,
            body.acceptance_criteria_refs,
            body.estimated_hours,
        )
        return JSONResponse({
            "id": task.task_id,
            "story_id": task.story_id,
            "title": task.title,
            "description": task.description,
            "acceptance_criteria_refs": list(task.acceptance_criteria_refs),
            "estimated_hours": task.estimated_hours,
        })

    # Analysis

    async def analyze_task(request: Request) -> JSONResponse:
        analysis = await run_in_threadpool(engine.analyze_task, org(request), request.path_params["task_id"])
        return JSONResponse(analysis.to_dict())

    async def task_analyses_history(request: Request) -> JSONResponse:
        history = await run_in_threadpool(
            engine.task_analysis_history, org(request), request.path_params["task_id"]
        )
        return JSONResponse([a.to_dict() for a in history])

    async def analyze_story_tasks(request: Request) -> JSONResponse:
        job = await run_in_threadpool(engine.submit_story_analysis, org(request), request.path_params["story_id"])
        return JSONResponse({"analysis_id": job.id, "status": _accepted_status(job)}, status_code=202)

    async def story_task_analyses(request: Request) -> JSONResponse:
        analyses = await run_in_threadpool(
            engine.story_task_analyses, org(request), request.path_params["story_id"]
        )
        return JSONResponse([a.to_dict() for a in analyses])

    async def story_summary(request: Request) -> JSONResponse:
        summary = await run_in_threadpool(engine.story_summary, org(request), request.path_params["story_id"])
        return JSONResponse(summary.to_dict())

    # Suggestions

    async def suggest_tasks(request: Request) -> JSONResponse:
        body = await _body(request, SuggestBody, allow_empty=True)
        job = await run_in_threadpool(
            engine.submit_suggestions, org(request), request.path_params["story_id"], body.use_repo_context
        )
        return JSONResponse({"suggestion_id": job.id, "status": _accepted_status(job)}, status_code=202)

    async def story_suggestions(request: Request) -> JSONResponse:
        suggestions = await run_in_threadpool(
            engine.story_suggestions, org(request), request.path_params["story_id"]
        )
        return JSONResponse([s.to_dict() for s in suggestions])

    async def approve_suggestion(request: Request) -> JSONResponse:
        suggestion = await run_in_threadpool(
            engine.review_suggestion, org(request), request.path_params["suggestion_id"], SuggestionStatus.APPROVED
        )
        return JSONResponse(suggestion.to_dict())

    async def reject_suggestion(request: Request) -> JSONResponse:
        suggestion = await run_in_threadpool(
            engine.review_suggestion, org(request), request.path_params["suggestion_id"], SuggestionStatus.REJECTED
        )
        return JSONResponse(suggestion.to_dict())

    # Story readiness and acceptance criteria

    async def evaluate_readiness(request: Request) -> JSONResponse:
        readiness = await run_in_threadpool(
            engine.evaluate_story_readiness, org(request), request.path_params["story_id"]
        )
        return JSONResponse(readiness.to_dict())

    async def get_readiness(request: Request) -> JSONResponse:
        readiness = await run_in_threadpool(engine.story_readiness, org(request), request.path_params["story_id"])
        return JSONResponse(readiness.to_dict())

    async def list_criteria(request: Request) -> JSONResponse:
        criteria = await run_in_threadpool(
            engine.acceptance_criteria, org(request), request.path_params["story_id"]
        )
        return JSONResponse([criterion_to_dict(ac) for ac in criteria])

    async def add_criteria(request: Request) -> JSONResponse:
        body = await _body(request, CriteriaBody)
        added = await run_in_threadpool(
            engine.add_acceptance_criteria,
            org(request),
            request.path_params["story_id"],
            [c.model_dump() for c in body.criteria],
        )
        return JSONResponse([criterion_to_dict(ac) for ac in added], status_code=201)

    async def generate_criteria(request: Request) -> JSONResponse:
        generated = await run_in_threadpool(
            engine.generate_acceptance_criteria, org(request), request.path_params["story_id"]
        )
        return JSONResponse([criterion_to_dict(ac) for ac in generated], status_code=201)

    async def validate_refs(request: Request) -> JSONResponse:
        body = await _body(request, RefsBody)
        invalid = await run_in_threadpool(
            engine.invalid_ac_refs, org(request), request.path_params["story_id"], body.refs
        )
        return JSONResponse({"valid": not invalid, "invalid_refs": invalid})

    # Jobs and repository configuration

    async def get_job(request: Request) -> JSONResponse:
        job = await run_in_threadpool(engine.get_job, org(request), request.path_params["job_id"])
        return JSONResponse(job_to_dict(job))

    async def post_repo_config(request: Request) -> JSONResponse:
        body = await _body(request, RepoConfigBody)
        config = await run_in_threadpool(
            engine.configure_repo, org(request), request.path_params["project_id"], body.repo_url
        )
        return JSONResponse(repo_config_to_dict(config))

    async def get_repo_config(request: Request) -> JSONResponse:
        config = await run_in_threadpool(engine.get_repo_config, org(request), request.path_params["project_id"])
        return JSONResponse(repo_config_to_dict(config))

    return [
        Route("/health", health, methods=["GET"]),
        Route("/stories/{story_id}", put_story, methods=["PUT"]),
        Route("/tasks/{task_id}", put_task, methods=["PUT"]),
        Route("/tasks/{task_id}/analyze", analyze_task, methods=["POST"]),
        Route("/tasks/{task_id}/analyses", task_analyses_history, methods=["GET"]),
        Route("/stories/{story_id}/tasks/analyze", analyze_story_tasks, methods=["POST"]),
        Route("/stories/{story_id}/task-analyses", story_task_analyses, methods=["GET"]),
        Route("/stories/{story_id}/analysis-summary", story_summary, methods=["GET"]),
        Route("/stories/{story_id}/tasks/suggest", suggest_tasks, methods=["POST"]),
        Route("/stories/{story_id}/task-suggestions", story_suggestions, methods=["GET"]),
        Route("/task-suggestions/{suggestion_id}/approve", approve_suggestion, methods=["POST"]),
        Route("/task-suggestions/{suggestion_id}/reject", reject_suggestion, methods=["POST"]),
        Route("/readiness/{story_id}/evaluate", evaluate_readiness, methods=["POST"]),
        Route("/readiness/{story_id}", get_readiness, methods=["GET"]),
        Route("/criteria/{story_id}", list_criteria, methods=["GET"]),
        Route("/criteria/{story_id}", add_criteria, methods=["POST"]),
        Route("/criteria/{story_id}/generate", generate_criteria, methods=["POST"]),
        Route("/criteria/{story_id}/validate-refs", validate_refs, methods=["POST"]),
        Route("/jobs/{job_id}", get_job, methods=["GET"]),
        Route("/projects/{project_id}/repo-config", post_repo_config, methods=["POST"]),
        Route("/projects/{project_id}/repo-config", get_repo_config, methods=["GET"]),
    ]


def _accepted_status(job: JobRecord) -> str:
    # A debounced request returns the earlier completed job; a job with no
    # provider to run it is already failed
    if job.state in ("completed", "failed"):
        return job.state
    return "processing"

"""Projection store queries.

All reads and writes are scoped by organization_id. Records are converted to
analysis value types at this boundary so nothing above it sees SQLModel rows.
"""

import json
import logging
import time
from datetime import datetime, timezone

from sqlalchemy import update
from sqlmodel import col, select

from readiness.analysis.models import (
    AcceptanceCriterion,
    ClarityScore,
    StoryAnalysisSummary,
    StoryContext,
    StoryReadiness,
    SuggestionStatus,
    TaskAnalysis,
    TaskInput,
    TaskSuggestion,
    code_example_from_dict,
    missing_element_from_dict,
    recommendation_from_dict,
    to_json_dict,
    vague_term_from_dict,
)
from readiness.store.db import Database
from readiness.store.models import (
    JobEventRecord,
    JobRecord,
    RepoConfigRecord,
    StoryAnalysisSummaryRecord,
    StoryReadinessRecord,
    StoryRecord,
    TaskAnalysisRecord,
    TaskRecord,
    TaskSuggestionRecord,
)

logger = logging.getLogger(__name__)


def _ts(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


def _dt(value: float | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


def _dumps(items) -> str:
    return json.dumps([to_json_dict(i) for i in items])


def story_from_record(record: StoryRecord) -> StoryContext:
    criteria = tuple(
        AcceptanceCriterion(ac_id=item["ac_id"], text=item.get("text", ""))
        for item in json.loads(record.acceptance_criteria_json)
    )
    return StoryContext(
        story_id=record.id,
        title=record.title,
        description=record.description,
        acceptance_criteria=criteria,
    )


def task_from_record(record: TaskRecord) -> TaskInput:
    return TaskInput(
        task_id=record.id,
        story_id=record.story_id,
        title=record.title,
        description=record.description,
        acceptance_criteria_refs=tuple(json.loads(record.acceptance_criteria_refs_json)),
        estimated_hours=record.estimated_hours,
    )


def analysis_from_record(record: TaskAnalysisRecord) -> TaskAnalysis:
    return TaskAnalysis(
        id=record.id,
        task_id=record.task_id,
        story_id=record.story_id,
        score=ClarityScore.from_dict(json.loads(record.score_json)),
        vague_terms=tuple(vague_term_from_dict(d) for d in json.loads(record.vague_terms_json)),
        missing_elements=tuple(missing_element_from_dict(d) for d in json.loads(record.missing_elements_json)),
        recommendations=tuple(recommendation_from_dict(d) for d in json.loads(record.recommendations_json)),
        analyzed_at=_dt(record.analyzed_at),
        summary=record.summary,
        provider=record.provider,
        job_id=record.job_id,
    )


def suggestion_from_record(record: TaskSuggestionRecord) -> TaskSuggestion:
    return TaskSuggestion(
        id=record.id,
        story_id=record.story_id,
        title=record.title,
        description=record.description,
        confidence=record.confidence,
        file_paths=tuple(json.loads(record.file_paths_json)),
        code_examples=tuple(code_example_from_dict(d) for d in json.loads(record.code_examples_json)),
        acceptance_criteria_refs=tuple(json.loads(record.acceptance_criteria_refs_json)),
        estimated_hours=record.estimated_hours,
        status=SuggestionStatus(record.status),
        clarity_score=record.clarity_score,
        batch_id=record.batch_id,
        created_at=_dt(record.created_at),
        reviewed_at=_dt(record.reviewed_at),
    )


def summary_from_record(record: StoryAnalysisSummaryRecord) -> StoryAnalysisSummary:
    return StoryAnalysisSummary(
        story_id=record.story_id,
        task_count=record.task_count,
        analyzed_tasks=record.analyzed_tasks,
        average_score=record.average_score,
        issues_by_type=json.loads(record.issues_json),
        ai_ready_tasks=record.ai_ready_tasks,
        tasks_needing_improvement=record.tasks_needing_improvement,
        last_analyzed_at=_dt(record.last_analyzed_at),
    )


def readiness_from_record(record: StoryReadinessRecord) -> StoryReadiness:
    return StoryReadiness(
        id=record.id,
        story_id=record.story_id,
        score=record.score,
        missing_items=tuple(json.loads(record.missing_items_json)),
        uncovered_ac_ids=tuple(json.loads(record.uncovered_ac_ids_json)),
        task_count=record.task_count,
        evaluated_at=_dt(record.evaluated_at),
    )


class ReadinessStore:
    """Organization-scoped access to every projection table."""

    def __init__(self, db: Database):
        self.db = db

    # Backlog read model

    def upsert_story(self, org_id: str, story: StoryContext, project_id: str) -> None:
        criteria = json.dumps([{"ac_id": ac.ac_id, "text": ac.text} for ac in story.acceptance_criteria])
        with self.db.session() as session:
            record = session.get(StoryRecord, (org_id, story.story_id))
            if record is None:
                record = StoryRecord(organization_id=org_id, id=story.story_id, project_id=project_id,
                                     title=story.title, updated_at=time.time())
            record.project_id = project_id
            record.title = story.title
            record.description = story.description
            record.acceptance_criteria_json = criteria
            record.updated_at = time.time()
            session.add(record)

    def get_story(self, org_id: str, story_id: str) -> StoryContext | None:
        with self.db.session() as session:
            record = session.get(StoryRecord, (org_id, story_id))
            return story_from_record(record) if record else None

    def get_story_project(self, org_id: str, story_id: str) -> str | None:
        with self.db.session() as session:
            record = session.get(StoryRecord, (org_id, story_id))
            return record.project_id if record else None

    def save_acceptance_criteria(self, org_id: str, story_id: str,
                                 criteria: tuple[AcceptanceCriterion, ...]) -> bool:
        """Replace a story's criteria. False if the story is unknown."""
        with self.db.session() as session:
            record = session.get(StoryRecord, (org_id, story_id))
            if record is None:
                return False
            record.acceptance_criteria_json = json.dumps([{"ac_id": ac.ac_id, "text": ac.text} for ac in criteria])
            record.updated_at = time.time()
            session.add(record)
            return True

    def upsert_task(self, org_id: str, task: TaskInput) -> None:
        refs = json.dumps(list(task.acceptance_criteria_refs))
        with self.db.session() as session:
            record = session.get(TaskRecord, (org_id, task.task_id))
            if record is None:
                record = TaskRecord(organization_id=org_id, id=task.task_id, story_id=task.story_id,
                                    title=task.title, updated_at=time.time())
            record.story_id = task.story_id
            record.title = task.title
            record.description = task.description
            record.acceptance_criteria_refs_json = refs
            record.estimated_hours = task.estimated_hours
            record.updated_at = time.time()
            session.add(record)

    def get_task(self, org_id: str, task_id: str) -> TaskInput | None:
        with self.db.session() as session:
            record = session.get(TaskRecord, (org_id, task_id))
            return task_from_record(record) if record else None

    def list_tasks(self, org_id: str, story_id: str) -> list[TaskInput]:
        with self.db.session() as session:
            records = session.exec(
                select(TaskRecord)
                .where(TaskRecord.organization_id == org_id, TaskRecord.story_id == story_id)
                .order_by(TaskRecord.id)
            ).all()
            return [task_from_record(r) for r in records]

    # Jobs

    def create_job(self, job: JobRecord) -> None:
        with self.db.session() as session:
            session.add(job)

    def get_job(self, org_id: str, job_id: str) -> JobRecord | None:
        with self.db.session() as session:
            record = session.get(JobRecord, job_id)
            if record is None or record.organization_id != org_id:
                return None
            session.expunge(record)
            return record

    def get_job_unscoped(self, job_id: str) -> JobRecord | None:
        """Worker-side lookup; the job row itself carries the organization."""
        with self.db.session() as session:
            record = session.get(JobRecord, job_id)
            if record is not None:
                session.expunge(record)
            return record

    def compare_and_swap_state(self, job_id: str, expected: str, new: str, **fields) -> bool:
        """Move a job from expected to new state. False if another writer got there first."""
        values = {"state": new, "updated_at": time.time(), **fields}
        with self.db.session() as session:
            result = session.exec(
                update(JobRecord)
                .where(col(JobRecord.id) == job_id, col(JobRecord.state) == expected)
                .values(**values)
            )
            return result.rowcount == 1

    def list_jobs_in_state(self, state: str) -> list[JobRecord]:
        with self.db.session() as session:
            records = session.exec(
                select(JobRecord).where(JobRecord.state == state).order_by(JobRecord.created_at)
            ).all()
            for record in records:
                session.expunge(record)
            return list(records)

    def find_completed_job(self, org_id: str, kind: str, target_id: str, input_hash: str,
                           since: float) -> JobRecord | None:
        """Latest completed job with identical inputs finished after since."""
        with self.db.session() as session:
            record = session.exec(
                select(JobRecord)
                .where(
                    JobRecord.organization_id == org_id,
                    JobRecord.kind == kind,
                    JobRecord.target_id == target_id,
                    JobRecord.input_hash == input_hash,
                    JobRecord.state == "completed",
                    JobRecord.updated_at >= since,
                )
                .order_by(col(JobRecord.updated_at).desc())
            ).first()
            if record is not None:
                session.expunge(record)
            return record

    def append_event(self, org_id: str, job_id: str, event_type: str, payload: dict) -> None:
        with self.db.session() as session:
            session.add(JobEventRecord(
                organization_id=org_id,
                job_id=job_id,
                event_type=event_type,
                payload_json=json.dumps(payload),
                created_at=time.time(),
            ))

    def list_events(self, org_id: str, job_id: str) -> list[tuple[str, dict]]:
        with self.db.session() as session:
            records = session.exec(
                select(JobEventRecord)
                .where(JobEventRecord.organization_id == org_id, JobEventRecord.job_id == job_id)
                .order_by(JobEventRecord.id)
            ).all()
            return [(r.event_type, json.loads(r.payload_json)) for r in records]

    # Task analyses

    def insert_analysis(self, org_id: str, analysis: TaskAnalysis) -> None:
        with self.db.session() as session:
            session.add(TaskAnalysisRecord(
                id=analysis.id,
                organization_id=org_id,
                task_id=analysis.task_id,
                story_id=analysis.story_id,
                job_id=analysis.job_id,
                overall=analysis.score.overall,
                score_json=json.dumps(analysis.score.to_dict()),
                vague_terms_json=_dumps(analysis.vague_terms),
                missing_elements_json=_dumps(analysis.missing_elements),
                recommendations_json=_dumps(analysis.recommendations),
                summary=analysis.summary,
                provider=analysis.provider,
                analyzed_at=_ts(analysis.analyzed_at),
            ))

    def get_analysis(self, org_id: str, analysis_id: str) -> TaskAnalysis | None:
        with self.db.session() as session:
            record = session.get(TaskAnalysisRecord, analysis_id)
            if record is None or record.organization_id != org_id:
                return None
            return analysis_from_record(record)

    def list_task_analyses(self, org_id: str, task_id: str) -> list[TaskAnalysis]:
        """Analysis history for a task, newest first."""
        with self.db.session() as session:
            records = session.exec(
                select(TaskAnalysisRecord)
                .where(TaskAnalysisRecord.organization_id == org_id, TaskAnalysisRecord.task_id == task_id)
                .order_by(col(TaskAnalysisRecord.analyzed_at).desc())
            ).all()
            return [analysis_from_record(r) for r in records]

    def list_story_analyses(self, org_id: str, story_id: str) -> list[TaskAnalysis]:
        """Every analysis recorded for tasks of a story, oldest first."""
        with self.db.session() as session:
            records = session.exec(
                select(TaskAnalysisRecord)
                .where(TaskAnalysisRecord.organization_id == org_id, TaskAnalysisRecord.story_id == story_id)
                .order_by(TaskAnalysisRecord.analyzed_at)
            ).all()
            return [analysis_from_record(r) for r in records]

    def latest_story_analyses(self, org_id: str, story_id: str) -> list[TaskAnalysis]:
        """Latest analysis per task, for tasks currently in the story."""
        task_ids = {t.task_id for t in self.list_tasks(org_id, story_id)}
        latest: dict[str, TaskAnalysis] = {}
        for analysis in self.list_story_analyses(org_id, story_id):
            if analysis.task_id in task_ids:
                latest[analysis.task_id] = analysis
        return sorted(latest.values(), key=lambda a: a.task_id)

    # Story summary

    def save_summary(self, org_id: str, summary: StoryAnalysisSummary) -> None:
        with self.db.session() as session:
            record = session.get(StoryAnalysisSummaryRecord, (org_id, summary.story_id))
            if record is None:
                record = StoryAnalysisSummaryRecord(organization_id=org_id, story_id=summary.story_id,
                                                    updated_at=time.time())
            record.task_count = summary.task_count
            record.analyzed_tasks = summary.analyzed_tasks
            record.average_score = summary.average_score
            record.issues_json = json.dumps(summary.issues_by_type)
            record.ai_ready_tasks = summary.ai_ready_tasks
            record.tasks_needing_improvement = summary.tasks_needing_improvement
            record.last_analyzed_at = _ts(summary.last_analyzed_at)
            record.updated_at = time.time()
            session.add(record)

    def get_summary(self, org_id: str, story_id: str) -> StoryAnalysisSummary | None:
        with self.db.session() as session:
            record = session.get(StoryAnalysisSummaryRecord, (org_id, story_id))
            return summary_from_record(record) if record else None

    # Story readiness

    def insert_readiness(self, org_id: str, readiness: StoryReadiness) -> None:
        with self.db.session() as session:
            session.add(StoryReadinessRecord(
                id=readiness.id,
                organization_id=org_id,
                story_id=readiness.story_id,
                score=readiness.score,
                is_ready=readiness.is_ready,
                missing_items_json=json.dumps(list(readiness.missing_items)),
                uncovered_ac_ids_json=json.dumps(list(readiness.uncovered_ac_ids)),
                task_count=readiness.task_count,
                evaluated_at=_ts(readiness.evaluated_at),
            ))

    def latest_readiness(self, org_id: str, story_id: str) -> StoryReadiness | None:
        with self.db.session() as session:
            record = session.exec(
                select(StoryReadinessRecord)
                .where(StoryReadinessRecord.organization_id == org_id, StoryReadinessRecord.story_id == story_id)
                .order_by(col(StoryReadinessRecord.evaluated_at).desc())
            ).first()
            return readiness_from_record(record) if record else None

    # Suggestions

    def insert_suggestions(self, org_id: str, suggestions: list[TaskSuggestion]) -> None:
        with self.db.session() as session:
            for s in suggestions:
                session.add(TaskSuggestionRecord(
                    id=s.id,
                    organization_id=org_id,
                    story_id=s.story_id,
                    batch_id=s.batch_id,
                    title=s.title,
                    description=s.description,
                    confidence=s.confidence,
                    file_paths_json=json.dumps(list(s.file_paths)),
                    code_examples_json=_dumps(s.code_examples),
                    acceptance_criteria_refs_json=json.dumps(list(s.acceptance_criteria_refs)),
                    estimated_hours=s.estimated_hours,
                    clarity_score=s.clarity_score,
                    status=s.status.value,
                    created_at=_ts(s.created_at) or time.time(),
                ))

    def list_suggestions(self, org_id: str, story_id: str, status: SuggestionStatus | None = None) -> list[TaskSuggestion]:
        """Suggestions for a story, newest batch first, by confidence within a batch."""
        query = select(TaskSuggestionRecord).where(
            TaskSuggestionRecord.organization_id == org_id,
            TaskSuggestionRecord.story_id == story_id,
        )
        if status is not None:
            query = query.where(TaskSuggestionRecord.status == status.value)
        query = query.order_by(
            col(TaskSuggestionRecord.created_at).desc(),
            col(TaskSuggestionRecord.confidence).desc(),
        )
        with self.db.session() as session:
            return [suggestion_from_record(r) for r in session.exec(query).all()]

    def get_suggestion(self, org_id: str, suggestion_id: str) -> TaskSuggestion | None:
        with self.db.session() as session:
            record = session.get(TaskSuggestionRecord, suggestion_id)
            if record is None or record.organization_id != org_id:
                return None
            return suggestion_from_record(record)

    def review_suggestion(self, org_id: str, suggestion_id: str, status: SuggestionStatus) -> bool:
        """Move a pending suggestion to approved/rejected. False if it was not pending."""
        with self.db.session() as session:
            result = session.exec(
                update(TaskSuggestionRecord)
                .where(
                    col(TaskSuggestionRecord.id) == suggestion_id,
                    col(TaskSuggestionRecord.organization_id) == org_id,
                    col(TaskSuggestionRecord.status) == SuggestionStatus.PENDING.value,
                )
                .values(status=status.value, reviewed_at=time.time())
            )
            return result.rowcount == 1

    # Repository configuration

    def save_repo_config(self, org_id: str, project_id: str, config_id: str, repo_url: str,
                         default_branch: str | None, validated: bool) -> RepoConfigRecord:
        with self.db.session() as session:
            record = session.get(RepoConfigRecord, (org_id, project_id))
            if record is None:
                record = RepoConfigRecord(organization_id=org_id, project_id=project_id, id=config_id,
                                          repo_url=repo_url, updated_at=time.time())
            record.repo_url = repo_url
            record.default_branch = default_branch
            record.validated = validated
            record.updated_at = time.time()
            if validated:
                record.last_validated_at = record.updated_at
            session.add(record)
            session.flush()
            session.expunge(record)
            return record

    def get_repo_config(self, org_id: str, project_id: str) -> RepoConfigRecord | None:
        with self.db.session() as session:
            record = session.get(RepoConfigRecord, (org_id, project_id))
            if record is not None:
                session.expunge(record)
            return record

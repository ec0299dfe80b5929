"""SQLModel tables for the readiness projection store.

Every table carries organization_id and every query filters on it.
List-valued fields are stored as JSON text.

Tables:
- story_records / task_records: backlog read model pushed by collaborators
- jobs / job_events: job state plus the append-only event log
- task_analyses: append-only analysis history (latest wins)
- story_analysis_summaries: fold over the latest analysis per task
- story_readiness_evaluations: append-only story readiness history (latest wins)
- task_suggestions: suggestion runs, mutated only by approve/reject
- repo_configs: linked repository per project
"""

from sqlmodel import Field, SQLModel


class StoryRecord(SQLModel, table=True):
    """Story as last pushed by the backlog service."""

    __tablename__ = "story_records"

    organization_id: str = Field(primary_key=True)
    id: str = Field(primary_key=True)
    project_id: str = Field(index=True)
    title: str
    description: str = ""
    acceptance_criteria_json: str = "[]"  # [{"ac_id": ..., "text": ...}]
    updated_at: float


class TaskRecord(SQLModel, table=True):
    """Task as last pushed by the backlog service."""

    __tablename__ = "task_records"

    organization_id: str = Field(primary_key=True)
    id: str = Field(primary_key=True)
    story_id: str = Field(index=True)
    title: str
    description: str = ""
    acceptance_criteria_refs_json: str = "[]"
    estimated_hours: float | None = None
    updated_at: float


class JobRecord(SQLModel, table=True):
    """One analysis or suggestion job. State changes go through compare-and-swap."""

    __tablename__ = "jobs"

    id: str = Field(primary_key=True)
    organization_id: str = Field(index=True)
    kind: str = Field(index=True)  # task_analysis, story_analysis, task_suggestions
    target_id: str = Field(index=True)  # task id or story id
    state: str = Field(default="requested", index=True)
    input_hash: str = Field(index=True)
    params_json: str = "{}"
    error_kind: str | None = None
    error_message: str | None = None
    provider: str | None = None
    result_count: int = 0
    created_at: float
    updated_at: float


class JobEventRecord(SQLModel, table=True):
    """Append-only job event log."""

    __tablename__ = "job_events"

    id: int | None = Field(default=None, primary_key=True)
    organization_id: str = Field(index=True)
    job_id: str = Field(index=True)
    event_type: str
    payload_json: str = "{}"
    created_at: float


class TaskAnalysisRecord(SQLModel, table=True):
    """One analysis run of one task. Never updated."""

    __tablename__ = "task_analyses"

    id: str = Field(primary_key=True)
    organization_id: str = Field(index=True)
    task_id: str = Field(index=True)
    story_id: str = Field(index=True)
    job_id: str | None = Field(default=None, index=True)
    overall: int
    score_json: str
    vague_terms_json: str = "[]"
    missing_elements_json: str = "[]"
    recommendations_json: str = "[]"
    summary: str = ""
    provider: str | None = None
    analyzed_at: float = Field(index=True)


class StoryAnalysisSummaryRecord(SQLModel, table=True):
    """Materialized story rollup, rebuilt in full after each task analysis."""

    __tablename__ = "story_analysis_summaries"

    organization_id: str = Field(primary_key=True)
    story_id: str = Field(primary_key=True)
    task_count: int = 0
    analyzed_tasks: int = 0
    average_score: int | None = None
    issues_json: str = "{}"
    ai_ready_tasks: int = 0
    tasks_needing_improvement: int = 0
    last_analyzed_at: float | None = None
    updated_at: float


class StoryReadinessRecord(SQLModel, table=True):
    """One story readiness evaluation. Never updated; the latest wins."""

    __tablename__ = "story_readiness_evaluations"

    id: str = Field(primary_key=True)
    organization_id: str = Field(index=True)
    story_id: str = Field(index=True)
    score: int
    is_ready: bool = False
    missing_items_json: str = "[]"
    uncovered_ac_ids_json: str = "[]"
    task_count: int = 0
    evaluated_at: float = Field(index=True)


class TaskSuggestionRecord(SQLModel, table=True):
    """Suggested task. Status moves pending -> approved | rejected once."""

    __tablename__ = "task_suggestions"

    id: str = Field(primary_key=True)
    organization_id: str = Field(index=True)
    story_id: str = Field(index=True)
    batch_id: str | None = Field(default=None, index=True)
    title: str
    description: str
    confidence: int
    file_paths_json: str = "[]"
    code_examples_json: str = "[]"
    acceptance_criteria_refs_json: str = "[]"
    estimated_hours: float | None = None
    clarity_score: int | None = None
    status: str = Field(default="pending", index=True)
    created_at: float
    reviewed_at: float | None = None


class RepoConfigRecord(SQLModel, table=True):
    """Repository linked to a project."""

    __tablename__ = "repo_configs"

    organization_id: str = Field(primary_key=True)
    project_id: str = Field(primary_key=True)
    id: str = Field(index=True)
    repo_url: str
    default_branch: str | None = None
    validated: bool = False
    last_validated_at: float | None = None
    updated_at: float

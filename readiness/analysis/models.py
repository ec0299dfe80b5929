"""
Value types for task readiness analysis.

All analysis results are immutable. A new analysis run produces new
objects; nothing here is ever patched in place.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from readiness.lib.constants import (
    AI_READY_THRESHOLD,
    LEVEL_EXCELLENT_MIN,
    LEVEL_FAIR_MIN,
    LEVEL_GOOD_MIN,
    READY_THRESHOLD,
    STORY_READY_THRESHOLD,
)


class ClarityLevel(Enum):
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"

    @classmethod
    def from_score(cls, score: int) -> "ClarityLevel":
        if score >= LEVEL_EXCELLENT_MIN:
            return cls.EXCELLENT
        if score >= LEVEL_GOOD_MIN:
            return cls.GOOD
        if score >= LEVEL_FAIR_MIN:
            return cls.FAIR
        return cls.POOR


class Priority(Enum):
    """Importance of a missing element / priority of a recommendation."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class MissingCategory(Enum):
    TECHNICAL_DETAILS = "technical-details"
    ACCEPTANCE_CRITERIA = "acceptance-criteria"
    SUCCESS_CRITERIA = "success-criteria"
    DEPENDENCIES = "dependencies"
    TEST_EXPECTATIONS = "test-expectations"


class RecommendationCategory(Enum):
    TECHNICAL_DETAILS = "technical-details"
    VAGUE_TERMS = "vague-terms"
    ACCEPTANCE_CRITERIA = "acceptance-criteria"
    AI_COMPATIBILITY = "ai-compatibility"
    EXAMPLES = "examples"
    SUCCESS_CRITERIA = "success-criteria"
    DEPENDENCIES = "dependencies"
    TEST_EXPECTATIONS = "test-expectations"

    @classmethod
    def from_missing(cls, category: MissingCategory) -> "RecommendationCategory":
        return cls(category.value)


# Display tie-break order within one priority
CATEGORY_ORDER = [
    RecommendationCategory.TECHNICAL_DETAILS,
    RecommendationCategory.VAGUE_TERMS,
    RecommendationCategory.ACCEPTANCE_CRITERIA,
    RecommendationCategory.AI_COMPATIBILITY,
    RecommendationCategory.EXAMPLES,
    RecommendationCategory.SUCCESS_CRITERIA,
    RecommendationCategory.DEPENDENCIES,
    RecommendationCategory.TEST_EXPECTATIONS,
]


class SuggestionStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


SUBSCORE_WEIGHTS = {
    "technical_specificity": 0.25,
    "vague_language": 0.15,
    "ac_references": 0.20,
    "success_criteria": 0.15,
    "dependencies": 0.10,
    "test_expectations": 0.15,
}


def weighted_overall(subscores: dict[str, int]) -> int:
    """round(sum(weight * subscore)), rounding halves up."""
    total = sum(SUBSCORE_WEIGHTS[name] * subscores[name] for name in SUBSCORE_WEIGHTS)
    # Guard against 79.99999 style float noise before rounding
    return int(round(total, 6) + 0.5)


@dataclass(frozen=True)
class ClarityScore:
    """Six sub-scores (0-100) and the weighted overall score.

    overall is always computed from the sub-scores; level is always derived
    from overall. Neither can be set independently.
    """
    technical_specificity: int
    vague_language: int
    ac_references: int
    success_criteria: int
    dependencies: int
    test_expectations: int
    overall: int = field(init=False)

    def __post_init__(self):
        for name in SUBSCORE_WEIGHTS:
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within 0..100, got {value}")
        object.__setattr__(self, "overall", weighted_overall(self.subscores))

    @property
    def subscores(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in SUBSCORE_WEIGHTS}

    @property
    def level(self) -> ClarityLevel:
        return ClarityLevel.from_score(self.overall)

    @property
    def is_ready(self) -> bool:
        return self.overall >= READY_THRESHOLD

    @property
    def is_ai_ready(self) -> bool:
        return self.overall >= AI_READY_THRESHOLD

    def to_dict(self) -> dict:
        data = dict(self.subscores)
        data["overall"] = self.overall
        data["level"] = self.level.value
        data["ai_ready"] = self.is_ai_ready
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ClarityScore":
        return cls(**{name: int(data[name]) for name in SUBSCORE_WEIGHTS})


@dataclass(frozen=True)
class VagueTerm:
    term: str
    position: int           # character offset of the term in the analyzed text
    context: str            # ~40 characters around the term
    suggestion: str


@dataclass(frozen=True)
class MissingElement:
    category: MissingCategory
    description: str
    importance: Priority
    remediation: str


@dataclass(frozen=True)
class Recommendation:
    id: str
    category: RecommendationCategory
    priority: Priority
    title: str
    description: str
    actionable: bool = True
    auto_applyable: bool = False


@dataclass(frozen=True)
class AcceptanceCriterion:
    ac_id: str
    text: str = ""


@dataclass(frozen=True)
class StoryContext:
    """What the scorer needs to know about the owning story."""
    story_id: str
    title: str
    description: str = ""
    acceptance_criteria: tuple[AcceptanceCriterion, ...] = ()

    @property
    def ac_ids(self) -> list[str]:
        return [ac.ac_id for ac in self.acceptance_criteria]


@dataclass(frozen=True)
class TaskInput:
    task_id: str
    story_id: str
    title: str
    description: str = ""
    acceptance_criteria_refs: tuple[str, ...] = ()
    estimated_hours: float | None = None

    @property
    def text(self) -> str:
        if self.description:
            return f"{self.title}\n{self.description}"
        return self.title


@dataclass(frozen=True)
class TaskAnalysis:
    id: str
    task_id: str
    story_id: str
    score: ClarityScore
    vague_terms: tuple[VagueTerm, ...]
    missing_elements: tuple[MissingElement, ...]
    recommendations: tuple[Recommendation, ...]
    analyzed_at: datetime
    summary: str = ""
    provider: str | None = None
    job_id: str | None = None

    def to_dict(self) -> dict:
        data = to_json_dict(self)
        data["score"] = self.score.to_dict()
        return data


@dataclass(frozen=True)
class CodeExample:
    file_path: str
    snippet: str
    relevance: str


@dataclass(frozen=True)
class TaskSuggestion:
    id: str
    story_id: str
    title: str
    description: str
    confidence: int
    file_paths: tuple[str, ...] = ()
    code_examples: tuple[CodeExample, ...] = ()
    acceptance_criteria_refs: tuple[str, ...] = ()
    estimated_hours: float | None = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    clarity_score: int | None = None
    batch_id: str | None = None
    created_at: datetime | None = None
    reviewed_at: datetime | None = None

    def to_dict(self) -> dict:
        return to_json_dict(self)


@dataclass(frozen=True)
class StoryAnalysisSummary:
    story_id: str
    task_count: int
    analyzed_tasks: int
    average_score: int | None
    issues_by_type: dict[str, list[str]]
    ai_ready_tasks: int = 0
    tasks_needing_improvement: int = 0
    last_analyzed_at: datetime | None = None

    def to_dict(self) -> dict:
        return to_json_dict(self)


@dataclass(frozen=True)
class StoryReadiness:
    """Whether a story is ready to be worked: criteria exist and tasks cover them."""
    id: str
    story_id: str
    score: int
    missing_items: tuple[str, ...]
    uncovered_ac_ids: tuple[str, ...]
    task_count: int
    evaluated_at: datetime

    @property
    def is_ready(self) -> bool:
        return self.score >= STORY_READY_THRESHOLD and not self.missing_items

    def to_dict(self) -> dict:
        data = to_json_dict(self)
        data["is_ready"] = self.is_ready
        return data


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_json_value(v) for v in value]
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _json_value(v) for k, v in value.items()}
    return value


def to_json_dict(obj) -> dict:
    """asdict() with enums, datetimes and tuples made JSON-safe."""
    return asdict(obj, dict_factory=lambda items: {k: _json_value(v) for k, v in items})


def vague_term_from_dict(data: dict) -> VagueTerm:
    return VagueTerm(
        term=data["term"],
        position=int(data["position"]),
        context=data.get("context", ""),
        suggestion=data.get("suggestion", ""),
    )


def missing_element_from_dict(data: dict) -> MissingElement:
    return MissingElement(
        category=MissingCategory(data["category"]),
        description=data["description"],
        importance=Priority(data["importance"]),
        remediation=data.get("remediation", ""),
    )


def recommendation_from_dict(data: dict) -> Recommendation:
    return Recommendation(
        id=data["id"],
        category=RecommendationCategory(data["category"]),
        priority=Priority(data["priority"]),
        title=data["title"],
        description=data.get("description", ""),
        actionable=bool(data.get("actionable", True)),
        auto_applyable=bool(data.get("auto_applyable", False)),
    )


def code_example_from_dict(data: dict) -> CodeExample:
    return CodeExample(
        file_path=data["file_path"],
        snippet=data.get("snippet", ""),
        relevance=data.get("relevance", ""),
    )

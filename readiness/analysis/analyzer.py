"""
Deterministic task analysis: signals -> score, vague terms, missing elements,
recommendations. No I/O. The optional LLM pass only adds recommendations on
top of this result; it never changes the score.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from readiness.analysis import missing_elements as missing
from readiness.analysis import recommendations as recs
from readiness.analysis import signals as sig
from readiness.analysis import vague_terms
from readiness.analysis.clarity import as_task, score_signals
from readiness.analysis.models import (
    Priority,
    Recommendation,
    RecommendationCategory,
    StoryContext,
    TaskAnalysis,
    TaskInput,
)

logger = logging.getLogger(__name__)


def analyze(
    task: TaskInput | str,
    story: StoryContext | None = None,
    analysis_id: str | None = None,
    now: datetime | None = None,
) -> TaskAnalysis:
    task = as_task(task, story)
    signals = sig.extract(task, story)
    vague = vague_terms.detect(task.text)
    score = score_signals(signals, len(vague))
    elements = missing.detect_signals(signals)
    generated = recs.generate(score, vague, elements, task=task, story=story)

    logger.debug(
        f"[ANALYZE] task={task.task_id or '-'} overall={score.overall} "
        f"vague={len(vague)} missing={len(elements)}"
    )
    return TaskAnalysis(
        id=analysis_id or str(uuid.uuid4()),
        task_id=task.task_id,
        story_id=task.story_id or (story.story_id if story else ""),
        score=score,
        vague_terms=tuple(vague),
        missing_elements=tuple(elements),
        recommendations=tuple(generated),
        analyzed_at=now or datetime.now(timezone.utc),
    )


def merge_llm_review(analysis: TaskAnalysis, review: dict, provider: str) -> TaskAnalysis:
    """Fold a schema-validated LLM review into an analysis.

    LLM recommendations are appended after the rule-based ones and re-sorted;
    titles already present are skipped.
    """
    existing = {r.title.lower() for r in analysis.recommendations}
    extra = []
    for item in review.get("recommendations", []):
        if item["title"].lower() in existing:
            continue
        existing.add(item["title"].lower())
        extra.append(Recommendation(
            id="",
            category=RecommendationCategory(item["category"]),
            priority=Priority(item["priority"]),
            title=item["title"],
            description=item["description"],
            actionable=True,
            auto_applyable=False,
        ))

    ordered = sorted(list(analysis.recommendations) + extra, key=recs.sort_key)
    renumbered = tuple(replace(r, id=f"rec-{i:02d}") for i, r in enumerate(ordered, start=1))
    return replace(
        analysis,
        recommendations=renumbered,
        summary=review.get("summary", analysis.summary),
        provider=provider,
    )

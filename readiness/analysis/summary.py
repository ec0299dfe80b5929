"""
Story-level rollup of task analyses.

The summary is a pure fold over the latest analysis of each task in the
story, so rebuilding it from history always yields the same result.
"""

from datetime import datetime

from readiness.analysis.models import StoryAnalysisSummary, TaskAnalysis


def summarize_story(
    story_id: str,
    task_ids: list[str],
    analyses: list[TaskAnalysis],
) -> StoryAnalysisSummary:
    """Roll up analyses for a story.

    Args:
        story_id: The story being summarized
        task_ids: Every task currently in the story (analyzed or not)
        analyses: Analysis history; only the latest per task is counted

    Returns:
        StoryAnalysisSummary with average score, ready counts and the task
        ids grouped by missing-element category
    """
    latest: dict[str, TaskAnalysis] = {}
    for analysis in analyses:
        if analysis.task_id not in task_ids:
            continue
        current = latest.get(analysis.task_id)
        if current is None or analysis.analyzed_at >= current.analyzed_at:
            latest[analysis.task_id] = analysis

    issues: dict[str, list[str]] = {}
    for task_id in task_ids:
        analysis = latest.get(task_id)
        if analysis is None:
            continue
        for element in analysis.missing_elements:
            bucket = issues.setdefault(element.category.value, [])
            if task_id not in bucket:
                bucket.append(task_id)

    scores = [a.score.overall for a in latest.values()]
    average = int(sum(scores) / len(scores) + 0.5) if scores else None
    last: datetime | None = max((a.analyzed_at for a in latest.values()), default=None)

    return StoryAnalysisSummary(
        story_id=story_id,
        task_count=len(task_ids),
        analyzed_tasks=len(latest),
        average_score=average,
        issues_by_type=issues,
        ai_ready_tasks=sum(1 for a in latest.values() if a.score.is_ai_ready),
        tasks_needing_improvement=sum(1 for a in latest.values() if not a.score.is_ready),
        last_analyzed_at=last,
    )

"""Projections written when jobs complete.

Task analyses and suggestions are inserted, never updated. The story
summary is rebuilt from scratch as a fold over the latest analysis of each
task, so jobs that finish out of order still leave it correct.

Rebuilds of one story are serialized: reading the history and saving the
summary happen under a per-story lock, so the last rebuild to save has seen
every analysis inserted before it started. One Projector is shared by all
workers of an engine.
"""

import logging
import threading

from readiness.analysis.models import StoryAnalysisSummary, TaskAnalysis, TaskSuggestion
from readiness.analysis.summary import summarize_story
from readiness.store.repository import ReadinessStore

logger = logging.getLogger(__name__)


class Projector:
    def __init__(self, store: ReadinessStore):
        self.store = store
        self._story_locks: dict[tuple[str, str], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, org_id: str, story_id: str) -> threading.Lock:
        with self._guard:
            return self._story_locks.setdefault((org_id, story_id), threading.Lock())

    def record_analyses(self, org_id: str, story_id: str, analyses: list[TaskAnalysis]) -> StoryAnalysisSummary:
        for analysis in analyses:
            self.store.insert_analysis(org_id, analysis)
        logger.info(f"[PROJECTION] {story_id}: recorded {len(analyses)} task analyses")
        return self.rebuild_summary(org_id, story_id)

    def rebuild_summary(self, org_id: str, story_id: str) -> StoryAnalysisSummary:
        with self._lock_for(org_id, story_id):
            task_ids = [t.task_id for t in self.store.list_tasks(org_id, story_id)]
            history = self.store.list_story_analyses(org_id, story_id)
            summary = summarize_story(story_id, task_ids, history)
            self.store.save_summary(org_id, summary)
        logger.debug(
            f"[PROJECTION] {story_id}: summary rebuilt "
            f"({summary.analyzed_tasks}/{summary.task_count} analyzed, avg={summary.average_score})"
        )
        return summary

    def record_suggestions(self, org_id: str, story_id: str, suggestions: list[TaskSuggestion]) -> None:
        self.store.insert_suggestions(org_id, suggestions)
        logger.info(f"[PROJECTION] {story_id}: recorded {len(suggestions)} suggestions")

"""Generation statistics over stored runs."""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from article_agent.config import settings
from article_agent.schemas.run import GenerationStats, RunFilter, RunStatus
from article_agent.services.run_store import RunStore, utcnow

logger = logging.getLogger(__name__)


class StatsAggregator:
    """Counts and durations over the runs inside a retention window."""

    def __init__(self, run_store: RunStore, window_days: Optional[int] = None):
        self.run_store = run_store
        self.window_days = window_days if window_days is not None else settings.STATS_WINDOW_DAYS

    def get_stats(self, since: Optional[datetime] = None) -> GenerationStats:
        if since is None and self.window_days:
            since = utcnow() - timedelta(days=self.window_days)

        # TODO: move to SQL aggregates once run volume outgrows a windowed scan
        runs = self.run_store.list(RunFilter(created_after=since))

        statuses = Counter(run.status for run in runs)
        by_topic = Counter(run.topic_id for run in runs)

        durations = [
            (run.completed_at - run.created_at).total_seconds()
            for run in runs
            if run.completed_at is not None
        ]
        average = sum(durations) / len(durations) if durations else 0.0

        logger.info(f"Computed stats over {len(runs)} runs")
        return GenerationStats(
            total_runs=len(runs),
            successful_runs=statuses[RunStatus.COMPLETED],
            failed_runs=statuses[RunStatus.FAILED],
            cancelled_runs=statuses[RunStatus.CANCELLED],
            average_duration_seconds=round(average, 3),
            by_topic=dict(by_topic),
        )

"""Statistics routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from article_agent.deps import get_stats_aggregator
from article_agent.schemas.run import GenerationStats
from article_agent.services.stats import StatsAggregator

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/generation", response_model=GenerationStats)
def generation_stats(
    since: Optional[datetime] = None,
    stats: StatsAggregator = Depends(get_stats_aggregator),
):
    """Run counts and average duration, over the retention window by default."""
    return stats.get_stats(since=since)

"""Topic configuration routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from article_agent.deps import get_topic_loader
from article_agent.schemas.topic import TopicConfig, TopicList
from article_agent.services.topic_loader import TopicLoader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/topics", tags=["topics"])


@router.get("", response_model=TopicList)
async def list_topics(
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    topic_loader: TopicLoader = Depends(get_topic_loader),
):
    return await topic_loader.list_topics(page=page, limit=limit)


@router.get("/{topic_id}/versions")
async def get_topic_versions(topic_id: str, topic_loader: TopicLoader = Depends(get_topic_loader)):
    """Known pinned versions, newest first."""
    versions = await topic_loader.get_topic_versions(topic_id)
    return {"topic_id": topic_id, "versions": versions}


@router.get("/{topic_id}", response_model=TopicConfig)
async def get_topic(
    topic_id: str,
    version: str = Query(..., min_length=1),
    topic_loader: TopicLoader = Depends(get_topic_loader),
):
    """Load one pinned topic version."""
    return await topic_loader.load_topic(topic_id, version)


@router.post("/cache/clear")
async def clear_topic_cache(topic_loader: TopicLoader = Depends(get_topic_loader)):
    cleared = topic_loader.clear_cache()
    logger.info(f"Cleared {cleared} cached topic configs")
    return {"cleared": cleared}

"""Article and run routes."""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from article_agent.deps import get_article_store, get_exporter, get_orchestrator, get_topic_loader
from article_agent.errors import ConfigError
from article_agent.schemas.article import Article, ArticleSummary
from article_agent.schemas.run import (
    GenerateRequest,
    RegenerateRequest,
    RunFilter,
    RunList,
    RunProgress,
    RunRecord,
    RunStartResponse,
    RunStatus,
    TopicRef,
)
from article_agent.schemas.topic import ExportFormat
from article_agent.services.article_store import ArticleStore
from article_agent.services.exporter import Exporter
from article_agent.services.orchestrator import RunOrchestrator
from article_agent.services.topic_loader import TopicLoader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/articles", tags=["articles"])

MEDIA_TYPES = {
    "md": "text/markdown; charset=utf-8",
    "html": "text/html; charset=utf-8",
    "json": "application/json",
}


@router.post("/generate", response_model=RunStartResponse, status_code=202)
async def generate_article(
    data: GenerateRequest,
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
):
    """Start a generation run for a pinned topic version."""
    run_id = await orchestrator.start_generation(
        TopicRef(topic_id=data.topic_id, version=data.version), data.options
    )
    return RunStartResponse(run_id=run_id, message="Article generation started")


@router.get("/runs", response_model=RunList)
def list_runs(
    topic_id: Optional[str] = None,
    status: Optional[RunStatus] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
):
    """List runs, newest first."""
    run_filter = RunFilter(topic_id=topic_id, status=status, limit=limit, offset=offset)
    store = orchestrator.run_store
    return RunList(runs=store.list(run_filter), total=store.count(run_filter))


@router.get("/runs/{run_id}", response_model=RunRecord)
def get_run(run_id: str, orchestrator: RunOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_run(run_id)


@router.get("/runs/{run_id}/status", response_model=RunProgress)
def get_run_status(run_id: str, orchestrator: RunOrchestrator = Depends(get_orchestrator)):
    """Current stage and percent complete."""
    return orchestrator.get_status(run_id)


@router.post("/runs/{run_id}/cancel", response_model=RunRecord)
def cancel_run(run_id: str, orchestrator: RunOrchestrator = Depends(get_orchestrator)):
    return orchestrator.cancel(run_id)


@router.get("", response_model=List[ArticleSummary])
def list_articles(
    topic_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    articles: ArticleStore = Depends(get_article_store),
):
    return articles.list(topic_id=topic_id, status=status, limit=limit, offset=offset)


@router.get("/{article_id}", response_model=Article)
def get_article(article_id: str, articles: ArticleStore = Depends(get_article_store)):
    return articles.get(article_id)


@router.post("/{article_id}/regenerate", response_model=RunStartResponse, status_code=202)
async def regenerate_article(
    article_id: str,
    data: Optional[RegenerateRequest] = None,
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
):
    """Re-run selected stages (default: refine and export) for an article."""
    data = data or RegenerateRequest()
    run_id = await orchestrator.regenerate(article_id, data.stages, stage_timeout=data.stage_timeout)
    return RunStartResponse(run_id=run_id, message="Article regeneration started")


@router.get("/{article_id}/export/{fmt}")
async def export_article(
    article_id: str,
    fmt: ExportFormat,
    articles: ArticleStore = Depends(get_article_store),
    exporter: Exporter = Depends(get_exporter),
    topic_loader: TopicLoader = Depends(get_topic_loader),
):
    """Render an article on demand using its topic's output options."""
    article = await asyncio.to_thread(articles.get, article_id)
    output = None
    try:
        topic = await topic_loader.load_topic(article.topic_id, article.topic_version)
        output = topic.output
    except ConfigError as e:
        logger.warning(f"Rendering {article_id} with default output options: {e}")

    body = exporter.render(article, fmt, output)
    return Response(content=body, media_type=MEDIA_TYPES[fmt])

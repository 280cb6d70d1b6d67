"""Process-wide service instances, exposed as FastAPI dependencies."""

from functools import lru_cache

from article_agent.config import settings
from article_agent.services.article_store import ArticleStore
from article_agent.services.collaborators import LLMCollaboratorFactory
from article_agent.services.exporter import Exporter
from article_agent.services.orchestrator import RunOrchestrator
from article_agent.services.run_store import RunStore
from article_agent.services.stats import StatsAggregator
from article_agent.services.topic_loader import TopicLoader


@lru_cache
def get_run_store() -> RunStore:
    return RunStore()


@lru_cache
def get_article_store() -> ArticleStore:
    return ArticleStore()


@lru_cache
def get_exporter() -> Exporter:
    return Exporter(settings.STORAGE_PATH)


@lru_cache
def get_topic_loader() -> TopicLoader:
    return TopicLoader()


@lru_cache
def get_orchestrator() -> RunOrchestrator:
    return RunOrchestrator(
        topic_loader=get_topic_loader(),
        run_store=get_run_store(),
        article_store=get_article_store(),
        exporter=get_exporter(),
        collaborator_factory=LLMCollaboratorFactory(),
        stage_timeout=settings.STAGE_TIMEOUT_SECONDS,
    )


@lru_cache
def get_stats_aggregator() -> StatsAggregator:
    return StatsAggregator(get_run_store())

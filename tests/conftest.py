"""Pytest configuration and fixtures."""

import asyncio
import json
import os
from datetime import datetime, timezone
from typing import Dict, List

# Keep the application engine off the filesystem when modules are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import sessionmaker

from article_agent import models  # noqa: F401
from article_agent.database import Base, create_db_engine
from article_agent.schemas.article import (
    ArticleContent,
    ArticleOutline,
    Citation,
    RefineResult,
    ResearchResult,
    Section,
    SEOMetadata,
)
from article_agent.schemas.run import StageName
from article_agent.services.article_store import ArticleStore
from article_agent.services.collaborators import StageCollaborators
from article_agent.services.exporter import Exporter
from article_agent.services.orchestrator import RunOrchestrator
from article_agent.services.run_store import RunStore
from article_agent.services.topic_loader import TopicLoader

TOPIC_ID = "ai-basics"
TOPIC_VERSION = "1.0.0"


def topic_document(**overrides) -> Dict:
    """A valid topic config document; top-level keys can be overridden."""
    data = {
        "id": TOPIC_ID,
        "version": TOPIC_VERSION,
        "status": "active",
        "title": "AI Basics",
        "description": "An introduction to artificial intelligence",
        "audience": "beginners",
        "tone": "informal",
        "reading_level": "B1",
        "length": "800-1200",
        "language": "en",
        "models": {
            "outline": "openai/gpt-4o-mini",
            "draft": "openai/gpt-4o",
            "refine": "anthropic/claude-3.5-sonnet",
        },
        "research": {"enabled": True, "min_sources": 1, "max_sources": 5},
        "outline": {"required_sections": ["Introduction", "Conclusion"], "max_sections": 6},
        "seo": {"keywords": ["artificial intelligence", "machine learning"]},
        "output": {"formats": ["md", "html", "json"]},
        "tags": ["ai"],
    }
    data.update(overrides)
    return data


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """Create a test database for each test."""
    # File-backed SQLite: store calls run on worker threads, each with its own connection
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield TestingSessionLocal

    engine.dispose()


@pytest.fixture
def run_store(session_factory):
    return RunStore(session_factory)


@pytest.fixture
def article_store(session_factory):
    return ArticleStore(session_factory)


@pytest.fixture
def topics_dir(tmp_path):
    path = tmp_path / "topics"
    path.mkdir()
    return path


@pytest.fixture
def write_topic(topics_dir):
    """Write a topic file as ``<dir>/<id>/<version>.json``."""

    def _write(**overrides) -> Dict:
        data = topic_document(**overrides)
        target = topics_dir / data["id"]
        target.mkdir(exist_ok=True)
        (target / f"{data['version']}.json").write_text(json.dumps(data), encoding="utf-8")
        return data

    return _write


@pytest.fixture
def topic_loader(topics_dir):
    return TopicLoader(source="local", local_path=str(topics_dir))


@pytest.fixture
def exporter(tmp_path):
    return Exporter(str(tmp_path / "storage"))


class FakeStages:
    """Scriptable stage collaborators.

    Each call produces output tagged with a running call number, so a
    regenerated field is distinguishable from the one it replaced.
    """

    def __init__(self):
        self.calls: List[StageName] = []
        self.failures: Dict[StageName, Exception] = {}
        self.delays: Dict[StageName, float] = {}
        self.gates: Dict[StageName, asyncio.Event] = {}

    async def _enter(self, stage: StageName) -> int:
        self.calls.append(stage)
        if stage in self.gates:
            await self.gates[stage].wait()
        if stage in self.delays:
            await asyncio.sleep(self.delays[stage])
        if stage in self.failures:
            raise self.failures[stage]
        return len(self.calls)

    async def research(self, topic):
        n = await self._enter(StageName.RESEARCH)
        return ResearchResult(
            query=topic.title,
            sources=[
                Citation(
                    id=f"src-{n}",
                    title=f"Source {n}",
                    url=f"https://example.com/{n}",
                    domain="example.com",
                )
            ],
            summary=f"Research summary {n}",
            retrieved_at=datetime.now(timezone.utc),
        )

    async def outline(self, topic, research):
        n = await self._enter(StageName.OUTLINE)
        return ArticleOutline(
            title=f"{topic.title} (outline {n})",
            sections=[Section(id="1", title="Introduction"), Section(id="2", title="Conclusion")],
            estimated_word_count=1000,
            created_at=datetime.now(timezone.utc),
        )

    async def draft(self, topic, outline, research):
        n = await self._enter(StageName.DRAFT)
        return ArticleContent(
            title=outline.title,
            content=f"# {outline.title}\n\nDraft body {n} about machine learning.\n",
            sections=outline.sections,
            word_count=7,
            reading_time_minutes=1,
            created_at=datetime.now(timezone.utc),
        )

    async def refine(self, topic, content, citations):
        n = await self._enter(StageName.REFINE)
        refined = content.model_copy(update={"content": content.content + f"\nRefined {n}.\n"})
        return RefineResult(
            content=refined,
            seo=SEOMetadata(
                title=f"{topic.title} refined {n}",
                description=f"Description {n}",
                keywords=list(topic.seo.keywords),
            ),
        )

    def factory(self, topic) -> StageCollaborators:
        return StageCollaborators(
            research=self.research,
            outline=self.outline,
            draft=self.draft,
            refine=self.refine,
        )


@pytest.fixture
def fake_stages():
    return FakeStages()


@pytest.fixture
def orchestrator(topic_loader, run_store, article_store, exporter, fake_stages, write_topic):
    write_topic()
    return RunOrchestrator(
        topic_loader=topic_loader,
        run_store=run_store,
        article_store=article_store,
        exporter=exporter,
        collaborator_factory=fake_stages.factory,
        stage_timeout=5.0,
    )

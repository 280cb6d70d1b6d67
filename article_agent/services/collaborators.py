"""Resolution of a topic's model names into bound stage collaborators."""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from article_agent.agents.draft import DraftAgent
from article_agent.agents.outline import OutlineAgent
from article_agent.agents.refine import RefineAgent
from article_agent.agents.research import ResearchAgent
from article_agent.errors import ConfigError
from article_agent.schemas.article import (
    ArticleContent,
    ArticleOutline,
    Citation,
    RefineResult,
    ResearchResult,
)
from article_agent.schemas.topic import TopicConfig
from article_agent.services.llm_client import LLMClient, is_allowed_model

logger = logging.getLogger(__name__)

ResearchFn = Callable[[TopicConfig], Awaitable[ResearchResult]]
OutlineFn = Callable[[TopicConfig, Optional[ResearchResult]], Awaitable[ArticleOutline]]
DraftFn = Callable[[TopicConfig, ArticleOutline, Optional[ResearchResult]], Awaitable[ArticleContent]]
RefineFn = Callable[[TopicConfig, ArticleContent, List[Citation]], Awaitable[RefineResult]]


@dataclass(frozen=True)
class StageCollaborators:
    """The generation functions one run executes."""

    research: ResearchFn
    outline: OutlineFn
    draft: DraftFn
    refine: RefineFn


CollaboratorFactory = Callable[[TopicConfig], StageCollaborators]


class LLMCollaboratorFactory:
    """Builds LLM-backed collaborators for a topic's ``models`` triple.

    An unknown model name is a ConfigError raised before any run exists;
    there is no fallback to another model.
    """

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm_client = llm_client or LLMClient()

    def __call__(self, topic: TopicConfig) -> StageCollaborators:
        models = topic.models
        unknown = [
            f"{stage}={name}"
            for stage, name in (("outline", models.outline), ("draft", models.draft), ("refine", models.refine))
            if not is_allowed_model(name)
        ]
        if unknown:
            raise ConfigError(f"Unknown model(s) for topic {topic.key}: {', '.join(unknown)}")

        # Research has no model of its own; it shares the outline model
        research_agent = ResearchAgent(self.llm_client, models.outline)
        outline_agent = OutlineAgent(self.llm_client, models.outline)
        draft_agent = DraftAgent(self.llm_client, models.draft)
        refine_agent = RefineAgent(self.llm_client, models.refine)

        async def research(t: TopicConfig) -> ResearchResult:
            return await research_agent.execute(t)

        async def outline(t: TopicConfig, research_result: Optional[ResearchResult]) -> ArticleOutline:
            return await outline_agent.execute(t, research=research_result)

        async def draft(
            t: TopicConfig, outline_result: ArticleOutline, research_result: Optional[ResearchResult]
        ) -> ArticleContent:
            return await draft_agent.execute(t, outline=outline_result, research=research_result)

        async def refine(t: TopicConfig, content: ArticleContent, citations: List[Citation]) -> RefineResult:
            return await refine_agent.execute(t, content=content, citations=citations)

        logger.info(
            f"Resolved collaborators for {topic.key}: outline={models.outline}, "
            f"draft={models.draft}, refine={models.refine}"
        )
        return StageCollaborators(research=research, outline=outline, draft=draft, refine=refine)

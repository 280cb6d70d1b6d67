"""Draft agent."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from article_agent.agents.base import AgentOutputError, BaseAgent
from article_agent.schemas.article import ArticleContent, ArticleOutline, ResearchResult, Section
from article_agent.schemas.topic import TopicConfig
from article_agent.text import count_words, reading_time_minutes

logger = logging.getLogger(__name__)


def assemble_markdown(title: str, sections: List[Section]) -> str:
    """Join drafted sections into one markdown body."""
    parts = [f"# {title}"]

    def walk(items: List[Section]) -> None:
        for section in items:
            parts.append(f"{'#' * section.level} {section.title}")
            if section.content:
                parts.append(section.content.strip())
            walk(section.subsections)

    walk(sections)
    return "\n\n".join(parts) + "\n"


class DraftAgent(BaseAgent):
    """Agent for writing section content from the outline."""

    async def _run(
        self,
        topic: TopicConfig,
        outline: Optional[ArticleOutline] = None,
        research: Optional[ResearchResult] = None,
        **inputs: Any,
    ) -> ArticleContent:
        if outline is None:
            raise AgentOutputError("Draft stage requires an outline")

        min_words, max_words = topic.length_range
        outline_json = json.dumps(
            [s.model_dump(include={"id", "title", "level", "content", "subsections"}) for s in outline.sections],
            indent=2,
        )
        sources = "\n".join(f"- [{c.id}] {c.title}: {c.snippet}" for c in research.sources) if research else ""

        prompt = f"""Write the article "{outline.title}" following this outline:
{outline_json}

Audience: {topic.audience}
Tone: {topic.tone}
Reading level: {topic.reading_level}
Language: {topic.language}
Total length: {min_words}-{max_words} words

Sources (cite as [src-N] where used):
{sources or "(none)"}

Return JSON: {{"sections": [{{"id": "<outline id>", "content": "markdown paragraphs", "citations": ["src-1"]}}]}}
"""
        data = await self._complete_json(prompt, temperature=0.5, max_tokens=8000)

        written = {
            str(item.get("id")): item
            for item in data.get("sections") or []
            if isinstance(item, dict) and item.get("content")
        }

        def fill(items: List[Section]) -> List[Section]:
            filled = []
            for section in items:
                item = written.get(section.id, {})
                content = str(item.get("content") or "")
                filled.append(
                    section.model_copy(
                        update={
                            "content": content,
                            "citations": [str(c) for c in item.get("citations") or []],
                            "word_count": count_words(content),
                            "subsections": fill(section.subsections),
                        }
                    )
                )
            return filled

        sections = fill(outline.sections)
        body = assemble_markdown(outline.title, sections)
        word_count = count_words(body)
        now = datetime.now(timezone.utc)

        return ArticleContent(
            title=outline.title,
            content=body,
            sections=sections,
            word_count=word_count,
            reading_time_minutes=reading_time_minutes(word_count),
            language=topic.language,
            created_at=now,
        )

    def _validate(self, result: Any) -> bool:
        """Validate that at least one section has content."""
        if not isinstance(result, ArticleContent):
            return False
        if not any(s.content for s in result.sections):
            logger.warning("Draft has no section content")
            return False
        return True

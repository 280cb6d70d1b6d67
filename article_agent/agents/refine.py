"""Refine/SEO agent."""

import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

from article_agent.agents.base import AgentOutputError, BaseAgent
from article_agent.schemas.article import ArticleContent, Citation, RefineResult, SEOMetadata
from article_agent.schemas.topic import TopicConfig
from article_agent.text import count_words, keyword_density, reading_time_minutes, truncate

logger = logging.getLogger(__name__)

LINK_RE = re.compile(r"\[[^\]]+\]\(([^)\s]+)\)")


def extract_links(markdown: str) -> List[str]:
    return LINK_RE.findall(markdown or "")


def basic_seo_metadata(topic: TopicConfig, content: ArticleContent) -> SEOMetadata:
    """SEO metadata derived from the topic alone, used when refinement is skipped."""
    seo = topic.seo
    description = f"{topic.description or topic.title}. {', '.join(seo.keywords)}."
    links = extract_links(content.content)
    return SEOMetadata(
        title=truncate(topic.title, seo.meta_title_length.max),
        description=truncate(description, seo.meta_description_length.max),
        keywords=list(seo.keywords),
        keyword_density=keyword_density(content.content, seo.keywords),
        internal_links=[link for link in links if link.startswith("/")],
        external_links=[link for link in links if link.startswith("http")],
    )


def seo_issues(topic: TopicConfig, content: ArticleContent) -> List[str]:
    """Density and link-count problems the refine prompt should fix."""
    issues = []
    low, high = topic.seo.density_range
    for keyword, density in keyword_density(content.content, topic.seo.keywords).items():
        if density < low:
            issues.append(f'Keyword "{keyword}" density too low: {density:.1f}%')
        elif density > high:
            issues.append(f'Keyword "{keyword}" density too high: {density:.1f}%')

    links = extract_links(content.content)
    internal = sum(1 for link in links if link.startswith("/"))
    external = sum(1 for link in links if link.startswith("http"))
    if internal < topic.seo.internal_links.min:
        issues.append(f"Too few internal links: {internal} (min {topic.seo.internal_links.min})")
    if external < topic.seo.external_links.min:
        issues.append(f"Too few external links: {external} (min {topic.seo.external_links.min})")
    if external > topic.seo.external_links.max:
        issues.append(f"Too many external links: {external} (max {topic.seo.external_links.max})")
    return issues


class RefineAgent(BaseAgent):
    """Agent for editing the draft and producing SEO metadata."""

    async def _run(
        self,
        topic: TopicConfig,
        content: Optional[ArticleContent] = None,
        citations: Optional[List[Citation]] = None,
        **inputs: Any,
    ) -> RefineResult:
        if content is None:
            raise AgentOutputError("Refine stage requires a draft")

        seo = topic.seo
        issues = seo_issues(topic, content)
        sources = "\n".join(f"- {c.title}: {c.url}" for c in citations or [])

        prompt = f"""Edit this article for clarity and search optimization.

Keywords: {", ".join(seo.keywords)}
Keyword density target: {seo.keyword_density}
Internal links: {seo.internal_links.min}-{seo.internal_links.max}
External links: {seo.external_links.min}-{seo.external_links.max}
Meta title length: {seo.meta_title_length.min}-{seo.meta_title_length.max} characters
Meta description length: {seo.meta_description_length.min}-{seo.meta_description_length.max} characters

Known issues:
{chr(10).join(f"- {i}" for i in issues) or "(none)"}

Sources available for external links:
{sources or "(none)"}

Article (markdown):
{content.content}

Return JSON: {{"content": "full revised markdown", "meta_title": "...", "meta_description": "..."}}
"""
        data = await self._complete_json(prompt, temperature=0.3, max_tokens=8000)

        revised = str(data.get("content") or "").strip()
        if not revised:
            raise AgentOutputError("Refine agent returned empty content")

        word_count = count_words(revised)
        refined = content.model_copy(
            update={
                "content": revised + "\n",
                "word_count": word_count,
                "reading_time_minutes": reading_time_minutes(word_count),
                "updated_at": datetime.now(timezone.utc),
            }
        )

        fallback = basic_seo_metadata(topic, refined)
        title = truncate(str(data.get("meta_title") or fallback.title), seo.meta_title_length.max)
        description = truncate(
            str(data.get("meta_description") or fallback.description), seo.meta_description_length.max
        )
        metadata = fallback.model_copy(
            update={
                "title": title,
                "description": description,
                "og_title": title,
                "og_description": description,
            }
        )

        return RefineResult(content=refined, seo=metadata)

    def _validate(self, result: Any) -> bool:
        return isinstance(result, RefineResult) and bool(result.content.content.strip())

"""Research agent: gathers candidate sources and key points."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List
from urllib.parse import urlparse

from article_agent.agents.base import AgentOutputError, BaseAgent
from article_agent.schemas.article import Citation, ResearchResult
from article_agent.schemas.topic import ResearchConfig, TopicConfig

logger = logging.getLogger(__name__)


def _domain(url: str) -> str:
    host = urlparse(url).netloc.lower()
    return host[4:] if host.startswith("www.") else host


def _matches(domain: str, pattern: str) -> bool:
    pattern = pattern.lower().lstrip(".")
    return domain == pattern or domain.endswith("." + pattern)


def filter_sources(candidates: List[Citation], research: ResearchConfig) -> List[Citation]:
    """Apply allow/block lists, drop duplicate URLs, cap at max_sources."""
    kept: List[Citation] = []
    seen = set()
    for citation in candidates:
        domain = citation.domain or _domain(citation.url)
        if research.allowlist and not any(_matches(domain, p) for p in research.allowlist):
            continue
        if any(_matches(domain, p) for p in research.blocklist):
            continue
        if citation.url in seen:
            continue
        seen.add(citation.url)
        kept.append(citation)
    return kept[: research.max_sources]


class ResearchAgent(BaseAgent):
    """Agent for collecting research sources for a topic."""

    async def _run(self, topic: TopicConfig, **inputs: Any) -> ResearchResult:
        research = topic.research
        keywords = ", ".join(topic.seo.keywords)
        required = ", ".join(research.required_keywords) or "none"
        prompt = f"""Suggest authoritative sources for an article titled "{topic.title}".

Audience: {topic.audience}
Keywords: {keywords}
Required keywords: {required}
Return between {research.min_sources} and {research.max_sources} sources.
{f"Prefer sources from the last {research.freshness_days} days." if research.freshness_days else ""}

Return JSON: {{"summary": "...", "key_points": ["..."],
"sources": [{{"title": "...", "url": "https://...", "snippet": "...", "relevance_score": 0.0}}]}}
"""
        data = await self._complete_json(prompt, temperature=0.2, max_tokens=3000)

        retrieved_at = datetime.now(timezone.utc)
        candidates = [
            self._to_citation(index, raw, retrieved_at)
            for index, raw in enumerate(data.get("sources") or [], start=1)
            if isinstance(raw, dict) and raw.get("url")
        ]
        sources = filter_sources(candidates, research)
        if len(sources) < research.min_sources:
            logger.warning(
                f"Only found {len(sources)} sources for {topic.key}, minimum required: {research.min_sources}"
            )

        return ResearchResult(
            query=f"{topic.title} research",
            sources=sources,
            summary=str(data.get("summary") or ""),
            key_points=[str(p) for p in data.get("key_points") or []],
            retrieved_at=retrieved_at,
        )

    def _to_citation(self, index: int, raw: Dict[str, Any], retrieved_at: datetime) -> Citation:
        url = str(raw["url"])
        score = raw.get("relevance_score")
        try:
            score = min(max(float(score), 0.0), 1.0) if score is not None else None
        except (TypeError, ValueError):
            score = None
        return Citation(
            id=f"src-{index}",
            title=str(raw.get("title") or url),
            url=url,
            domain=_domain(url),
            snippet=str(raw.get("snippet") or ""),
            relevance_score=score,
            retrieved_at=retrieved_at,
        )

    def _validate(self, result: Any) -> bool:
        if not isinstance(result, ResearchResult):
            raise AgentOutputError("Research agent returned an unexpected type")
        return True

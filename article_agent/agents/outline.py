"""Outline agent."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from article_agent.agents.base import BaseAgent
from article_agent.schemas.article import ArticleOutline, ResearchResult, Section
from article_agent.schemas.topic import OutlineConfig, TopicConfig

logger = logging.getLogger(__name__)


def _to_section(raw: Dict[str, Any], index: str, level: int, max_depth: int) -> Section:
    subsections = []
    if level < max_depth:
        subsections = [
            _to_section(child, f"{index}.{i}", level + 1, max_depth)
            for i, child in enumerate(raw.get("subsections") or [], start=1)
            if isinstance(child, dict) and child.get("title")
        ]
    return Section(
        id=index,
        title=str(raw["title"]),
        level=level,
        content=raw.get("goal"),
        subsections=subsections,
    )


def enforce_outline_rules(sections: List[Section], config: OutlineConfig) -> List[Section]:
    """Guarantee required sections and the section cap.

    The first required section goes first, the rest go last, and optional
    sections are dropped to make room.
    """
    titles = {s.title.strip().lower() for s in sections}
    missing = [t for t in config.required_sections if t.strip().lower() not in titles]

    if missing:
        head = [Section(id="0", title=missing[0], level=2)] if missing[0] == config.required_sections[0] else []
        tail = [Section(id="0", title=t, level=2) for t in missing[len(head):]]
        sections = head + list(sections) + tail

    if len(sections) > config.max_sections:
        required = {t.strip().lower() for t in config.required_sections}
        optional_budget = config.max_sections - sum(1 for s in sections if s.title.strip().lower() in required)
        trimmed = []
        for section in sections:
            if section.title.strip().lower() in required:
                trimmed.append(section)
            elif optional_budget > 0:
                trimmed.append(section)
                optional_budget -= 1
        sections = trimmed

    _renumber(sections, "")
    return sections


def _renumber(sections: List[Section], prefix: str) -> None:
    for position, section in enumerate(sections, start=1):
        section.id = f"{prefix}{position}"
        _renumber(section.subsections, f"{section.id}.")


class OutlineAgent(BaseAgent):
    """Agent for generating a hierarchical outline."""

    async def _run(
        self, topic: TopicConfig, research: Optional[ResearchResult] = None, **inputs: Any
    ) -> ArticleOutline:
        sources = "\n".join(f"- [{c.id}] {c.title} ({c.domain})" for c in research.sources) if research else ""
        key_points = "\n".join(f"- {p}" for p in research.key_points) if research else ""
        min_words, max_words = topic.length_range

        prompt = f"""Create an outline for an article titled "{topic.title}".

Audience: {topic.audience}
Tone: {topic.tone}
Target length: {min_words}-{max_words} words
Required sections: {", ".join(topic.outline.required_sections)}
Maximum top-level sections: {topic.outline.max_sections}
Maximum heading depth: {topic.outline.section_depth}
Subsections allowed: {topic.outline.include_subsections}

Available sources:
{sources or "(none)"}

Key points from research:
{key_points or "(none)"}

Return JSON: {{"title": "...", "sections": [{{"title": "...", "goal": "...", "subsections": [...]}}]}}
"""
        data = await self._complete_json(prompt, temperature=0.3, max_tokens=3000)

        # Top-level sections are H2
        max_depth = min(1 + topic.outline.section_depth, 6) if topic.outline.include_subsections else 2
        sections = [
            _to_section(raw, str(i), 2, max_depth)
            for i, raw in enumerate(data.get("sections") or [], start=1)
            if isinstance(raw, dict) and raw.get("title")
        ]
        sections = enforce_outline_rules(sections, topic.outline)

        return ArticleOutline(
            title=str(data.get("title") or topic.title),
            sections=sections,
            estimated_word_count=(min_words + max_words) // 2,
            created_at=datetime.now(timezone.utc),
        )

    def _validate(self, result: Any) -> bool:
        """Validate outline has sections."""
        return isinstance(result, ArticleOutline) and len(result.sections) > 0

"""Deterministic article exporters (markdown, HTML, JSON)."""

import json
import logging
import os
from html import escape
from typing import Any, List, Optional

from markdown_it import MarkdownIt

from article_agent.config import settings
from article_agent.errors import InvalidRequest
from article_agent.schemas.article import Article, ArticleContent, Citation, Section
from article_agent.schemas.topic import OutputConfig

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("md", "html", "json")

# CommonMark plus tables; raw HTML in article text is escaped, not passed through
_MARKDOWN = MarkdownIt("commonmark", {"html": False}).enable("table")


def _safe_text(value: Any) -> str:
    if value is None:
        return ""
    return escape(str(value), quote=True)


def _final_content(article: Article) -> Optional[ArticleContent]:
    return article.content or article.draft


def _outline_markdown(sections: List[Section], depth: int = 0) -> str:
    lines = []
    for section in sections:
        lines.append(f"{'  ' * depth}- {section.title}")
        if section.subsections:
            lines.append(_outline_markdown(section.subsections, depth + 1))
    return "\n".join(lines)


def _citations_markdown(citations: List[Citation]) -> str:
    return "\n".join(
        f"{index}. [{c.title}]({c.url}) ({c.domain})" for index, c in enumerate(citations, start=1)
    )


def _front_matter(article: Article) -> str:
    lines = [
        "---",
        f"id: {article.id}",
        f"topic: {article.topic_id}@{article.topic_version}",
        f"title: {json.dumps(article.title)}",
        f"created_at: {article.created_at.isoformat()}",
    ]
    if article.seo:
        lines.append(f"description: {json.dumps(article.seo.description)}")
        lines.append(f"keywords: {json.dumps(article.seo.keywords)}")
    lines.append("---")
    return "\n".join(lines)


def export_markdown(article: Article, output: OutputConfig) -> str:
    """Markdown with optional front matter, table of contents and references."""
    parts: List[str] = []

    if output.include_metadata:
        parts.append(_front_matter(article))

    if output.include_outline and article.outline:
        parts.append("## Table of Contents\n\n" + _outline_markdown(article.outline.sections))

    content = _final_content(article)
    if content is not None:
        parts.append(content.content.strip())

    if output.include_citations and article.citations:
        parts.append("## References\n\n" + _citations_markdown(article.citations))

    return "\n\n".join(part for part in parts if part).strip() + "\n"


def _markdown_body_html(markdown: str) -> str:
    return _MARKDOWN.render(markdown)


def export_html(article: Article, output: OutputConfig) -> str:
    """Standalone HTML document with SEO meta tags."""
    content = _final_content(article)
    title = (article.seo.title if article.seo else "") or article.title
    language = content.language if content else "en"

    head = [
        "<meta charset=\"UTF-8\">",
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1.0\">",
        f"<title>{_safe_text(title)}</title>",
    ]
    if output.include_metadata and article.seo:
        seo = article.seo
        head.append(f"<meta name=\"description\" content=\"{_safe_text(seo.description)}\">")
        head.append(f"<meta name=\"keywords\" content=\"{_safe_text(', '.join(seo.keywords))}\">")
        head.append(f"<meta property=\"og:title\" content=\"{_safe_text(seo.og_title or seo.title)}\">")
        head.append(
            f"<meta property=\"og:description\" content=\"{_safe_text(seo.og_description or seo.description)}\">"
        )
        head.append("<meta property=\"og:type\" content=\"article\">")
        if seo.canonical_url:
            head.append(f"<link rel=\"canonical\" href=\"{_safe_text(seo.canonical_url)}\">")

    body = [f"<header><h1>{_safe_text(article.title)}</h1>"]
    if output.include_metadata and content:
        body.append(
            f"<p class=\"article-meta\">{content.reading_time_minutes} min read"
            f" &middot; {content.word_count} words</p>"
        )
    body.append("</header>")

    if output.include_outline and article.outline:
        items = "".join(f"<li>{_safe_text(s.title)}</li>" for s in article.outline.sections)
        body.append(f"<nav class=\"table-of-contents\"><h2>Table of Contents</h2><ul>{items}</ul></nav>")

    if content is not None:
        body.append(f"<div class=\"article-body\">{_markdown_body_html(content.content)}</div>")

    if output.include_citations and article.citations:
        refs = "".join(
            f"<li><a href=\"{_safe_text(c.url)}\">{_safe_text(c.title)}</a> ({_safe_text(c.domain)})</li>"
            for c in article.citations
        )
        body.append(f"<section class=\"references\"><h2>References</h2><ol>{refs}</ol></section>")

    return (
        f"<!DOCTYPE html>\n<html lang=\"{_safe_text(language)}\">\n<head>\n"
        + "\n".join(head)
        + "\n</head>\n<body>\n<article>"
        + "".join(body)
        + "</article>\n</body>\n</html>\n"
    )


def export_json(article: Article, output: OutputConfig) -> str:
    exclude = set()
    if not output.include_metadata:
        exclude.add("metadata")
    if not output.include_citations:
        exclude.update({"citations", "research"})
    if not output.include_outline:
        exclude.add("outline")
    return json.dumps(article.model_dump(mode="json", exclude=exclude), indent=2, ensure_ascii=False)


_RENDERERS = {
    "md": export_markdown,
    "html": export_html,
    "json": export_json,
}


class Exporter:
    """Renders articles and writes export files under ``STORAGE_PATH/exports``."""

    def __init__(self, storage_path: Optional[str] = None):
        self.storage_path = storage_path or settings.STORAGE_PATH

    def render(self, article: Article, fmt: str, output: Optional[OutputConfig] = None) -> str:
        renderer = _RENDERERS.get(fmt)
        if renderer is None:
            raise InvalidRequest(f"Unsupported export format: {fmt}")
        return renderer(article, output or OutputConfig(formats=[fmt]))

    def export_path(self, article_id: str, fmt: str) -> str:
        return os.path.join(self.storage_path, "exports", article_id, f"article.{fmt}")

    def write_exports(self, article: Article, output: OutputConfig) -> List[str]:
        """Write one file per configured format and return their paths."""
        paths = []
        for fmt in output.formats:
            path = self.export_path(article.id, fmt)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8") as handle:
                handle.write(self.render(article, fmt, output))
            paths.append(path)
            logger.info(f"Export saved: {path}")
        return paths

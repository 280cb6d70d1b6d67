"""Tests for article exporters."""

import json
import os
from datetime import datetime, timezone

import pytest

from article_agent.errors import InvalidRequest
from article_agent.schemas.article import (
    Article,
    ArticleContent,
    ArticleOutline,
    Citation,
    Section,
    SEOMetadata,
)
from article_agent.schemas.topic import OutputConfig
from article_agent.services.exporter import export_html, export_json, export_markdown

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def article():
    content = ArticleContent(
        title="AI <Basics>",
        content="# AI <Basics>\n\nMachine learning & you.\n\n## Conclusion\n\nThat is all.\n",
        word_count=8,
        reading_time_minutes=1,
        created_at=NOW,
    )
    return Article(
        id="art-1",
        topic_id="ai-basics",
        topic_version="1.0.0",
        status="published",
        title="AI <Basics>",
        citations=[Citation(id="c1", title="Intro to ML", url="https://example.com/ml", domain="example.com")],
        outline=ArticleOutline(
            title="AI <Basics>",
            sections=[Section(id="1", title="Introduction"), Section(id="2", title="Conclusion")],
            created_at=NOW,
        ),
        draft=content,
        content=content,
        seo=SEOMetadata(title="AI Basics", description="A gentle intro", keywords=["ai"]),
        created_at=NOW,
    )


def test_markdown_includes_sections(article):
    output = OutputConfig(formats=["md"])

    rendered = export_markdown(article, output)

    assert rendered.startswith("---\nid: art-1\n")
    assert "## Table of Contents\n\n- Introduction\n- Conclusion" in rendered
    assert "## References\n\n1. [Intro to ML](https://example.com/ml) (example.com)" in rendered
    assert rendered.endswith("\n")


def test_markdown_respects_output_flags(article):
    output = OutputConfig(formats=["md"], include_metadata=False, include_outline=False, include_citations=False)

    rendered = export_markdown(article, output)

    assert rendered.startswith("# AI <Basics>")
    assert "References" not in rendered
    assert "Table of Contents" not in rendered


def test_html_escapes_text(article):
    rendered = export_html(article, OutputConfig(formats=["html"]))

    assert "<h1>AI &lt;Basics&gt;</h1>" in rendered
    assert "<p>Machine learning &amp; you.</p>" in rendered
    assert '<meta name="description" content="A gentle intro">' in rendered
    assert '<a href="https://example.com/ml">Intro to ML</a>' in rendered


def test_html_is_deterministic(article):
    output = OutputConfig(formats=["html"])

    assert export_html(article, output) == export_html(article, output)


def test_json_drops_excluded_fields(article):
    rendered = json.loads(export_json(article, OutputConfig(formats=["json"], include_citations=False)))

    assert rendered["id"] == "art-1"
    assert "citations" not in rendered
    assert "metadata" in rendered


def test_write_exports(exporter, article):
    paths = exporter.write_exports(article, OutputConfig(formats=["md", "json"]))

    assert [os.path.basename(p) for p in paths] == ["article.md", "article.json"]
    assert all(os.path.isfile(p) for p in paths)
    assert paths[0] == exporter.export_path("art-1", "md")


def test_render_unknown_format(exporter, article):
    with pytest.raises(InvalidRequest):
        exporter.render(article, "pdf")


def test_html_renders_markdown_inline_and_lists(article):
    article.content = article.content.model_copy(
        update={
            "content": (
                "## Why it matters\n\nModels are **fast** and *cheap*, see [the docs](https://example.com/docs).\n\n"
                "- one\n- two\n\n<script>alert(1)</script>\n"
            )
        }
    )

    rendered = export_html(article, OutputConfig(formats=["html"]))

    assert "<h2>Why it matters</h2>" in rendered
    assert "<strong>fast</strong>" in rendered
    assert "<em>cheap</em>" in rendered
    assert '<a href="https://example.com/docs">the docs</a>' in rendered
    assert "<li>one</li>" in rendered
    assert "<script>" not in rendered
    assert "&lt;script&gt;" in rendered

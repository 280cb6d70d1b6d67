"""Article artifact schemas passed between stages."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class Citation(BaseModel):
    """A research source."""

    id: str
    title: str
    url: str
    domain: str
    snippet: str = ""
    relevance_score: Optional[float] = Field(default=None, ge=0, le=1)
    retrieved_at: Optional[datetime] = None


class ResearchResult(BaseModel):
    """Output of the research stage."""

    query: str
    sources: List[Citation] = []
    summary: str = ""
    key_points: List[str] = []
    retrieved_at: datetime


class Section(BaseModel):
    """Outline or content section, possibly nested."""

    id: str
    title: str
    level: int = Field(default=2, ge=1, le=6)
    content: Optional[str] = None
    subsections: List[Section] = []
    citations: List[str] = []
    word_count: Optional[int] = Field(default=None, ge=0)


class ArticleOutline(BaseModel):
    """Output of the outline stage."""

    title: str
    sections: List[Section]
    estimated_word_count: int = Field(default=0, ge=0)
    created_at: datetime


class ArticleContent(BaseModel):
    """Output of the draft stage, and of the refine stage after editing."""

    title: str
    content: str  # full body in markdown
    sections: List[Section] = []
    word_count: int = Field(default=0, ge=0)
    reading_time_minutes: int = Field(default=0, ge=0)
    language: str = "en"
    created_at: datetime
    updated_at: Optional[datetime] = None


class SEOMetadata(BaseModel):
    """Search metadata produced by the refine stage."""

    title: str
    description: str
    keywords: List[str] = []
    keyword_density: Dict[str, float] = {}
    canonical_url: Optional[str] = None
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    internal_links: List[str] = []
    external_links: List[str] = []


class RefineResult(BaseModel):
    """Output of the refine stage."""

    content: ArticleContent
    seo: SEOMetadata


class ArticleMetadata(BaseModel):
    """Generation bookkeeping."""

    models_used: Dict[str, str] = {}
    generation_time_ms: int = 0
    run_ids: List[str] = []


class Article(BaseModel):
    """The article artifact.

    Each stage owns a disjoint set of fields:

    - research: ``research``, ``citations``
    - outline: ``outline``, ``title``
    - draft: ``draft``
    - refine: ``content``, ``seo``
    - export: ``files``, ``status``
    """

    id: str
    topic_id: str
    topic_version: str
    status: Literal["draft", "published"] = "draft"
    title: str = ""
    research: Optional[ResearchResult] = None
    citations: List[Citation] = []
    outline: Optional[ArticleOutline] = None
    draft: Optional[ArticleContent] = None
    content: Optional[ArticleContent] = None
    seo: Optional[SEOMetadata] = None
    metadata: ArticleMetadata = ArticleMetadata()
    files: List[str] = []
    created_at: datetime
    updated_at: Optional[datetime] = None


class ArticleSummary(BaseModel):
    """Listing entry for an article."""

    id: str
    topic_id: str
    topic_version: str
    status: str
    title: str
    created_at: datetime
    updated_at: Optional[datetime] = None


Section.model_rebuild()

"""Topic configuration schemas."""

import re
from datetime import datetime
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PINNED_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")
# Topic ids name files and URL segments: a slug, never a path
TOPIC_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_-]*$"
TOPIC_ID_RE = re.compile(TOPIC_ID_PATTERN)
LENGTH_RE = re.compile(r"^(\d+)-(\d+)$")
DENSITY_RE = re.compile(r"^(\d+(?:\.\d+)?)-(\d+(?:\.\d+)?)%$")

ExportFormat = Literal["md", "html", "json"]


class _Frozen(BaseModel):
    """Loaded topics are read-only."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class Range(_Frozen):
    """Inclusive integer range."""

    min: int = Field(ge=0)
    max: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self):
        if self.min > self.max:
            raise ValueError(f"range min {self.min} exceeds max {self.max}")
        return self


class ModelConfig(_Frozen):
    """Which model each generation stage uses."""

    outline: str = Field(min_length=1)
    draft: str = Field(min_length=1)
    refine: str = Field(min_length=1)


class ResearchConfig(_Frozen):
    """Research stage configuration."""

    enabled: bool = True
    sources: List[str] = ["duckduckgo"]
    allowlist: List[str] = []
    blocklist: List[str] = []
    min_sources: int = Field(default=3, ge=1)
    max_sources: int = Field(default=10, ge=1)
    freshness_days: Optional[int] = Field(default=None, ge=1)
    required_keywords: List[str] = []

    @model_validator(mode="after")
    def _check_counts(self):
        if self.min_sources > self.max_sources:
            raise ValueError("research.min_sources exceeds research.max_sources")
        return self


class OutlineConfig(_Frozen):
    """Outline stage configuration."""

    required_sections: List[str] = ["Introduction", "Conclusion"]
    max_sections: int = Field(default=10, ge=1)
    section_depth: int = Field(default=3, ge=1, le=6)
    include_subsections: bool = True


class SEOConfig(_Frozen):
    """SEO targets for the refine stage."""

    keywords: List[str] = Field(min_length=1)
    keyword_density: str = "1-2%"
    meta_title_length: Range = Range(min=30, max=60)
    meta_description_length: Range = Range(min=120, max=160)
    internal_links: Range = Range(min=2, max=10)
    external_links: Range = Range(min=1, max=5)

    @field_validator("keyword_density")
    @classmethod
    def _check_density(cls, value: str) -> str:
        match = DENSITY_RE.match(value)
        if not match:
            raise ValueError('keyword_density must look like "1-2%" or "1.5-2.5%"')
        if float(match.group(1)) > float(match.group(2)):
            raise ValueError("keyword_density lower bound exceeds upper bound")
        return value

    @property
    def density_range(self) -> Tuple[float, float]:
        match = DENSITY_RE.match(self.keyword_density)
        return float(match.group(1)), float(match.group(2))


class OutputConfig(_Frozen):
    """Export configuration."""

    formats: List[ExportFormat] = Field(min_length=1)
    include_metadata: bool = True
    include_citations: bool = True
    include_outline: bool = True


class TopicConfig(_Frozen):
    """Versioned topic document that drives one article."""

    id: str = Field(min_length=1, pattern=TOPIC_ID_PATTERN)
    version: str
    status: Literal["active", "draft", "deprecated"] = "active"
    title: str = Field(min_length=1)
    description: Optional[str] = None
    audience: str = Field(min_length=1)
    tone: Literal[
        "formal", "informal", "neutral", "conversational", "academic", "professional"
    ] = "neutral"
    reading_level: Literal["A1", "A2", "B1", "B2", "C1", "C2"] = "B2"
    length: str
    language: str = Field(default="en", min_length=2, max_length=5)
    models: ModelConfig
    research: ResearchConfig = ResearchConfig()
    outline: OutlineConfig = OutlineConfig()
    seo: SEOConfig
    output: OutputConfig
    tags: List[str] = []
    priority: int = Field(default=5, ge=1, le=10)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not PINNED_VERSION_RE.match(value):
            raise ValueError(
                f"version {value!r} must be pinned semver MAJOR.MINOR.PATCH (e.g. 1.0.0)"
            )
        return value

    @field_validator("length")
    @classmethod
    def _check_length(cls, value: str) -> str:
        match = LENGTH_RE.match(value)
        if not match:
            raise ValueError('length must look like "min-max" (e.g. "1200-1500")')
        if int(match.group(1)) > int(match.group(2)):
            raise ValueError("length min exceeds max")
        return value

    @property
    def key(self) -> str:
        return f"{self.id}@{self.version}"

    @property
    def length_range(self) -> Tuple[int, int]:
        match = LENGTH_RE.match(self.length)
        return int(match.group(1)), int(match.group(2))


class TopicSummary(BaseModel):
    """Listing entry for a topic."""

    id: str
    version: str
    title: str
    status: str
    tags: List[str] = []
    priority: int = 5
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TopicList(BaseModel):
    """Paginated topic listing."""

    topics: List[TopicSummary]
    total: int
    page: Optional[int] = None
    limit: Optional[int] = None


def is_topic_id(topic_id: str) -> bool:
    """True when topic_id is a slug that cannot escape the topics directory."""
    return bool(TOPIC_ID_RE.match(topic_id or ""))


def is_pinned_version(version: str) -> bool:
    """True when version is an exact MAJOR.MINOR.PATCH string."""
    return bool(PINNED_VERSION_RE.match(version or ""))


def version_key(version: str) -> Tuple[int, ...]:
    """Sort key for semver strings."""
    return tuple(int(part) for part in version.split("."))

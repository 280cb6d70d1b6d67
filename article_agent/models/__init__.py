"""SQLAlchemy ORM models."""

from article_agent.models.article import ArticleRow
from article_agent.models.run import Run

__all__ = [
    "ArticleRow",
    "Run",
]

"""Article persistence."""

import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from article_agent.database import SessionLocal
from article_agent.errors import NotFound
from article_agent.models.article import ArticleRow
from article_agent.schemas.article import Article, ArticleSummary
from article_agent.services.run_store import KeyedLocks, to_db_time

logger = logging.getLogger(__name__)


class ArticleStore:
    """Stores the latest version of each article.

    Concurrent runs against one article go through ``update`` so each only
    replaces the fields it produced.
    """

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory
        self._locks = KeyedLocks()

    def save(self, article: Article) -> Article:
        db: Session = self._session_factory()
        try:
            row = db.query(ArticleRow).filter(ArticleRow.article_id == article.id).first()
            if row is None:
                row = ArticleRow(article_id=article.id)
                db.add(row)

            row.topic_id = article.topic_id
            row.topic_version = article.topic_version
            row.status = article.status
            row.title = article.title
            row.document = article.model_dump(mode="json")
            row.created_at = to_db_time(article.created_at)
            row.updated_at = to_db_time(article.updated_at)

            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(f"Article saved: {article.id}")
        return article

    def get(self, article_id: str) -> Article:
        db: Session = self._session_factory()
        try:
            row = db.query(ArticleRow).filter(ArticleRow.article_id == article_id).first()
            if row is None:
                raise NotFound(f"Article not found: {article_id}")
            return Article.model_validate(row.document)
        finally:
            db.close()

    def list(
        self,
        topic_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ArticleSummary]:
        """Article summaries, newest first."""
        db: Session = self._session_factory()
        try:
            query = db.query(ArticleRow)
            if topic_id:
                query = query.filter(ArticleRow.topic_id == topic_id)
            if status:
                query = query.filter(ArticleRow.status == status)
            query = query.order_by(ArticleRow.created_at.desc())
            if offset:
                query = query.offset(offset)
            if limit:
                query = query.limit(limit)

            return [
                ArticleSummary(
                    id=row.article_id,
                    topic_id=row.topic_id,
                    topic_version=row.topic_version,
                    status=row.status,
                    title=row.title or "",
                    created_at=row.created_at,
                    updated_at=row.updated_at,
                )
                for row in query.all()
            ]
        finally:
            db.close()

    def update(self, article_id: str, mutator: Callable[[Article], None]) -> Article:
        """Read-modify-write the stored article under its per-id lock."""
        with self._locks.hold(article_id):
            article = self.get(article_id)
            mutator(article)
            return self.save(article)

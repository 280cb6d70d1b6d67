"""Article model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, String, Text

from article_agent.database import Base, JSONType


class ArticleRow(Base):
    """Stored article artifact."""

    __tablename__ = "articles"

    article_id = Column(String(36), primary_key=True)
    topic_id = Column(Text, nullable=False)
    topic_version = Column(Text, nullable=False)
    status = Column(Text, nullable=False)  # 'draft', 'published'
    title = Column(Text)
    document = Column(JSONType, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_articles_topic_id", "topic_id"),
        Index("idx_articles_created_at", "created_at"),
    )

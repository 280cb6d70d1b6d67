"""Run model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, String, Text

from article_agent.database import Base, JSONType


class Run(Base):
    """Run represents one execution of the article pipeline.

    The full record (including stage states) lives in ``document``; the scalar
    columns duplicate the fields runs are filtered and sorted by.
    """

    __tablename__ = "runs"

    run_id = Column(String(36), primary_key=True)
    kind = Column(Text, nullable=False)  # 'generate', 'regenerate'
    topic_id = Column(Text, nullable=False)
    topic_version = Column(Text, nullable=False)
    status = Column(Text, nullable=False)  # 'pending', 'running', 'completed', 'failed', 'cancelled'
    article_id = Column(String(36))
    document = Column(JSONType, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("idx_runs_status", "status"),
        Index("idx_runs_topic_id", "topic_id"),
        Index("idx_runs_created_at", "created_at"),
    )

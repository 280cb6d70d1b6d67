"""Initial schema: runs and articles

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from article_agent.database import JSONType

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "runs" in existing_tables:
        return

    # Create runs table
    op.create_table(
        "runs",
        sa.Column("run_id", sa.String(36), primary_key=True),
        sa.Column("kind", sa.Text, nullable=False),
        sa.Column("topic_id", sa.Text, nullable=False),
        sa.Column("topic_version", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("article_id", sa.String(36)),
        sa.Column("document", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime),
    )
    op.create_index("idx_runs_status", "runs", ["status"])
    op.create_index("idx_runs_topic_id", "runs", ["topic_id"])
    op.create_index("idx_runs_created_at", "runs", ["created_at"])

    # Create articles table
    op.create_table(
        "articles",
        sa.Column("article_id", sa.String(36), primary_key=True),
        sa.Column("topic_id", sa.Text, nullable=False),
        sa.Column("topic_version", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("title", sa.Text),
        sa.Column("document", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_articles_topic_id", "articles", ["topic_id"])
    op.create_index("idx_articles_created_at", "articles", ["created_at"])


def downgrade() -> None:
    op.drop_table("articles")
    op.drop_table("runs")

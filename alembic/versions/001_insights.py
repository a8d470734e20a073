"""Insights table — the example domain collection.

Revision ID: 001_insights
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_insights"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ai_insights",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("prompt", sa.Text, nullable=False, server_default=""),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("category", sa.String(40), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("ai_model", sa.String(100), nullable=False),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("workflow_status", sa.String(20), nullable=True),
        sa.Column("assigned_to", sa.String(64), nullable=True),
        sa.Column("due_date", sa.String(40), nullable=True),
        sa.Column("completion_percentage", sa.Integer, nullable=True),
        sa.Column("view_count", sa.Integer, nullable=True),
        sa.Column("last_viewed_at", sa.String(40), nullable=True),
        sa.Column("source_url", sa.Text, nullable=True),
        sa.Column("dependencies", sa.JSON, nullable=True),
        sa.Column("related_insights", sa.JSON, nullable=True),
        sa.Column("created_at", sa.String(40), nullable=False),
        sa.Column("updated_at", sa.String(40), nullable=False),
    )
    op.create_index("ix_ai_insights_category", "ai_insights", ["category"])
    op.create_index("ix_ai_insights_status", "ai_insights", ["status"])
    op.create_index("ix_ai_insights_user_id", "ai_insights", ["user_id"])
    op.create_index("ix_ai_insights_created_at", "ai_insights", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_ai_insights_created_at", table_name="ai_insights")
    op.drop_index("ix_ai_insights_user_id", table_name="ai_insights")
    op.drop_index("ix_ai_insights_status", table_name="ai_insights")
    op.drop_index("ix_ai_insights_category", table_name="ai_insights")
    op.drop_table("ai_insights")

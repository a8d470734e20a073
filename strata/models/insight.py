"""Insight ORM — persisted shape of the example "insights" collection.

Invariants:
    - id is an application-assigned string (id_<ms>_<base36>), never a DB default
    - created_at / updated_at are ISO-8601 UTC strings stamped by the repository
    - Column names equal entity dict keys so rows convert to dicts without mapping tables

Design Decisions:
    - JSON columns for tags/related_insights/dependencies: small lists, always read whole
      (ADR: no join tables for the example domain)
    - Timestamps stored as strings: entities round-trip byte-for-byte through both adapters
"""

from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from strata.db.base import Base


class Insight(Base):
    """AI insight record — one row per insight."""
    __tablename__ = "ai_insights"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="draft", index=True,
    )
    ai_model: Mapped[str] = mapped_column(String(100), nullable=False)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    workflow_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    assigned_to: Mapped[str | None] = mapped_column(String(64), nullable=True)
    due_date: Mapped[str | None] = mapped_column(String(40), nullable=True)
    completion_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)

    view_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_viewed_at: Mapped[str | None] = mapped_column(String(40), nullable=True)

    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    dependencies: Mapped[list | None] = mapped_column(JSON, nullable=True)
    related_insights: Mapped[list | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    updated_at: Mapped[str] = mapped_column(String(40), nullable=False)

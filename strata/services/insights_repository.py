"""Insights Repository — BaseRepository over the "ai_insights" collection plus domain queries.

Invariants:
    - Free-text search matches the title field
    - get_summary counts every insight once per dimension (category, status, priority, model)
    - add_tags never duplicates a tag; remove_tags ignores tags that are absent

Design Decisions:
    - Date-range queries filter on ISO strings in Python: same result on both adapters
      (ADR: Persistence protocol stays equality-only)
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from strata.core.boundary_protocols import Cache, Persistence, StructuredLoggerLike
from strata.core.domain_types import Entity
from strata.core.errors import NotFoundError
from strata.services.base_repository import BaseRepository

INSIGHTS_COLLECTION = "ai_insights"


class InsightsRepository(BaseRepository):
    entity_name = "Insight"

    def __init__(
        self,
        persistence: Persistence,
        logger: StructuredLoggerLike,
        cache: Cache | None = None,
    ):
        super().__init__(
            persistence, logger,
            collection=INSIGHTS_COLLECTION,
            cache=cache,
            search_field="title",
        )

    # ─── Lookups ─────────────────────────────────────────────────

    async def get_by_category(self, category: str, user_id: str | None = None) -> list[Entity]:
        return await self.find({"category": category, "user_id": user_id})

    async def get_by_priority(self, priority: str, user_id: str | None = None) -> list[Entity]:
        return await self.find({"priority": priority, "user_id": user_id})

    async def get_by_status(self, status: str, user_id: str | None = None) -> list[Entity]:
        return await self.find({"status": status, "user_id": user_id})

    async def get_by_model(self, ai_model: str, user_id: str | None = None) -> list[Entity]:
        return await self.find({"ai_model": ai_model, "user_id": user_id})

    async def get_by_date_range(
        self, start: str, end: str, user_id: str | None = None,
    ) -> list[Entity]:
        """Insights with start <= created_at <= end (ISO-8601 strings)."""
        insights = await self.find({"user_id": user_id})
        return [i for i in insights if start <= i["created_at"] <= end]

    async def get_recent(self, days: int = 7, user_id: str | None = None) -> list[Entity]:
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        insights = await self.find({"user_id": user_id})
        return [i for i in insights if i["created_at"] >= since]

    async def get_summary(self, user_id: str | None = None) -> dict[str, Any]:
        insights = await self.find({"user_id": user_id})
        return {
            "total": len(insights),
            "by_category": dict(Counter(i.get("category") for i in insights)),
            "by_status": dict(Counter(i.get("status") for i in insights)),
            "by_priority": dict(Counter(i.get("priority") for i in insights)),
            "by_model": dict(Counter(i.get("ai_model") for i in insights)),
        }

    # ─── Targeted updates ────────────────────────────────────────

    async def update_status(self, insight_id: str, status: str) -> Entity:
        return await self.update(insight_id, {"status": status})

    async def update_priority(self, insight_id: str, priority: str) -> Entity:
        return await self.update(insight_id, {"priority": priority})

    async def add_tags(self, insight_id: str, tags: list[str]) -> Entity:
        current = await self._require(insight_id)
        merged = list(dict.fromkeys([*(current.get("tags") or []), *tags]))
        return await self.update(insight_id, {"tags": merged})

    async def remove_tags(self, insight_id: str, tags: list[str]) -> Entity:
        current = await self._require(insight_id)
        drop = set(tags)
        kept = [t for t in current.get("tags") or [] if t not in drop]
        return await self.update(insight_id, {"tags": kept})

    async def add_related(self, insight_id: str, related_id: str) -> Entity | None:
        """Append related_id to insight_id's related_insights; None if insight_id is gone."""
        current = await self.read(insight_id)
        if current is None:
            return None
        related = list(current.get("related_insights") or [])
        if related_id in related:
            return current
        return await self.update(insight_id, {"related_insights": [*related, related_id]})

    async def _require(self, insight_id: str) -> Mapping[str, Any]:
        current = await self.read(insight_id)
        if current is None:
            raise NotFoundError(self.entity_name, insight_id)
        return current

"""Insights Service — business logic for the example insights domain behind one execute() pipeline.

Invariants:
    - Every public method goes through BaseService.execute (validate → process → post_process)
    - Action routing is an explicit dict; unknown actions raise ValidationError
    - Payloads are validated by the pydantic schemas; failures surface as ValidationError
    - Status changes follow insight_rules.STATUS_TRANSITIONS; soft delete bypasses them
    - Referenced insights cannot be deleted; high/critical insights are archived, not deleted
    - Bulk operations attempt every id (settle-all) and report per-id failures
    - Writes drop the cached summaries

Design Decisions:
    - Explicit dict over getattr: every action visible in one place
      (ADR: no convention-over-config)
    - Related-insight back-references are best effort: a failure is logged, the create stands
"""

from functools import partial
from typing import Any, Awaitable, Callable, Mapping

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from strata.core.boundary_protocols import Cache, StructuredLoggerLike
from strata.core.domain_types import (
    BulkOperationKind, Entity, InsightStatus, InsightWorkflowStatus,
)
from strata.core.errors import (
    InvalidParametersError, NotFoundError, StrataError, ValidationError,
)
from strata.core.insight_rules import (
    apply_completion_rules, apply_create_rules, is_escalated, is_referenced,
    to_search_result, validate_status_transition,
)
from strata.schemas.insight import BulkOperationRequest, InsightCreate, InsightUpdate
from strata.services.base_service import BaseService
from strata.services.insights_repository import InsightsRepository

FILTERABLE_FIELDS = frozenset({
    "category", "priority", "status", "ai_model", "user_id", "workflow_status",
})

Action = Callable[[Mapping[str, Any]], Awaitable[Any]]


def parse_payload(model: type[BaseModel], payload: Any) -> BaseModel:
    """Validate payload against a schema, mapping pydantic errors to ValidationError."""
    try:
        return model.model_validate(payload)
    except SchemaValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        message = f"{field}: {first['msg']}" if field else first["msg"]
        raise ValidationError(message, field=field) from e


class InsightsService(BaseService):
    """Create/read/list/search/update/delete/summary/bulk over InsightsRepository."""

    def __init__(
        self,
        repository: InsightsRepository,
        logger: StructuredLoggerLike,
        *,
        cache: Cache | None = None,
        max_page_limit: int = 100,
    ):
        super().__init__(logger, name="InsightsService", cache=cache)
        self.repository = repository
        self.max_page_limit = max_page_limit

        # ADR: every mapping explicit; a new action means a new entry here
        self._actions: dict[str, Action] = {
            "create": self._create,
            "get": self._get,
            "list": self._list,
            "search": self._search,
            "update": self._update,
            "delete": self._delete,
            "summary": self._summary,
            "bulk": self._bulk,
        }

    # ─── Public API ──────────────────────────────────────────────

    async def create_insight(self, payload: Mapping[str, Any]) -> Entity:
        return await self.execute({"action": "create", "payload": payload})

    async def get_insight(self, insight_id: str) -> Entity:
        return await self.execute({"action": "get", "id": insight_id})

    async def list_insights(
        self, filters: Mapping[str, Any] | None = None, page: int = 1, limit: int = 10,
    ) -> dict:
        return await self.execute(
            {"action": "list", "filters": filters or {}, "page": page, "limit": limit},
        )

    async def search_insights(
        self, query: str, filters: Mapping[str, Any] | None = None,
    ) -> list[Entity]:
        return await self.execute({"action": "search", "query": query, "filters": filters or {}})

    async def update_insight(self, insight_id: str, changes: Mapping[str, Any]) -> Entity:
        return await self.execute({"action": "update", "id": insight_id, "changes": changes})

    async def delete_insight(self, insight_id: str) -> dict:
        return await self.execute({"action": "delete", "id": insight_id})

    async def get_summary(self, user_id: str | None = None) -> dict:
        return await self.execute({"action": "summary", "user_id": user_id})

    async def bulk_operation(self, request: Mapping[str, Any]) -> dict:
        return await self.execute({"action": "bulk", "request": request})

    # ─── Pipeline hooks ──────────────────────────────────────────

    def validate(self, data: Any) -> bool:
        return isinstance(data, Mapping) and isinstance(data.get("action"), str)

    async def process(self, data: Mapping[str, Any]) -> Any:
        handler = self._actions.get(data["action"])
        if handler is None:
            raise ValidationError(f"Unknown action '{data['action']}'", field="action")
        return await handler(data)

    # ─── Actions ─────────────────────────────────────────────────

    async def _create(self, data: Mapping[str, Any]) -> Entity:
        model = parse_payload(InsightCreate, data.get("payload"))
        record = apply_create_rules(model.model_dump(exclude_none=True))
        created = await self.repository.create(record)

        for related_id in record.get("related_insights") or []:
            try:
                await self.repository.add_related(related_id, created["id"])
            except StrataError as e:
                self.logger.warn(
                    "Failed to back-reference related insight",
                    {"insight_id": created["id"], "related_id": related_id, "error": e.message},
                )

        self._drop_summaries()
        self.log_business_event("insight_created", {
            "insight_id": created["id"],
            "category": created.get("category"),
            "priority": created.get("priority"),
        })
        return created

    async def _get(self, data: Mapping[str, Any]) -> Entity:
        insight_id = data.get("id")
        insight = await self.repository.read(insight_id)
        if insight is None:
            raise NotFoundError("Insight", insight_id)
        return insight

    async def _list(self, data: Mapping[str, Any]) -> dict:
        filters = self._check_filters(data.get("filters") or {})
        page, limit = data.get("page", 1), data.get("limit", 10)
        if isinstance(limit, int) and limit > self.max_page_limit:
            raise InvalidParametersError(f"limit must be <= {self.max_page_limit}, got {limit}")
        result = await self.repository.find_with_pagination(filters, page, limit)
        return result.to_dict()

    async def _search(self, data: Mapping[str, Any]) -> list[Entity]:
        query = data.get("query")
        filters = self._check_filters(data.get("filters") or {})
        hits = await self.repository.search(query, filters)
        needle = query.strip()
        results = [to_search_result(h, needle) for h in hits]
        results.sort(key=lambda r: r["relevance_score"], reverse=True)
        self.logger.debug(
            "Search query completed", {"query": needle, "result_count": len(results)},
        )
        return results

    async def _update(self, data: Mapping[str, Any]) -> Entity:
        insight_id = data.get("id")
        changes = parse_payload(InsightUpdate, data.get("changes") or {}).changes()
        if not changes:
            raise ValidationError("No fields to update")
        existing = await self._get({"id": insight_id})

        if "status" in changes:
            validate_status_transition(existing["status"], changes["status"])
        changes = apply_completion_rules(changes, existing)

        updated = await self.repository.update(insight_id, changes)
        self._drop_summaries()
        if "category" in changes and changes["category"] != existing.get("category"):
            self.log_business_event("insight_category_changed", {
                "insight_id": insight_id,
                "old_category": existing.get("category"),
                "new_category": changes["category"],
            })
        return updated

    async def _delete(self, data: Mapping[str, Any]) -> dict:
        insight_id = data.get("id")
        existing = await self._get({"id": insight_id})
        if is_referenced(insight_id, await self.repository.find()):
            raise ValidationError(
                "Cannot delete insight that is referenced by other insights",
            )

        soft = is_escalated(existing.get("priority", ""))
        if soft:
            await self.repository.update(insight_id, {
                "status": InsightStatus.ARCHIVED.value,
                "workflow_status": InsightWorkflowStatus.CANCELLED.value,
            })
        else:
            await self.repository.delete(insight_id)
        self._drop_summaries()
        self.log_business_event("insight_deleted", {"insight_id": insight_id, "soft": soft})
        return {"id": insight_id, "deleted": True, "soft_deleted": soft}

    async def _summary(self, data: Mapping[str, Any]) -> dict:
        user_id = data.get("user_id")
        key = f"summary:{user_id or '*'}"
        cached = self.get_cached(key)
        if cached is not None:
            return dict(cached)
        summary = await self.repository.get_summary(user_id)
        self.set_cached(key, summary)
        return summary

    async def _bulk(self, data: Mapping[str, Any]) -> dict:
        request = parse_payload(BulkOperationRequest, data.get("request"))
        ids = request.insight_ids

        per_id: dict[str, Callable[[str], Awaitable[Any]]] = {
            BulkOperationKind.UPDATE.value: lambda i: self._update(
                {"id": i, "changes": request.updates.changes()},
            ),
            BulkOperationKind.CHANGE_STATUS.value: lambda i: self._update(
                {"id": i, "changes": {"status": request.new_status}},
            ),
            BulkOperationKind.CHANGE_PRIORITY.value: lambda i: self.repository.update_priority(
                i, request.new_priority,
            ),
            BulkOperationKind.ARCHIVE.value: lambda i: self.repository.update_status(
                i, InsightStatus.ARCHIVED.value,
            ),
            BulkOperationKind.DELETE.value: lambda i: self._delete({"id": i}),
        }
        run = per_id[request.operation]
        outcome = await self.repository.execute_batch([partial(run, i) for i in ids])
        self._drop_summaries()

        result = {
            "operation": request.operation,
            "total": len(ids),
            "successful": len(outcome.successful_results),
            "failed": len(outcome.errors),
            "results": outcome.successful_results,
            "errors": [
                {"insight_id": ids[f.index], "error": str(f.error)}
                for f in outcome.errors
            ],
        }
        self.log_business_event("bulk_operation", {
            k: result[k] for k in ("operation", "total", "successful", "failed")
        })
        return result

    # ─── Helpers ─────────────────────────────────────────────────

    def _check_filters(self, filters: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(filters, Mapping):
            raise InvalidParametersError("filters must be a mapping of field to value")
        unknown = set(filters) - FILTERABLE_FIELDS
        if unknown:
            raise InvalidParametersError(f"Unsupported filter fields: {sorted(unknown)}")
        return dict(filters)

    def _drop_summaries(self) -> None:
        self.cache.invalidate_prefix("summary:")

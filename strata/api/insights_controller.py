"""Insights Controller — maps insight requests onto InsightsService through the base pipeline.

Invariants:
    - POST creates (201) unless params.action == "bulk"; GET with params.id reads one;
      GET with params.action == "summary" summarizes; other GETs list (or search when q is set)
    - PATCH/PUT update and DELETE delete the insight named by params.id
    - When require_authentication is on, a request without a user is rejected (401)
    - Writes need role admin or editor; deletes (including bulk delete) need admin;
      reads need any authenticated user
    - limit is capped at max_page_limit

Design Decisions:
    - Payload validation happens at the validate stage with the same schemas the service uses,
      so malformed bodies fail fast with 400 before authentication work
"""

from typing import Any, Awaitable, Callable

from strata.api.base_controller import AuthResult, BaseController
from strata.core.domain_types import BulkOperationKind, Role
from strata.core.errors import InvalidIdError, InvalidParametersError
from strata.core.ttl_cache import TTLCache
from strata.schemas.envelopes import RequestEnvelope, UserContext
from strata.schemas.insight import BulkOperationRequest, InsightCreate, InsightUpdate
from strata.services.insights_repository import InsightsRepository
from strata.services.insights_service import (
    FILTERABLE_FIELDS, InsightsService, parse_payload,
)

WRITE_ROLES = frozenset({Role.ADMIN.value, Role.EDITOR.value})
DELETE_ROLES = frozenset({Role.ADMIN.value})

Handler = Callable[[RequestEnvelope, UserContext | None], Awaitable[Any]]


def _positive_int(query: dict, name: str, default: int) -> int:
    raw = query.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidParametersError(f"{name} must be an integer, got {raw!r}")


class InsightsController(BaseController):
    """HTTP-shaped entry point for the insights domain."""

    def __init__(
        self,
        service: InsightsService,
        logger,
        *,
        require_authentication: bool = True,
        max_page_limit: int = 100,
    ):
        super().__init__(service, logger, name="InsightsController")
        self.require_authentication = require_authentication
        self.max_page_limit = max_page_limit

        self._handlers: dict[str, Handler] = {
            "GET": self._get,
            "POST": self._post,
            "PATCH": self._update,
            "PUT": self._update,
            "DELETE": self._delete,
        }

    # ─── Pipeline hooks ──────────────────────────────────────────

    async def validate(self, request: RequestEnvelope) -> bool:
        method = request.method.upper()
        if method == "POST":
            schema = BulkOperationRequest if self._is_bulk(request) else InsightCreate
            parse_payload(schema, request.body)
        elif method in ("PATCH", "PUT"):
            parse_payload(InsightUpdate, request.body)
        return True

    async def authenticate(self, request: RequestEnvelope) -> AuthResult:
        if request.user is not None:
            return AuthResult(success=True, user=request.user)
        if not self.require_authentication:
            return AuthResult(success=True)
        return AuthResult(success=False, error="Authentication required")

    async def authorize(self, request: RequestEnvelope, user: UserContext | None) -> AuthResult:
        if user is None:
            # Only reachable with authentication disabled
            return AuthResult(success=True)
        method = request.method.upper()
        if method == "GET":
            return AuthResult(success=True, user=user)
        needed = DELETE_ROLES if self._is_delete(request) else WRITE_ROLES
        if user.role in needed:
            return AuthResult(success=True, user=user)
        return AuthResult(
            success=False,
            error=f"Role '{user.role}' may not {method} insights",
        )

    async def execute(self, request: RequestEnvelope, user: UserContext | None) -> Any:
        method = request.method.upper()
        handler = self._handlers.get(method)
        if handler is None:
            raise InvalidParametersError(f"Unsupported method '{request.method}'")
        return await handler(request, user)

    def success_status(self, request: RequestEnvelope) -> int:
        if request.method.upper() == "POST" and not self._is_bulk(request):
            return 201
        return 200

    def success_message(self, request: RequestEnvelope) -> str:
        return {
            "GET": "Insights retrieved successfully",
            "POST": "Insight created successfully",
            "PATCH": "Insight updated successfully",
            "PUT": "Insight updated successfully",
            "DELETE": "Insight deleted successfully",
        }.get(request.method.upper(), super().success_message(request))

    # ─── Method handlers ─────────────────────────────────────────

    async def _get(self, request: RequestEnvelope, user: UserContext | None) -> Any:
        if request.params.get("id") is not None:
            return await self.service.get_insight(request.params["id"])

        query = dict(request.query)
        filters = {k: v for k, v in query.items() if k in FILTERABLE_FIELDS}
        if request.params.get("action") == "summary":
            return await self.service.get_summary(query.get("user_id"))
        if query.get("q"):
            return await self.service.search_insights(query["q"], filters)

        page = _positive_int(query, "page", 1)
        limit = _positive_int(query, "limit", 10)
        if limit > self.max_page_limit:
            raise InvalidParametersError(f"limit must be <= {self.max_page_limit}, got {limit}")
        return await self.service.list_insights(filters, page, limit)

    async def _post(self, request: RequestEnvelope, user: UserContext | None) -> Any:
        if self._is_bulk(request):
            return await self.service.bulk_operation(request.body)
        payload = dict(request.body or {})
        if user is not None:
            payload.setdefault("user_id", user.id)
        return await self.service.create_insight(payload)

    async def _update(self, request: RequestEnvelope, user: UserContext | None) -> Any:
        return await self.service.update_insight(self._target_id(request), request.body or {})

    async def _delete(self, request: RequestEnvelope, user: UserContext | None) -> Any:
        return await self.service.delete_insight(self._target_id(request))

    # ─── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _is_bulk(request: RequestEnvelope) -> bool:
        return request.params.get("action") == "bulk"

    def _is_delete(self, request: RequestEnvelope) -> bool:
        if request.method.upper() == "DELETE":
            return True
        return (
            self._is_bulk(request)
            and isinstance(request.body, dict)
            and request.body.get("operation") == BulkOperationKind.DELETE.value
        )

    @staticmethod
    def _target_id(request: RequestEnvelope) -> str:
        insight_id = request.params.get("id")
        if not isinstance(insight_id, str) or not insight_id:
            raise InvalidIdError(insight_id)
        return insight_id


def build_insights_controller(persistence, logger_factory, settings) -> InsightsController:
    """Wire repository → service → controller for one Persistence adapter."""
    repository = InsightsRepository(
        persistence,
        logger_factory.get_logger("InsightsRepository"),
        cache=TTLCache(settings.cache_ttl_seconds),
    )
    service = InsightsService(
        repository,
        logger_factory.get_logger("InsightsService"),
        cache=TTLCache(settings.cache_ttl_seconds),
        max_page_limit=settings.pagination_max_limit,
    )
    return InsightsController(
        service,
        logger_factory.get_logger("InsightsController"),
        require_authentication=settings.require_authentication,
        max_page_limit=settings.pagination_max_limit,
    )

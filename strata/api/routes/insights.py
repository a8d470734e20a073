"""Insight Routes — adapt HTTP requests into RequestEnvelopes for InsightsController.

Invariants:
    - Every route returns the controller's envelope with the envelope's status_code
    - X-Request-ID response header equals envelope.request_id
    - Caller identity comes from X-User-Id / X-User-Role headers (no header → no user)
    - Routes contain no business logic

Design Decisions:
    - Controller resolved via dependency (app.state in production, dependency_overrides in tests)
    - /summary and /bulk registered before /{insight_id} so they are not captured as ids
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from strata.api.insights_controller import InsightsController
from strata.schemas.envelopes import RequestEnvelope, ResponseEnvelope, UserContext

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/insights", tags=["insights"])


def get_insights_controller(request: Request) -> InsightsController:
    """FastAPI dependency: the controller wired at startup."""
    return request.app.state.insights_controller


def _user_from_headers(request: Request) -> UserContext | None:
    user_id = request.headers.get("x-user-id")
    if not user_id:
        return None
    return UserContext(
        id=user_id,
        role=request.headers.get("x-user-role"),
        email=request.headers.get("x-user-email"),
    )


def _envelope(
    request: Request, body: Any = None, params: dict | None = None,
) -> RequestEnvelope:
    return RequestEnvelope(
        method=request.method,
        url=str(request.url.path),
        headers={k: v for k, v in request.headers.items() if k.lower() != "authorization"},
        params=params or {},
        query=dict(request.query_params),
        body=body,
        user=_user_from_headers(request),
    )


def _respond(envelope: ResponseEnvelope) -> JSONResponse:
    return JSONResponse(
        status_code=envelope.status_code,
        content=envelope.model_dump(mode="json"),
        headers={"X-Request-ID": envelope.request_id},
    )


@router.get("")
async def list_insights(
    request: Request,
    controller: InsightsController = Depends(get_insights_controller),
):
    """List insights (filters: category, priority, status, ai_model, user_id,
    workflow_status; paging: page, limit) or search them with q."""
    return _respond(await controller.handle(_envelope(request)))


@router.get("/summary")
async def insights_summary(
    request: Request,
    controller: InsightsController = Depends(get_insights_controller),
):
    return _respond(
        await controller.handle(_envelope(request, params={"action": "summary"})),
    )


@router.post("")
async def create_insight(
    request: Request,
    payload: Any = Body(None),
    controller: InsightsController = Depends(get_insights_controller),
):
    return _respond(await controller.handle(_envelope(request, payload)))


@router.post("/bulk")
async def bulk_operation(
    request: Request,
    payload: Any = Body(None),
    controller: InsightsController = Depends(get_insights_controller),
):
    return _respond(
        await controller.handle(_envelope(request, payload, {"action": "bulk"})),
    )


@router.get("/{insight_id}")
async def get_insight(
    insight_id: str,
    request: Request,
    controller: InsightsController = Depends(get_insights_controller),
):
    return _respond(
        await controller.handle(_envelope(request, params={"id": insight_id})),
    )


@router.patch("/{insight_id}")
async def update_insight(
    insight_id: str,
    request: Request,
    payload: Any = Body(None),
    controller: InsightsController = Depends(get_insights_controller),
):
    return _respond(
        await controller.handle(_envelope(request, payload, {"id": insight_id})),
    )


@router.delete("/{insight_id}")
async def delete_insight(
    insight_id: str,
    request: Request,
    controller: InsightsController = Depends(get_insights_controller),
):
    return _respond(
        await controller.handle(_envelope(request, params={"id": insight_id})),
    )

"""Health & Readiness Probes — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the configured SQL database is unreachable (readiness)
    - With the in-memory backend readiness never depends on a database

Design Decisions:
    - Separate liveness/readiness: liveness restarts, readiness removes from load balancer
      (ADR: production readiness)
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from strata.config import get_settings
from strata.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {
        "status": "healthy",
        "service": "strata-api",
        "version": "1.0.0",
    }


@router.get("/ready")
async def readiness_check():
    """Readiness probe — includes database connectivity when the SQL backend is active."""
    backend = get_settings().persistence_backend
    if backend == "memory":
        return {"status": "ready", "checks": {"persistence": "memory"}}

    db_ok = await database.db_manager.health_check() if database.db_manager else False
    if not db_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "database_unavailable",
            },
        )
    return {"status": "ready", "checks": {"database": "healthy"}}

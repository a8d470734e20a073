"""Envelope Schemas — the Request/Response shapes every controller speaks.

Invariants:
    - RequestEnvelope is transport-neutral: HTTP routes, tests and jobs all build one
    - ResponseEnvelope carries exactly one of data (success) or error (failure)
    - request_id is always present on responses

Design Decisions:
    - Pydantic models over TypedDicts: validation at the boundary, model_dump() for JSON
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class UserContext(BaseModel):
    """Caller identity as established by the transport (headers, tokens...)."""
    id: str = Field(min_length=1)
    role: str | None = None
    email: str | None = None
    permissions: list[str] = Field(default_factory=list)


class RequestEnvelope(BaseModel):
    method: str = "GET"
    url: str = "/"
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    query: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    user: UserContext | None = None


class ErrorPayload(BaseModel):
    code: str
    message: str
    category: str


class ResponseEnvelope(BaseModel):
    success: bool
    data: Any = None
    error: ErrorPayload | None = None
    message: str = ""
    status_code: int = 200
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
    )
    request_id: str

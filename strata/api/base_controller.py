"""Base Controller — five-stage request pipeline producing uniform response envelopes.

Invariants:
    - Stages run in order: validate → authenticate → authorize → execute → respond
    - Validation runs only when the request carries a body
    - Stage failures short-circuit: 400 VALIDATION_ERROR, 401 AUTHENTICATION_ERROR,
      403 AUTHORIZATION_ERROR; a StrataError from execute keeps its own status and code;
      any other exception becomes 500 EXECUTION_ERROR with a generic message
    - Every response carries the request_id that tagged every log line for this request
    - No exception ever escapes handle()

Design Decisions:
    - Controllers are the only layer that converts exceptions into envelopes
      (ADR: services and repositories log and re-raise)
    - Hooks return AuthResult rather than raising so "denied" is not an exceptional path;
      raising AuthenticationError/AuthorizationError from a hook is accepted as well
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping

from pydantic import ValidationError as SchemaValidationError

from strata.core.boundary_protocols import StructuredLoggerLike
from strata.core.errors import (
    AuthenticationError, AuthorizationError, ExecutionError, StrataError,
    ValidationError,
)
from strata.core.identifiers import correlation_id
from strata.schemas.envelopes import (
    ErrorPayload, RequestEnvelope, ResponseEnvelope, UserContext,
)

GENERIC_FAILURE = "An unexpected error occurred while processing the request"


@dataclass
class AuthResult:
    success: bool
    user: UserContext | None = None
    error: str | None = None


class BaseController:
    """Translate RequestEnvelope → ResponseEnvelope. Subclasses implement execute()."""

    def __init__(
        self,
        service: Any,
        logger: StructuredLoggerLike,
        *,
        name: str | None = None,
    ):
        self.service = service
        self.logger = logger
        self.name = name or type(self).__name__

    async def handle(self, request: RequestEnvelope | Mapping[str, Any]) -> ResponseEnvelope:
        request_id = correlation_id(self.name)
        start = time.monotonic()
        ctx: dict[str, Any] = {"request_id": request_id, "controller": self.name}
        try:
            envelope = self._coerce(request)
            ctx.update(method=envelope.method, url=envelope.url)
            self.logger.info(f"[{self.name}] request received", ctx)

            if envelope.body is not None:
                async with self._stage("validation", ctx):
                    if await self.validate(envelope) is False:
                        raise ValidationError("Request validation failed")

            async with self._stage("authentication", ctx):
                auth = await self.authenticate(envelope)
                if not auth.success:
                    raise AuthenticationError(auth.error or "Authentication failed")
                user = auth.user or envelope.user

            async with self._stage("authorization", ctx):
                verdict = await self.authorize(envelope, user)
                if not verdict.success:
                    raise AuthorizationError(verdict.error or "Insufficient permissions")

            async with self._stage("execution", ctx):
                data = await self.execute(envelope, user)
        except StrataError as e:
            return self._failure(e, ctx, start)
        except Exception as e:
            self.logger.error(f"[{self.name}] unexpected failure", e, ctx)
            return self._failure(ExecutionError(GENERIC_FAILURE), ctx, start)

        duration_ms = (time.monotonic() - start) * 1000
        status_code = self.success_status(envelope)
        self.logger.info(
            f"[{self.name}] request responded",
            {**ctx, "status_code": status_code, "duration_ms": duration_ms},
        )
        return ResponseEnvelope(
            success=True,
            data=data,
            message=self.success_message(envelope),
            status_code=status_code,
            request_id=request_id,
        )

    # ─── Hooks ───────────────────────────────────────────────────

    async def validate(self, request: RequestEnvelope) -> bool:
        return True

    async def authenticate(self, request: RequestEnvelope) -> AuthResult:
        return AuthResult(success=True, user=request.user)

    async def authorize(self, request: RequestEnvelope, user: UserContext | None) -> AuthResult:
        return AuthResult(success=True, user=user)

    async def execute(self, request: RequestEnvelope, user: UserContext | None) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement execute()")

    def success_status(self, request: RequestEnvelope) -> int:
        return 200

    def success_message(self, request: RequestEnvelope) -> str:
        return "Request processed successfully"

    # ─── Internals ───────────────────────────────────────────────

    def _coerce(self, request: RequestEnvelope | Mapping[str, Any]) -> RequestEnvelope:
        if isinstance(request, RequestEnvelope):
            return request
        try:
            return RequestEnvelope.model_validate(request)
        except SchemaValidationError as e:
            raise ValidationError(f"Malformed request envelope: {e.error_count()} error(s)") from e

    @asynccontextmanager
    async def _stage(self, stage: str, ctx: Mapping[str, Any]) -> AsyncIterator[None]:
        start = time.monotonic()
        self.logger.debug(f"[{self.name}] {stage} started", {**ctx, "stage": stage})
        try:
            yield
        except Exception as e:
            self.logger.warn(
                f"[{self.name}] {stage} failed",
                {
                    **ctx,
                    "stage": stage,
                    "error": str(e),
                    "duration_ms": (time.monotonic() - start) * 1000,
                },
            )
            raise
        self.logger.debug(
            f"[{self.name}] {stage} passed",
            {**ctx, "stage": stage, "duration_ms": (time.monotonic() - start) * 1000},
        )

    def _failure(
        self, error: StrataError, ctx: Mapping[str, Any], start: float,
    ) -> ResponseEnvelope:
        duration_ms = (time.monotonic() - start) * 1000
        if isinstance(error, AuthenticationError):
            self.logger.security("authentication_failure", {**ctx, "reason": error.message})
        elif isinstance(error, AuthorizationError):
            self.logger.security("authorization_violation", {**ctx, "reason": error.message})
        self.logger.info(
            f"[{self.name}] request responded",
            {**ctx, "status_code": error.http_status, "error_code": error.code,
             "duration_ms": duration_ms},
        )
        payload = error.to_envelope_error()
        return ResponseEnvelope(
            success=False,
            error=ErrorPayload(**payload),
            message=payload["message"],
            status_code=error.http_status,
            request_id=ctx["request_id"],
        )

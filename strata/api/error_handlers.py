"""Error Handlers — global exception handlers for the Strata API.

Invariants:
    - Every handled error leaves as a ResponseEnvelope (success=False) with X-Request-ID,
      the same shape controllers produce
    - RequestValidationError → 400 VALIDATION_ERROR naming the offending fields
    - Exception (catch-all) → 500 INTERNAL_ERROR, never leaks internal details

Design Decisions:
    - Three-layer handler: domain (StrataError), validation (Pydantic), catch-all (Exception)
    - Controllers already turn their own failures into envelopes; these handlers cover
      whatever escapes outside a controller (dependencies, body parsing)
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from strata.core.errors import ErrorCategory, StrataError
from strata.core.identifiers import correlation_id
from strata.schemas.envelopes import ErrorPayload, ResponseEnvelope

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_strata_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _envelope_response(status_code: int, error: ErrorPayload) -> JSONResponse:
    envelope = ResponseEnvelope(
        success=False,
        error=error,
        message=error.message,
        status_code=status_code,
        request_id=correlation_id("api"),
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json"),
        headers={"X-Request-ID": envelope.request_id},
    )


def _register_strata_error_handler(app: FastAPI) -> None:

    @app.exception_handler(StrataError)
    async def strata_error_handler(request: Request, exc: StrataError):
        logger.error(
            f"StrataError: {exc.message}",
            extra={"error_code": exc.code, "context": {"path": request.url.path}},
        )
        return _envelope_response(
            exc.http_status, ErrorPayload(**exc.to_envelope_error()),
        )


def _register_validation_error_handler(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        logger.warning(
            f"Validation error on {request.url.path}: {exc.errors()}",
        )
        return _envelope_response(
            status.HTTP_400_BAD_REQUEST,
            ErrorPayload(
                code="VALIDATION_ERROR",
                message=_describe_validation_errors(exc),
                category=ErrorCategory.VALIDATION.value,
            ),
        )


def _register_generic_error_handler(app: FastAPI) -> None:

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
        )
        return _envelope_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorPayload(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred",
                category="internal",
            ),
        )


def _describe_validation_errors(exc: RequestValidationError) -> str:
    fields = ", ".join(
        ".".join(str(loc) for loc in e["loc"]) for e in exc.errors()
    )
    return f"Invalid request data: {fields}" if fields else "Invalid request data"

"""Base Service — validate → pre_process → process → post_process pipeline with its own cache.

Invariants:
    - Stages run strictly in order; the first stage that raises aborts the call
    - validate() returning False raises ValidationError("Invalid input data")
    - Failures are logged with execution_id and duration_ms, then re-raised (no partial retry)
    - The service cache is a separate instance from any repository cache

Design Decisions:
    - Template method: subclasses implement process() and optionally the other hooks
      (ADR: one pipeline shape across every domain service)
    - Cache keys are caller-chosen strings; invalidation is the caller's job
"""

import time
from typing import Any, Mapping

from strata.core.boundary_protocols import Cache, StructuredLoggerLike
from strata.core.errors import ValidationError
from strata.core.identifiers import correlation_id
from strata.core.ttl_cache import TTLCache


class BaseService:
    """Business-logic pipeline. Subclasses must implement process()."""

    def __init__(
        self,
        logger: StructuredLoggerLike,
        *,
        name: str | None = None,
        cache: Cache | None = None,
    ):
        self.logger = logger
        self.name = name or type(self).__name__
        self.cache = cache if cache is not None else TTLCache()

    async def execute(self, data: Any) -> Any:
        execution_id = self._execution_id()
        ctx = {"execution_id": execution_id, "service": self.name}
        start = time.monotonic()
        self.logger.info(
            f"[{self.name}] execution started", {**ctx, "has_data": data is not None},
        )
        try:
            if self.validate(data) is False:
                raise ValidationError("Invalid input data")
            prepared = await self.pre_process(data)
            result = await self.process(prepared)
            final = await self.post_process(result)
        except Exception as e:
            self.logger.error(
                f"[{self.name}] execution failed", e,
                {**ctx, "duration_ms": (time.monotonic() - start) * 1000},
            )
            raise
        self.logger.info(
            f"[{self.name}] execution completed",
            {**ctx, "duration_ms": (time.monotonic() - start) * 1000},
        )
        return final

    # ─── Hooks ───────────────────────────────────────────────────

    def validate(self, data: Any) -> bool:
        return True

    async def pre_process(self, data: Any) -> Any:
        return data

    async def process(self, data: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement process()")

    async def post_process(self, result: Any) -> Any:
        return result

    # ─── Service cache ───────────────────────────────────────────

    def get_cached(self, key: str) -> Any | None:
        return self.cache.get(key)

    def set_cached(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        self.cache.set(key, value, ttl_seconds)

    def invalidate_cached(self, key: str) -> bool:
        return self.cache.invalidate(key)

    def clear_cache(self) -> int:
        return self.cache.clear()

    # ─── Logging helpers ─────────────────────────────────────────

    def log_business_event(self, event: str, details: Mapping[str, Any]) -> None:
        self.logger.info(
            f"[{self.name}] business event: {event}",
            {"service": self.name, "event": event, "details": dict(details)},
        )

    def log_performance(
        self, operation: str, duration_ms: float,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.logger.performance(
            f"{self.name}.{operation}", duration_ms, {"service": self.name, **(context or {})},
        )

    def _execution_id(self) -> str:
        return correlation_id(self.name)

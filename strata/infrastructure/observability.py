"""Structured Logging — leveled, multi-sink loggers plus the JSON formatter for production.

Invariants:
    - Levels ordered debug < info < warn < error; a call logs only if level ordinal >= threshold
    - Every entry carries timestamp, level, message and {"service": <name>} merged with call context
    - Console sink (stdlib logging) is always active; the external sink is behind a flag
    - Logging never raises: external sink failures fall back to the console line already written
    - LoggerFactory memoizes one logger per name; configure_all() is the only reconfiguration path

Design Decisions:
    - StructuredLogger wraps stdlib logging instead of replacing it: handlers, formatters and
      pytest's caplog keep working (ADR: no parallel logging stack)
    - JSONFormatter over third-party libs: zero dependencies, full control
    - External sink posts JSON via httpx.AsyncClient from a background task; logging calls
      only enqueue, so a slow endpoint never stalls the event loop
    - LoggerFactory is instantiable: tests build isolated registries, the app uses logger_factory
"""

import asyncio
import contextlib
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Protocol, TypeVar

import httpx

from strata.core.domain_types import LogLevel, SecuritySeverity, StepEvent

T = TypeVar("T")

_internal = logging.getLogger(__name__)

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

# Checked in order; first list with a keyword contained in the event wins
SECURITY_KEYWORDS: tuple[tuple[SecuritySeverity, tuple[str, ...]], ...] = (
    (SecuritySeverity.CRITICAL, (
        "authentication_failure", "authorization_violation", "sql_injection_attempt",
    )),
    (SecuritySeverity.HIGH, (
        "rate_limit_exceeded", "suspicious_activity", "invalid_token",
    )),
    (SecuritySeverity.MEDIUM, (
        "login_attempt", "password_change", "permission_check",
    )),
)

_JSON_FIELDS = (
    "service", "request_id", "operation_id", "workflow_id",
    "duration_ms", "error_code", "severity", "context",
)


def parse_level(value: str | LogLevel) -> LogLevel:
    """Accept LogLevel or stdlib-style names ("WARNING", "info")."""
    if isinstance(value, LogLevel):
        return value
    normalized = value.strip().lower()
    if normalized == "warning":
        normalized = "warn"
    if normalized == "critical":
        normalized = "error"
    return LogLevel(normalized)


def classify_security_event(event: str) -> SecuritySeverity:
    for severity, keywords in SECURITY_KEYWORDS:
        if any(k in event for k in keywords):
            return severity
    return SecuritySeverity.LOW


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _JSON_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


ROOT_HANDLER_NAME = "strata.console"


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Install (or replace) the Strata root console handler."""
    for existing in [h for h in logging.root.handlers if h.get_name() == ROOT_HANDLER_NAME]:
        logging.root.removeHandler(existing)
        existing.close()
    handler = logging.StreamHandler()
    handler.set_name(ROOT_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s — %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))


# ─── Sinks ───────────────────────────────────────────────────────

class LogSink(Protocol):
    """Secondary destination for structured entries. May raise; callers absorb."""
    def write(self, entry: dict[str, Any]) -> None: ...


class HttpLogSink:
    """Ships entries to an HTTP log ingestion endpoint as JSON, off the caller's path.

    write() only enqueues; a drain task (start() inside a running loop) posts each
    entry with httpx.AsyncClient. A full queue drops the entry and counts it. Post
    failures are counted and noted at debug level, never raised.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        timeout_seconds: float = 2.0,
        client: httpx.AsyncClient | None = None,
        max_pending: int = 1000,
    ):
        self.endpoint = endpoint
        self._headers = {"X-API-KEY": api_key} if api_key else {}
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max_pending)
        self._task: asyncio.Task | None = None
        self.dropped = 0
        self.failures = 0

    def write(self, entry: dict[str, Any]) -> None:
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self.dropped += 1

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def flush(self) -> None:
        """Wait until every queued entry has been attempted."""
        await self._queue.join()

    async def close(self, drain_timeout: float = 5.0) -> None:
        """Give pending entries drain_timeout seconds, then stop the task and client."""
        if self._task is not None:
            try:
                await asyncio.wait_for(self._queue.join(), drain_timeout)
            except TimeoutError:
                _internal.debug(
                    f"External log sink closed with {self._queue.qsize()} entries pending",
                )
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self._client.aclose()

    async def _drain(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                response = await self._client.post(
                    self.endpoint, json=entry, headers=self._headers,
                )
                response.raise_for_status()
            except Exception as e:
                self.failures += 1
                _internal.debug(f"External log sink post failed: {e}")
            finally:
                self._queue.task_done()


# ─── Logger ──────────────────────────────────────────────────────

class StructuredLogger:
    """Leveled logger with base context, specialized emitters and an optional external sink."""

    def __init__(
        self,
        name: str,
        level: LogLevel | str = LogLevel.INFO,
        *,
        enable_external: bool = False,
        enable_performance: bool = True,
        external_sink: LogSink | None = None,
    ):
        self.name = name
        self.level = parse_level(level)
        self.enable_external = enable_external
        self.enable_performance = enable_performance
        self.external_sink = external_sink
        self._stdlib = logging.getLogger(f"strata.{name}")
        # Threshold is ours; the stdlib logger must not filter a second time
        self._stdlib.setLevel(logging.DEBUG)

    # ── Leveled API ──

    def debug(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        self._log(LogLevel.INFO, message, context)

    def warn(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        self._log(LogLevel.WARN, message, context)

    def error(
        self,
        message: str,
        error: BaseException | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self._log(LogLevel.ERROR, message, context, error)

    # ── Specialized emitters ──

    def performance(
        self, operation: str, duration_ms: float,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        if not self.enable_performance:
            return
        self.info(
            f"Performance: {operation} completed in {duration_ms:.1f}ms",
            {
                **(context or {}),
                "performance": {"operation": operation, "duration_ms": duration_ms},
            },
        )

    def security(self, event: str, details: Mapping[str, Any]) -> None:
        severity = classify_security_event(event)
        self.warn(
            f"Security Event: {event}",
            {**details, "security_event": True, "severity": severity.value},
        )

    def workflow(
        self, workflow_id: str, step: str, status: str | StepEvent,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        event = StepEvent(status)
        ctx = {
            **(context or {}),
            "workflow_id": workflow_id,
            "step": step,
            "workflow_status": event.value,
        }
        if event is StepEvent.FAILED:
            self.error(f"Workflow Step Failed: {step}", None, ctx)
        elif event is StepEvent.COMPLETED:
            self.info(f"Workflow Step Completed: {step}", ctx)
        else:
            self.info(f"Workflow Step Started: {step}", ctx)

    def test(
        self, test_name: str, result: str,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = {**(context or {}), "test_name": test_name, "test_result": result}
        if result == "passed":
            self.info(f"Test Passed: {test_name}", ctx)
        else:
            self.error(f"Test Failed: {test_name}", None, ctx)

    async def timed(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        context: Mapping[str, Any] | None = None,
    ) -> T:
        """Await fn(), logging start, duration and failure. Re-raises on failure."""
        start = time.monotonic()
        self.info(f"Operation Started: {operation}", context)
        try:
            result = await fn()
        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            self.error(
                f"Operation Failed: {operation}", e,
                {**(context or {}), "duration_ms": duration_ms},
            )
            raise
        self.performance(operation, (time.monotonic() - start) * 1000, context)
        return result

    # ── Configuration ──

    def set_level(self, level: LogLevel | str) -> None:
        self.level = parse_level(level)
        self.info(f"Log level changed to {self.level.value}")

    def set_external_logging(self, enabled: bool) -> None:
        self.enable_external = enabled
        self.info(f"External logging {'enabled' if enabled else 'disabled'}")

    def set_performance_logging(self, enabled: bool) -> None:
        self.enable_performance = enabled
        self.info(f"Performance logging {'enabled' if enabled else 'disabled'}")

    # ── Internals ──

    def should_log(self, level: LogLevel) -> bool:
        return level.ordinal >= self.level.ordinal

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: Mapping[str, Any] | None,
        error: BaseException | None = None,
    ) -> None:
        if not self.should_log(level):
            return
        entry = self._build_entry(level, message, context, error)
        self._to_console(level, entry, error)
        if self.enable_external and self.external_sink is not None:
            self._to_external(entry)

    def _build_entry(
        self,
        level: LogLevel,
        message: str,
        context: Mapping[str, Any] | None,
        error: BaseException | None,
    ) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "level": level.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "context": {"service": self.name, **(context or {})},
        }
        if error is not None:
            entry["error"] = {
                "type": type(error).__name__,
                "message": str(error),
                "code": getattr(error, "code", None),
            }
        return entry

    def _to_console(
        self, level: LogLevel, entry: dict[str, Any], error: BaseException | None,
    ) -> None:
        ctx = entry["context"]
        extra = {
            "service": self.name,
            "context": ctx,
            "request_id": ctx.get("request_id"),
            "operation_id": ctx.get("operation_id"),
            "workflow_id": ctx.get("workflow_id"),
            "duration_ms": ctx.get("duration_ms"),
            "severity": ctx.get("severity"),
            "error_code": entry.get("error", {}).get("code"),
        }
        exc_info = (type(error), error, error.__traceback__) if error else None
        self._stdlib.log(
            _STDLIB_LEVELS[level], f"[{self.name}] {entry['message']}",
            extra=extra, exc_info=exc_info,
        )

    def _to_external(self, entry: dict[str, Any]) -> None:
        try:
            self.external_sink.write(entry)
        except Exception as e:
            # Entry is already on the console; note the sink failure and move on
            _internal.debug(f"External log sink failed for {self.name}: {e}")


# ─── Registry ────────────────────────────────────────────────────

class LoggerFactory:
    """Named registry: one StructuredLogger per subsystem name, created lazily."""

    def __init__(
        self,
        level: LogLevel | str = LogLevel.INFO,
        enable_external: bool = False,
        enable_performance: bool = True,
        external_sink: LogSink | None = None,
    ):
        self._defaults = {
            "level": parse_level(level),
            "enable_external": enable_external,
            "enable_performance": enable_performance,
            "external_sink": external_sink,
        }
        self._loggers: dict[str, StructuredLogger] = {}

    def get_logger(
        self,
        name: str,
        level: LogLevel | str | None = None,
        enable_external: bool | None = None,
        enable_performance: bool | None = None,
    ) -> StructuredLogger:
        """Return the memoized logger for name. Options apply only on first creation."""
        logger = self._loggers.get(name)
        if logger is None:
            logger = StructuredLogger(
                name,
                level if level is not None else self._defaults["level"],
                enable_external=(
                    enable_external if enable_external is not None
                    else self._defaults["enable_external"]
                ),
                enable_performance=(
                    enable_performance if enable_performance is not None
                    else self._defaults["enable_performance"]
                ),
                external_sink=self._defaults["external_sink"],
            )
            self._loggers[name] = logger
        return logger

    def configure_all(
        self,
        level: LogLevel | str | None = None,
        enable_external: bool | None = None,
        enable_performance: bool | None = None,
        external_sink: LogSink | None = None,
    ) -> None:
        """Push settings to every logger created so far and to future ones."""
        if level is not None:
            self._defaults["level"] = parse_level(level)
        if enable_external is not None:
            self._defaults["enable_external"] = enable_external
        if enable_performance is not None:
            self._defaults["enable_performance"] = enable_performance
        if external_sink is not None:
            self._defaults["external_sink"] = external_sink
        for logger in self._loggers.values():
            if external_sink is not None:
                logger.external_sink = external_sink
            if level is not None:
                logger.set_level(level)
            if enable_external is not None:
                logger.set_external_logging(enable_external)
            if enable_performance is not None:
                logger.set_performance_logging(enable_performance)

    def names(self) -> list[str]:
        return list(self._loggers)

    def clear(self) -> None:
        self._loggers.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._loggers

    def __len__(self) -> int:
        return len(self._loggers)


# Process-wide registry used by application wiring (main.py); tests build their own
logger_factory = LoggerFactory()


def get_logger(name: str) -> StructuredLogger:
    return logger_factory.get_logger(name)


def configure_logging(
    settings, factory: LoggerFactory = logger_factory,
) -> HttpLogSink | None:
    """Apply Settings to stdlib handlers and the logger registry.

    Returns the external sink, if any; the caller starts it inside the running loop
    and closes it on shutdown.
    """
    setup_logging(settings.log_level, settings.log_format)
    sink = None
    if settings.log_external_enabled and settings.log_external_endpoint:
        sink = HttpLogSink(
            settings.log_external_endpoint,
            api_key=settings.log_external_api_key,
            timeout_seconds=settings.log_external_timeout_seconds,
        )
    factory.configure_all(
        level=settings.log_level,
        enable_external=sink is not None,
        external_sink=sink,
    )
    return sink

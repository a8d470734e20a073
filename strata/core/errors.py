"""Error Hierarchy — typed, categorized exceptions for every framework failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Client errors (400-level) are recoverable; infrastructure errors (500-level) are critical
    - to_response() produces the REST error body; to_envelope_error() the controller envelope payload
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with StrataError base: controllers and the FastAPI handler catch one type
      (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to the logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    PERSISTENCE = "persistence"
    TRANSACTION = "transaction"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: str | None = None
    operation: str | None = None
    entity_id: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class StrataError(Exception):
    """Base exception for all Strata errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "request_id": self.context.request_id,
                    "operation": self.context.operation,
                    "entity_id": self.context.entity_id,
                },
            }
        }

    def to_envelope_error(self) -> dict:
        """Error payload embedded in a controller response envelope."""
        return {
            "code": self.code,
            "message": self.context.user_message or self.message,
            "category": self.category.value,
        }


# ─── Client Errors (400-level) ──────────────────────────────────

class ValidationError(StrataError):
    """Input failed shape or business-rule validation."""
    def __init__(
        self, message: str, field: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class InvalidIdError(StrataError):
    """Entity id is empty or not a string."""
    def __init__(self, entity_id: Any, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid entity ID: {entity_id!r}",
            "INVALID_ID", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.entity_id = entity_id


class InvalidParametersError(StrataError):
    """Query parameters (page, limit, search query) out of range."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_PARAMETERS", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class NotFoundError(StrataError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class AuthenticationError(StrataError):
    """Caller identity could not be established."""
    def __init__(
        self, message: str = "Authentication failed", context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "AUTHENTICATION_ERROR", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )


class AuthorizationError(StrataError):
    """Authenticated caller lacks permission for the operation."""
    def __init__(
        self, message: str = "Insufficient permissions", context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "AUTHORIZATION_ERROR", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class TransactionStateError(StrataError):
    """commit/rollback called on a transaction that is not active."""
    def __init__(
        self, transaction_id: str, status: str, operation: str,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Cannot {operation} transaction '{transaction_id}' in status '{status}'",
            "TRANSACTION_STATE_ERROR", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )
        self.transaction_id = transaction_id
        self.status = status


# ─── Server Errors (500-level) ──────────────────────────────────

class ExecutionError(StrataError):
    """Unexpected failure while executing business logic."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "EXECUTION_ERROR", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )


class TransactionAbortedError(StrataError):
    """A sequential transaction stopped at its first failing operation."""
    def __init__(
        self, failed_index: int, cause: BaseException,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Operation {failed_index + 1} failed: {cause}",
            "TRANSACTION_ABORTED", ErrorCategory.TRANSACTION,
            ErrorSeverity.ERROR, context, 500,
        )
        self.failed_index = failed_index
        self.cause = cause


class PersistenceError(StrataError):
    """Backing store operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Persistence {operation} failed: {message}",
            "PERSISTENCE_ERROR", ErrorCategory.PERSISTENCE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation

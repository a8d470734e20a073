"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - EntityId wraps str — ids are opaque strings, never parsed
    - Entities are plain dicts (Entity alias) with id, created_at, updated_at always present
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (ADR: envelopes are JSON)
"""

from enum import Enum
from typing import Any, NewType


# ─── Identity Types ──────────────────────────────────────────────

EntityId = NewType("EntityId", str)
TransactionId = NewType("TransactionId", str)
WorkflowId = NewType("WorkflowId", str)

Entity = dict[str, Any]
Filters = dict[str, Any]

# Fields the repository owns; callers never set them on update
SERVER_FIELDS = frozenset({"id", "created_at", "updated_at"})


# ─── Framework Enums ─────────────────────────────────────────────

class TransactionStatus(str, Enum):
    """Transaction lifecycle — active is the only non-terminal state."""
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class WorkflowRunStatus(str, Enum):
    """Tracked state of a registered workflow."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepEvent(str, Enum):
    """Workflow step log events."""
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class LogLevel(str, Enum):
    """Logger levels — declaration order is the threshold order."""
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def ordinal(self) -> int:
        return list(LogLevel).index(self)


class SecuritySeverity(str, Enum):
    """Severity assigned to security events by keyword matching."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# ─── Example Domain Enums (insights) ─────────────────────────────

class InsightCategory(str, Enum):
    PWA_DEVELOPMENT = "pwa-development"
    AI_WORKFLOW = "ai-workflow"
    SUPABASE_INTEGRATION = "supabase-integration"
    ARCHITECTURE = "architecture"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    SECURITY = "security"
    PERFORMANCE = "performance"
    ACCESSIBILITY = "accessibility"
    INTERNATIONALIZATION = "internationalization"
    MONITORING = "monitoring"
    DOCUMENTATION = "documentation"
    OTHER = "other"


class InsightPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    URGENT = "urgent"


class InsightStatus(str, Enum):
    """Publication lifecycle — transitions constrained by insight_rules."""
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"
    DEPRECATED = "deprecated"
    IN_REVIEW = "in-review"
    APPROVED = "approved"
    REJECTED = "rejected"


class InsightWorkflowStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ON_HOLD = "on-hold"


class BulkOperationKind(str, Enum):
    UPDATE = "update"
    DELETE = "delete"
    ARCHIVE = "archive"
    CHANGE_STATUS = "change-status"
    CHANGE_PRIORITY = "change-priority"


class Role(str, Enum):
    """Caller roles understood by the example controller's authorize hook."""
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"

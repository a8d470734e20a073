"""Insight Rules — pure business rules for the example insights domain.

Invariants:
    - Status transitions follow STATUS_TRANSITIONS exactly; staying in the same status is allowed
    - high/critical priority insights start with workflow_status "pending"
    - workflow_status "completed" forces completion_percentage=100;
      "in-progress" raises it to at least 25
    - Relevance: title 10, description 5, content 3, any tag 2 (case-insensitive substring)

Design Decisions:
    - Pure functions over dicts: the service owns IO, this module owns the rules
      (ADR: functional core, imperative shell)
"""

from typing import Any, Mapping

from strata.core.domain_types import (
    Entity, InsightCategory, InsightPriority, InsightStatus, InsightWorkflowStatus,
)
from strata.core.errors import ValidationError

STATUS_TRANSITIONS: dict[InsightStatus, frozenset[InsightStatus]] = {
    InsightStatus.DRAFT: frozenset({InsightStatus.ACTIVE, InsightStatus.IN_REVIEW}),
    InsightStatus.ACTIVE: frozenset({
        InsightStatus.ARCHIVED, InsightStatus.DEPRECATED, InsightStatus.IN_REVIEW,
    }),
    InsightStatus.IN_REVIEW: frozenset({
        InsightStatus.APPROVED, InsightStatus.REJECTED, InsightStatus.ACTIVE,
    }),
    InsightStatus.APPROVED: frozenset({InsightStatus.ACTIVE, InsightStatus.ARCHIVED}),
    InsightStatus.REJECTED: frozenset({InsightStatus.DRAFT, InsightStatus.ARCHIVED}),
    InsightStatus.ARCHIVED: frozenset({InsightStatus.ACTIVE, InsightStatus.DEPRECATED}),
    InsightStatus.DEPRECATED: frozenset({InsightStatus.ARCHIVED}),
}

ESCALATED_PRIORITIES = frozenset({InsightPriority.HIGH, InsightPriority.CRITICAL})

_CATEGORY_TAGS: dict[InsightCategory, tuple[str, ...]] = {
    InsightCategory.PWA_DEVELOPMENT: ("pwa", "web-app", "progressive"),
    InsightCategory.AI_WORKFLOW: ("ai", "workflow", "automation"),
    InsightCategory.SUPABASE_INTEGRATION: ("supabase", "backend", "database"),
    InsightCategory.ARCHITECTURE: ("architecture", "design", "patterns"),
}

RELEVANCE_WEIGHTS: tuple[tuple[str, int], ...] = (
    ("title", 10),
    ("description", 5),
    ("content", 3),
    ("tags", 2),
)

MAX_BULK_IDS = 100


def can_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    try:
        allowed = STATUS_TRANSITIONS.get(InsightStatus(current), frozenset())
        return InsightStatus(target) in allowed
    except ValueError:
        return False


def validate_status_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise ValidationError(
            f"Invalid status transition from {current} to {target}", field="status",
        )


def is_escalated(priority: str) -> bool:
    return priority in {p.value for p in ESCALATED_PRIORITIES}


def default_tags(category: str, ai_model: str) -> list[str]:
    tags = [category, ai_model]
    try:
        tags.extend(_CATEGORY_TAGS.get(InsightCategory(category), ()))
    except ValueError:
        pass
    return tags


def apply_create_rules(data: Mapping[str, Any]) -> Entity:
    """Return a copy of a create payload with derived fields filled in."""
    record = dict(data)
    if is_escalated(record.get("priority", "")):
        record["workflow_status"] = InsightWorkflowStatus.PENDING.value
    if not record.get("tags"):
        record["tags"] = default_tags(record.get("category", ""), record.get("ai_model", ""))
    return record


def apply_completion_rules(changes: Mapping[str, Any], existing: Mapping[str, Any]) -> Entity:
    """Return a copy of update changes with completion_percentage derived from workflow_status."""
    result = dict(changes)
    workflow_status = result.get("workflow_status")
    if workflow_status == InsightWorkflowStatus.COMPLETED.value:
        result["completion_percentage"] = 100
    elif workflow_status == InsightWorkflowStatus.IN_PROGRESS.value:
        current = result.get("completion_percentage")
        if current is None:
            current = existing.get("completion_percentage") or 0
        result["completion_percentage"] = max(current, 25)
    return result


def _field_matches(insight: Mapping[str, Any], field: str, needle: str) -> bool:
    value = insight.get(field)
    if field == "tags":
        return any(needle in str(tag).lower() for tag in value or ())
    return needle in str(value or "").lower()


def matched_fields(insight: Mapping[str, Any], query: str) -> list[str]:
    needle = query.lower()
    return [f for f, _ in RELEVANCE_WEIGHTS if _field_matches(insight, f, needle)]


def relevance_score(insight: Mapping[str, Any], query: str) -> int:
    needle = query.lower()
    return sum(w for f, w in RELEVANCE_WEIGHTS if _field_matches(insight, f, needle))


def to_search_result(insight: Mapping[str, Any], query: str) -> Entity:
    return {
        **insight,
        "relevance_score": relevance_score(insight, query),
        "matched_fields": matched_fields(insight, query),
    }


def is_referenced(insight_id: str, insights: list[Mapping[str, Any]]) -> bool:
    return any(
        insight_id in (other.get("related_insights") or ())
        for other in insights
        if other.get("id") != insight_id
    )

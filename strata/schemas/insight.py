"""Insight Schemas — Pydantic models with field-level validation for insight payloads.

Invariants:
    - InsightCreate.title: 1-200 chars, stripped, non-empty; content and category required
    - category/priority/status/workflow_status validated against core/domain_types enums
    - InsightUpdate rejects unknown fields, server-owned fields (id, created_at, updated_at)
      and explicit nulls on NON_NULLABLE_FIELDS
    - BulkOperationRequest: 1-100 distinct ids; each operation kind carries its required argument

Design Decisions:
    - Enum-typed fields with use_enum_values: dumps straight to the stored string values
    - model_validator for cross-field rules (bulk operation arguments) — keeps models pure
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from strata.core.domain_types import (
    BulkOperationKind, InsightCategory, InsightPriority, InsightStatus,
    InsightWorkflowStatus,
)
from strata.core.insight_rules import MAX_BULK_IDS


class InsightCreate(BaseModel):
    """Insight creation — validates required fields and enums."""
    model_config = ConfigDict(use_enum_values=True, extra="forbid")

    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    prompt: str = ""
    content: str = Field(min_length=1)
    category: InsightCategory
    priority: InsightPriority = InsightPriority.MEDIUM
    status: InsightStatus = InsightStatus.DRAFT
    ai_model: str = Field(min_length=1, max_length=100)
    tags: list[str] = Field(default_factory=list)
    user_id: str | None = None
    workflow_status: InsightWorkflowStatus | None = None
    assigned_to: str | None = None
    due_date: str | None = None
    completion_percentage: int | None = Field(None, ge=0, le=100)
    source_url: str | None = None
    dependencies: list[str] | None = None
    related_insights: list[str] | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty or whitespace")
        return v


# Columns every stored insight must carry; an update may omit them but never null them
NON_NULLABLE_FIELDS = (
    "title", "description", "prompt", "content", "category",
    "priority", "status", "ai_model", "tags",
)


class InsightUpdate(BaseModel):
    """Partial update — every field optional, unset fields untouched."""
    model_config = ConfigDict(use_enum_values=True, extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    prompt: str | None = None
    content: str | None = None
    category: InsightCategory | None = None
    priority: InsightPriority | None = None
    status: InsightStatus | None = None
    ai_model: str | None = Field(None, min_length=1, max_length=100)
    tags: list[str] | None = None
    workflow_status: InsightWorkflowStatus | None = None
    assigned_to: str | None = None
    due_date: str | None = None
    completion_percentage: int | None = Field(None, ge=0, le=100)
    source_url: str | None = None
    dependencies: list[str] | None = None
    related_insights: list[str] | None = None

    @model_validator(mode="before")
    @classmethod
    def reject_null_required(cls, data):
        if isinstance(data, dict):
            nulled = [f for f in NON_NULLABLE_FIELDS if f in data and data[f] is None]
            if nulled:
                raise ValueError(f"{', '.join(nulled)} cannot be null")
        return data

    def changes(self) -> dict:
        """Only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


class BulkOperationRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    operation: BulkOperationKind
    insight_ids: list[str] = Field(min_length=1, max_length=MAX_BULK_IDS)
    updates: InsightUpdate | None = None
    new_status: InsightStatus | None = None
    new_priority: InsightPriority | None = None

    @field_validator("insight_ids")
    @classmethod
    def distinct_ids(cls, v: list[str]) -> list[str]:
        if any(not i for i in v):
            raise ValueError("insight ids must be non-empty strings")
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def check_operation_argument(self) -> "BulkOperationRequest":
        required = {
            BulkOperationKind.UPDATE.value: ("updates", self.updates),
            BulkOperationKind.CHANGE_STATUS.value: ("new_status", self.new_status),
            BulkOperationKind.CHANGE_PRIORITY.value: ("new_priority", self.new_priority),
        }
        if self.operation in required:
            field, value = required[self.operation]
            if value is None:
                raise ValueError(f"{self.operation} requires {field}")
        return self

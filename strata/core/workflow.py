"""Workflow Types — configuration, per-step results and tracked status for workflow runs.

Invariants:
    - WorkflowConfig.steps is ordered; results are recorded once per step, in that order
    - WorkflowResult.success reflects ONLY the core execute() outcome, never the step results
    - progress is 0–100 and reaches 100 only when every step has been attempted
    - Step retries never exceed the effective max_retries

Design Decisions:
    - Steps are an audit/instrumentation channel run alongside the service, not a gate
      (observed contract, kept on purpose; see WorkflowService.execute_with_workflow)
    - RetryPolicy backoff is pure math here; the sleeping happens in the service
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from strata.core.domain_types import WorkflowRunStatus


@dataclass
class RetryPolicy:
    max_retries: int = 0
    backoff_multiplier: float = 2.0
    initial_delay_ms: int = 0
    max_delay_ms: int = 10_000

    def delay_ms(self, attempt: int) -> int:
        """Delay before retry number `attempt` (1-based)."""
        if self.initial_delay_ms <= 0:
            return 0
        delay = self.initial_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        return int(min(self.max_delay_ms, delay))


@dataclass
class WorkflowStep:
    id: str
    name: str
    action: str | None = None
    max_retries: int | None = None  # None → inherit from RetryPolicy

    @property
    def handler_key(self) -> str:
        return self.action or self.id


@dataclass
class WorkflowConfig:
    id: str
    name: str = ""
    steps: list[WorkflowStep] = field(default_factory=list)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def max_retries_for(self, step: WorkflowStep) -> int:
        if step.max_retries is not None:
            return max(0, step.max_retries)
        return max(0, self.retry_policy.max_retries)


@dataclass
class WorkflowStepResult:
    step_id: str
    success: bool
    duration_ms: float
    retry_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "step_id": self.step_id,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "retry_count": self.retry_count,
            "error": self.error,
        }


@dataclass
class WorkflowResult:
    success: bool
    workflow_id: str
    steps: list[WorkflowStepResult] = field(default_factory=list)
    total_duration_ms: float = 0.0
    data: Any = None
    error: str | None = None

    @property
    def failed_steps(self) -> list[WorkflowStepResult]:
        return [s for s in self.steps if not s.success]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "workflow_id": self.workflow_id,
            "steps": [s.to_dict() for s in self.steps],
            "total_duration_ms": self.total_duration_ms,
            "data": self.data,
            "error": self.error,
        }


@dataclass
class WorkflowStatus:
    """Tracked progress of the latest run of a registered workflow."""
    id: str
    status: WorkflowRunStatus = WorkflowRunStatus.PENDING
    total_steps: int = 0
    steps_attempted: int = 0
    current_step: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def progress(self) -> int:
        if self.total_steps == 0:
            return 100 if self.status is WorkflowRunStatus.COMPLETED else 0
        return int(self.steps_attempted * 100 / self.total_steps)

    def start(self) -> None:
        self.status = WorkflowRunStatus.RUNNING
        self.started_at = datetime.now(timezone.utc)
        self.completed_at = None
        self.steps_attempted = 0
        self.current_step = None
        self.error = None

    def finish(self, success: bool, error: str | None = None) -> None:
        self.status = WorkflowRunStatus.COMPLETED if success else WorkflowRunStatus.FAILED
        self.completed_at = datetime.now(timezone.utc)
        self.current_step = None
        self.error = error

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "current_step": self.current_step,
            "progress": self.progress,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }

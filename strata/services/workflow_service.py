"""Workflow Service — runs configured steps alongside the core execute() pipeline.

Invariants:
    - Steps run sequentially, each in isolation; one result is recorded per step, in order
    - A failing step does NOT stop later steps nor the final execute(data) call
    - WorkflowResult.success reflects only the execute(data) outcome
    - execute_with_workflow never raises for step or execute failures
    - get_workflow_status raises NotFoundError for ids never registered

Design Decisions:
    - Steps are an audit/instrumentation channel, not a gate: callers that need gating
      inspect WorkflowResult.failed_steps themselves
    - Step work is pluggable: register_step(key, handler) or override run_step()
      (ADR: explicit dispatch dict, same shape as the insights action table)
    - sleep is injected so retry backoff is testable without waiting
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

from strata.core.boundary_protocols import Cache, StructuredLoggerLike
from strata.core.domain_types import StepEvent
from strata.core.errors import NotFoundError
from strata.core.workflow import (
    WorkflowConfig, WorkflowResult, WorkflowStatus, WorkflowStep, WorkflowStepResult,
)
from strata.services.base_service import BaseService

StepHandler = Callable[[WorkflowStep, Any], Awaitable[Any]]


class WorkflowService(BaseService):
    """BaseService plus best-effort multi-step workflows with tracked status."""

    def __init__(
        self,
        logger: StructuredLoggerLike,
        *,
        name: str | None = None,
        cache: Cache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(logger, name=name, cache=cache)
        self._workflows: dict[str, WorkflowConfig] = {}
        self._statuses: dict[str, WorkflowStatus] = {}
        self._step_handlers: dict[str, StepHandler] = {}
        self._sleep = sleep

    def register_step(self, key: str, handler: StepHandler) -> None:
        """Bind a handler to a step action (or id when the step has no action)."""
        self._step_handlers[key] = handler

    async def run_step(self, step: WorkflowStep, data: Any) -> None:
        handler = self._step_handlers.get(step.handler_key)
        if handler is not None:
            await handler(step, data)

    async def execute_with_workflow(self, data: Any, workflow: WorkflowConfig) -> WorkflowResult:
        start = time.monotonic()
        self._workflows[workflow.id] = workflow
        status = WorkflowStatus(id=workflow.id, total_steps=len(workflow.steps))
        self._statuses[workflow.id] = status
        status.start()
        ctx = {"workflow_id": workflow.id, "service": self.name}
        self.logger.info(f"[{self.name}] workflow started", ctx)

        steps = [
            await self._run_one(workflow, step, data, status)
            for step in workflow.steps
        ]

        # Step failures are recorded only; execute() runs regardless
        try:
            result = await self.execute(data)
        except Exception as e:
            total_ms = (time.monotonic() - start) * 1000
            status.finish(False, str(e))
            self.logger.error(
                f"[{self.name}] workflow failed", e, {**ctx, "duration_ms": total_ms},
            )
            return WorkflowResult(
                success=False, workflow_id=workflow.id, steps=steps,
                total_duration_ms=total_ms, error=str(e),
            )

        total_ms = (time.monotonic() - start) * 1000
        status.finish(True)
        self.logger.info(
            f"[{self.name}] workflow completed",
            {
                **ctx,
                "duration_ms": total_ms,
                "failed_steps": [s.step_id for s in steps if not s.success],
            },
        )
        return WorkflowResult(
            success=True, workflow_id=workflow.id, steps=steps,
            total_duration_ms=total_ms, data=result,
        )

    def get_workflow_status(self, workflow_id: str) -> WorkflowStatus:
        status = self._statuses.get(workflow_id)
        if status is None:
            raise NotFoundError("Workflow", workflow_id)
        return status

    def registered_workflows(self) -> list[str]:
        return list(self._workflows)

    async def _run_one(
        self,
        workflow: WorkflowConfig,
        step: WorkflowStep,
        data: Any,
        status: WorkflowStatus,
    ) -> WorkflowStepResult:
        status.current_step = step.id
        max_retries = workflow.max_retries_for(step)
        ctx = {"step_name": step.name, "service": self.name}
        self.logger.workflow(workflow.id, step.id, StepEvent.STARTED, ctx)
        start = time.monotonic()
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            if attempt:
                delay_ms = workflow.retry_policy.delay_ms(attempt)
                if delay_ms:
                    await self._sleep(delay_ms / 1000)
            try:
                await self.run_step(step, data)
            except Exception as e:
                last_error = e
                continue
            duration_ms = (time.monotonic() - start) * 1000
            status.steps_attempted += 1
            self.logger.workflow(
                workflow.id, step.id, StepEvent.COMPLETED,
                {**ctx, "duration_ms": duration_ms, "retry_count": attempt},
            )
            return WorkflowStepResult(step.id, True, duration_ms, attempt)

        duration_ms = (time.monotonic() - start) * 1000
        status.steps_attempted += 1
        self.logger.workflow(
            workflow.id, step.id, StepEvent.FAILED,
            {
                **ctx,
                "duration_ms": duration_ms,
                "retry_count": max_retries,
                "error": str(last_error),
            },
        )
        return WorkflowStepResult(step.id, False, duration_ms, max_retries, str(last_error))

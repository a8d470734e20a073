"""Workflow Service — verifies best-effort steps, retries and tracked workflow status.

Invariants:
    - One result per step, in configured order
    - A failing step never stops later steps nor the final execute()
    - WorkflowResult.success reflects only execute(); execute failures are returned, not raised
    - Retries never exceed max_retries; backoff sleeps come from the RetryPolicy
    - get_workflow_status raises NotFoundError for unknown ids
"""

import pytest

from strata.core.domain_types import WorkflowRunStatus
from strata.core.errors import NotFoundError
from strata.core.workflow import RetryPolicy, WorkflowConfig, WorkflowStep
from strata.services.workflow_service import WorkflowService


class EchoWorkflowService(WorkflowService):
    def __init__(self, logger, **kwargs):
        super().__init__(logger, **kwargs)
        self.executed = []

    async def process(self, data):
        self.executed.append(data)
        if data.get("fail_execute"):
            raise RuntimeError("execute failed")
        return {"processed": data["value"]}


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(logger, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return EchoWorkflowService(logger, name="Echo", sleep=fake_sleep)


def _config(*steps, retry=None) -> WorkflowConfig:
    return WorkflowConfig(
        id="wf-1", name="Echo flow", steps=list(steps),
        retry_policy=retry or RetryPolicy(),
    )


async def test_steps_recorded_in_order(service):
    calls = []

    async def record(step, data):
        calls.append(step.id)

    service.register_step("a", record)
    service.register_step("b", record)
    result = await service.execute_with_workflow(
        {"value": 1}, _config(WorkflowStep("a", "A"), WorkflowStep("b", "B")),
    )

    assert calls == ["a", "b"]
    assert [s.step_id for s in result.steps] == ["a", "b"]
    assert all(s.success for s in result.steps)
    assert result.success is True
    assert result.data == {"processed": 1}


async def test_failing_step_does_not_gate_execution(service):
    later = []

    async def broken(step, data):
        raise RuntimeError("step broke")

    async def after(step, data):
        later.append(step.id)

    service.register_step("broken", broken)
    service.register_step("after", after)
    result = await service.execute_with_workflow(
        {"value": 2},
        _config(WorkflowStep("broken", "Broken"), WorkflowStep("after", "After")),
    )

    assert result.success is True
    assert later == ["after"]
    assert service.executed == [{"value": 2}]
    assert [s.step_id for s in result.failed_steps] == ["broken"]
    assert result.steps[0].error == "step broke"


async def test_execute_failure_returned_not_raised(service):
    result = await service.execute_with_workflow(
        {"value": 3, "fail_execute": True}, _config(WorkflowStep("a", "A")),
    )
    assert result.success is False
    assert result.error == "execute failed"
    assert len(result.steps) == 1

    status = service.get_workflow_status("wf-1")
    assert status.status is WorkflowRunStatus.FAILED
    assert status.error == "execute failed"


async def test_step_retried_until_success(service, sleeps):
    attempts = []

    async def flaky(step, data):
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("transient")

    service.register_step("flaky", flaky)
    result = await service.execute_with_workflow(
        {"value": 4},
        _config(
            WorkflowStep("flaky", "Flaky"),
            retry=RetryPolicy(max_retries=3, initial_delay_ms=100, backoff_multiplier=2),
        ),
    )

    assert result.steps[0].success is True
    assert result.steps[0].retry_count == 2
    assert sleeps == [0.1, 0.2]


async def test_retries_never_exceed_limit(service):
    attempts = []

    async def always_fails(step, data):
        attempts.append(1)
        raise RuntimeError("permanent")

    service.register_step("fails", always_fails)
    result = await service.execute_with_workflow(
        {"value": 5},
        _config(WorkflowStep("fails", "Fails", max_retries=2)),
    )

    assert len(attempts) == 3
    assert result.steps[0].success is False
    assert result.steps[0].retry_count == 2


async def test_step_action_routes_to_handler(service):
    seen = []

    async def send(step, data):
        seen.append((step.id, data["value"]))

    service.register_step("send_email", send)
    await service.execute_with_workflow(
        {"value": 6}, _config(WorkflowStep("notify", "Notify", action="send_email")),
    )
    assert seen == [("notify", 6)]


async def test_status_tracks_completed_run(service):
    await service.execute_with_workflow(
        {"value": 7}, _config(WorkflowStep("a", "A"), WorkflowStep("b", "B")),
    )
    status = service.get_workflow_status("wf-1")
    assert status.status is WorkflowRunStatus.COMPLETED
    assert status.progress == 100
    assert status.current_step is None
    assert service.registered_workflows() == ["wf-1"]


def test_unknown_workflow_status_raises(service):
    with pytest.raises(NotFoundError):
        service.get_workflow_status("never-registered")


async def test_step_events_logged(service, sink):
    async def broken(step, data):
        raise RuntimeError("nope")

    service.register_step("b", broken)
    await service.execute_with_workflow(
        {"value": 8}, _config(WorkflowStep("a", "A"), WorkflowStep("b", "B")),
    )
    assert sink.find("Workflow Step Completed: a")
    failed = sink.find("Workflow Step Failed: b")[0]
    assert failed["context"]["workflow_id"] == "wf-1"
    assert failed["context"]["error"] == "nope"

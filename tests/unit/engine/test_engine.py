"""Unit tests for WorkflowEngine forward execution and unwind."""

import json

import pytest
from pydantic import BaseModel

from saga_core.config import SagaConfig
from saga_core.engine import ExecutionContext, WorkflowEngine
from saga_core.errors import (
    ResolutionError,
    SagaError,
    StepCompensationError,
    StepForwardError,
    create_error,
)
from saga_core.types import ExecutionStatus, StepStatus
from saga_core.workflow import StepResponse, WorkflowDefinition, create_step, step


def events(log_output) -> list[str]:
    return [json.loads(line)["event"] for line in log_output.getvalue().splitlines()]


def three_step_workflow(recorder, **overrides) -> WorkflowDefinition:
    steps = {
        "a": recorder.step("a"),
        "b": recorder.step("b"),
        "c": recorder.step("c"),
    }
    steps.update(overrides)
    return WorkflowDefinition(name="three", steps=list(steps.values()))


class TestForwardExecution:
    """Tests for the success path."""

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, engine, recorder):
        """Test that steps run sequentially and the last output is returned."""
        result = await engine.execute_workflow(three_step_workflow(recorder), {"x": 1})

        assert result.status == ExecutionStatus.SUCCEEDED
        assert result.succeeded
        assert result.output == "c-out"
        assert recorder.forwards == ["a", "b", "c"]
        assert recorder.compensations == []
        assert [s.status for s in result.steps] == [StepStatus.SUCCEEDED] * 3

    @pytest.mark.asyncio
    async def test_log_empty_after_success(self, engine, recorder):
        """Test that the compensation log is cleared on success."""
        result = await engine.execute_workflow(three_step_workflow(recorder))
        assert len(result.record.compensation_log) == 0

    @pytest.mark.asyncio
    async def test_zero_step_workflow_succeeds(self, engine):
        """Test the empty workflow."""
        result = await engine.execute_workflow(WorkflowDefinition(name="empty"), {"a": 1})
        assert result.status == ExecutionStatus.SUCCEEDED
        assert result.output is None
        assert result.steps == []

    @pytest.mark.asyncio
    async def test_result_function(self, engine, recorder):
        """Test that the result function maps the final scope."""
        workflow = three_step_workflow(recorder).returns(
            lambda s: {"first": s.output("a"), "input": s.input}
        )
        result = await engine.execute_workflow(workflow, "in")
        assert result.output == {"first": "a-out", "input": "in"}

    @pytest.mark.asyncio
    async def test_wiring_feeds_prior_outputs(self, engine):
        """Test that wire functions receive earlier outputs."""
        seen = []

        double = create_step("double", lambda n, ctx: n * 2)

        def record(data, ctx):
            seen.append(data)
            return data

        workflow = (
            WorkflowDefinition(name="wired")
            .then(double)
            .then(create_step("record", record), wire=lambda s: (s.input, s.output("double")))
        )
        result = await engine.execute_workflow(workflow, 21)

        assert seen == [(21, 42)]
        assert result.output == (21, 42)

    @pytest.mark.asyncio
    async def test_same_step_twice_with_ids(self, engine):
        """Test that a step can appear twice under different ids."""
        inc = create_step("inc", lambda n, ctx: n + 1)
        workflow = (
            WorkflowDefinition(name="twice")
            .then(inc, id="first")
            .then(inc, wire=lambda s: s.output("first"), id="second")
        )
        result = await engine.execute_workflow(workflow, 1)
        assert result.output == 3
        assert [s.step_id for s in result.steps] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_sync_functions_supported(self, engine):
        """Test plain (non-async) forward and compensation functions."""
        undone = []
        workflow = WorkflowDefinition(
            name="sync",
            steps=[
                create_step("a", lambda d, ctx: "ok", lambda d, ctx: undone.append(d)),
                create_step("b", lambda d, ctx: 1 / 0),
            ],
        )
        result = await engine.execute_workflow(workflow)
        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert undone == ["ok"]

    @pytest.mark.asyncio
    async def test_invoke_by_name(self, engine, registry, recorder):
        """Test invoke through the registry."""
        registry.register(three_step_workflow(recorder))
        result = await engine.invoke("three", execution_id="exec-fixed")
        assert result.execution_id == "exec-fixed"
        assert result.workflow_id == "three"
        assert result.succeeded

    @pytest.mark.asyncio
    async def test_invoke_unknown_workflow_raises(self, engine):
        """Test that an unknown workflow name is a caller error."""
        with pytest.raises(SagaError) as exc_info:
            await engine.invoke("missing")
        assert exc_info.value.code == "WORKFLOW_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_context_exposes_config_and_metadata(self, registry, container, recorder):
        """Test the read-only context handed to steps."""
        captured: list[ExecutionContext] = []

        @step("capture")
        def capture(data, ctx):
            captured.append(ctx)
            return None

        config = SagaConfig(collaborators={"currency": "cop"})
        engine = WorkflowEngine(registry, container, config=config)
        result = await engine.execute_workflow(
            WorkflowDefinition(name="ctx", steps=[capture]),
            metadata={"request_id": "r1"},
        )

        ctx = captured[0]
        assert ctx.execution_id == result.execution_id
        assert ctx.workflow_id == "ctx"
        assert ctx.step_id == "capture"
        assert ctx.config["currency"] == "cop"
        assert ctx.metadata["request_id"] == "r1"
        with pytest.raises(TypeError):
            ctx.config["currency"] = "usd"  # type: ignore[index]


class TestUnwind:
    """Tests for failure handling and compensation order."""

    @pytest.mark.asyncio
    async def test_failure_unwinds_in_reverse(self, engine, recorder):
        """Test that steps before the failure compensate newest-first."""
        workflow = three_step_workflow(
            recorder,
            c=recorder.step("c", fail=create_error("STEP_FAILED", detail="link target missing")),
        )
        result = await engine.execute_workflow(workflow)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert result.failed_clean
        assert recorder.compensations == ["b", "a"]
        assert isinstance(result.error, StepForwardError)
        assert result.error.step_id == "c"
        assert result.error.detail == "link target missing"
        assert result.compensation_errors == []
        assert result.output is None
        statuses = {s.step_id: s.status for s in result.steps}
        assert statuses == {
            "a": StepStatus.COMPENSATED,
            "b": StepStatus.COMPENSATED,
            "c": StepStatus.FAILED,
        }

    @pytest.mark.asyncio
    async def test_failed_step_is_not_compensated(self, engine, recorder):
        """Test that the failing step itself is never compensated."""
        workflow = three_step_workflow(recorder, b=recorder.step("b", fail=RuntimeError("x")))
        result = await engine.execute_workflow(workflow)

        assert recorder.forwards == ["a", "b"]
        assert recorder.compensations == ["a"]
        assert result.record.failed_step == "b"

    @pytest.mark.asyncio
    async def test_plain_exception_is_converted(self, engine, recorder):
        """Test conversion of non-saga exceptions."""
        original = ValueError("bad sku")
        workflow = three_step_workflow(recorder, a=recorder.step("a", fail=original))
        result = await engine.execute_workflow(workflow)

        assert result.error.code == "STEP_FAILED"
        assert result.error.__cause__ is original
        assert result.error.workflow_id == "three"
        assert result.error.execution_id == result.execution_id

    @pytest.mark.asyncio
    async def test_dirty_unwind_continues(self, engine, recorder):
        """Test that a failing compensation does not stop the unwind."""
        workflow = three_step_workflow(
            recorder,
            b=recorder.step("b", compensate_fail=RuntimeError("pricing down")),
            c=recorder.step("c", fail=RuntimeError("link target missing")),
        )
        result = await engine.execute_workflow(workflow)

        assert result.status == ExecutionStatus.FAILED_DIRTY
        assert result.failed_dirty
        assert recorder.compensations == ["b", "a"]
        assert result.error.step_id == "c"
        assert len(result.compensation_errors) == 1
        comp_error = result.compensation_errors[0]
        assert isinstance(comp_error, StepCompensationError)
        assert comp_error.step_id == "b"
        assert comp_error.detail == "pricing down"
        statuses = {s.step_id: s.status for s in result.steps}
        assert statuses["b"] == StepStatus.COMPENSATION_FAILED
        assert statuses["a"] == StepStatus.COMPENSATED
        assert result.record.failed_compensations[0].step_id == "b"

    @pytest.mark.asyncio
    async def test_every_compensation_failure_accumulates(self, engine, recorder):
        """Test that all compensation failures are reported."""
        workflow = three_step_workflow(
            recorder,
            a=recorder.step("a", compensate_fail=RuntimeError("a")),
            b=recorder.step("b", compensate_fail=RuntimeError("b")),
            c=recorder.step("c", fail=RuntimeError("c")),
        )
        result = await engine.execute_workflow(workflow)

        assert [e.step_id for e in result.compensation_errors] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_single_step_without_compensation(self, engine, recorder):
        """Test a one-step workflow with no compensation that fails."""
        workflow = WorkflowDefinition(
            name="one", steps=[recorder.step("only", compensate=False, fail=RuntimeError("x"))]
        )
        result = await engine.execute_workflow(workflow)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert result.compensation_errors == []
        assert recorder.compensations == []

    @pytest.mark.asyncio
    async def test_step_without_compensation_is_skipped(self, engine, recorder, log_output):
        """Test that compensation-free steps are passed over."""
        workflow = three_step_workflow(
            recorder,
            b=recorder.step("b", compensate=False),
            c=recorder.step("c", fail=RuntimeError("x")),
        )
        result = await engine.execute_workflow(workflow)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert recorder.compensations == ["a"]
        b = result.record.step_result("b")
        assert b.status == StepStatus.SKIPPED
        assert b.skip_reason == "step has no compensation"
        assert "compensation_skipped" in events(log_output)

    @pytest.mark.asyncio
    async def test_none_compensation_data_is_skipped(self, engine, recorder):
        """Test StepResponse(output, None): nothing to undo."""
        undone = []

        @step("noop")
        async def noop(data, ctx):
            return StepResponse("existing", None)

        @noop.compensation
        async def undo(data, ctx):
            undone.append(data)

        workflow = WorkflowDefinition(
            name="noop-wf", steps=[noop, recorder.step("fail", fail=RuntimeError("x"))]
        )
        result = await engine.execute_workflow(workflow)

        assert undone == []
        assert result.record.step_result("noop").skip_reason == "no compensation data"

    @pytest.mark.asyncio
    async def test_compensation_receives_compensation_data(self, engine):
        """Test that compensation gets the captured data, not the output."""
        received = []

        @step("create")
        async def create(data, ctx):
            return StepResponse({"id": "r1", "name": "row"}, "r1")

        @create.compensation
        async def delete(row_id, ctx):
            received.append(row_id)

        @step("explode")
        async def explode(data, ctx):
            raise RuntimeError("x")

        await engine.execute_workflow(WorkflowDefinition(name="w", steps=[create, explode]))
        assert received == ["r1"]

    @pytest.mark.asyncio
    async def test_default_compensation_data_is_output(self, engine):
        """Test that plain return values are handed to the compensation."""
        received = []
        first = create_step("first", lambda d, ctx: {"id": 7}, lambda d, ctx: received.append(d))
        boom = create_step("boom", lambda d, ctx: 1 / 0)

        await engine.execute_workflow(WorkflowDefinition(name="w", steps=[first, boom]))
        assert received == [{"id": 7}]

    @pytest.mark.asyncio
    async def test_unwrap_raises_primary_error(self, engine, recorder):
        """Test ExecutionResult.unwrap."""
        workflow = three_step_workflow(recorder, c=recorder.step("c", fail=RuntimeError("x")))
        result = await engine.execute_workflow(workflow)
        with pytest.raises(StepForwardError):
            result.unwrap()

    @pytest.mark.asyncio
    async def test_result_to_dict(self, engine, recorder):
        """Test the reporting form of a dirty result."""
        workflow = three_step_workflow(
            recorder,
            a=recorder.step("a", compensate_fail=RuntimeError("stuck")),
            b=recorder.step("b", fail=RuntimeError("x")),
        )
        data = (await engine.execute_workflow(workflow)).to_dict()
        assert data["status"] == "failed_dirty"
        assert data["error"]["code"] == "STEP_FAILED"
        assert data["compensation_errors"][0]["code"] == "COMPENSATION_FAILED"
        assert [s["status"] for s in data["steps"]] == ["compensation_failed", "failed"]

    @pytest.mark.asyncio
    async def test_unwind_is_logged(self, engine, recorder, log_output):
        """Test the log trail of an unwind."""
        workflow = three_step_workflow(recorder, c=recorder.step("c", fail=RuntimeError("x")))
        await engine.execute_workflow(workflow)

        trail = events(log_output)
        assert trail[0] == "workflow_started"
        assert "workflow_unwinding" in trail
        assert trail.count("compensation_succeeded") == 2
        assert trail[-1] == "workflow_failed"


class TestWiringAndInput:
    """Tests for wiring errors, resolution errors and input validation."""

    @pytest.mark.asyncio
    async def test_wiring_to_unrun_step_fails_at_reader(self, engine, recorder):
        """Test that referencing a later step is a forward error."""
        workflow = (
            WorkflowDefinition(name="bad-wire")
            .then(recorder.step("a"))
            .then(recorder.step("b"), wire=lambda s: s.output("c"))
            .then(recorder.step("c"))
        )
        result = await engine.execute_workflow(workflow)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert result.error.code == "WIRING_INVALID"
        assert result.error.step_id == "b"
        assert recorder.forwards == ["a"]
        assert recorder.compensations == ["a"]

    @pytest.mark.asyncio
    async def test_resolution_failure_unwinds(self, engine, recorder):
        """Test that an unresolvable collaborator behaves like a forward error."""

        @step("needs-pricing")
        async def needs_pricing(data, ctx):
            ctx.resolve("pricing")

        workflow = WorkflowDefinition(name="w", steps=[recorder.step("a"), needs_pricing])
        result = await engine.execute_workflow(workflow)

        assert isinstance(result.error, ResolutionError)
        assert result.error.step_id == "needs-pricing"
        assert recorder.compensations == ["a"]

    @pytest.mark.asyncio
    async def test_input_model_validates(self, engine):
        """Test that the input model coerces the workflow input."""

        class Order(BaseModel):
            quantity: int

        seen = []
        workflow = WorkflowDefinition(
            name="typed",
            input_model=Order,
            steps=[create_step("s", lambda d, ctx: seen.append(d))],
        )
        result = await engine.execute_workflow(workflow, {"quantity": "3"})

        assert result.succeeded
        assert seen == [Order(quantity=3)]

    @pytest.mark.asyncio
    async def test_invalid_input_runs_nothing(self, engine, recorder):
        """Test INPUT_INVALID before any step runs."""

        class Order(BaseModel):
            quantity: int

        workflow = WorkflowDefinition(name="typed", input_model=Order, steps=[recorder.step("a")])
        result = await engine.execute_workflow(workflow, {"quantity": "many"})

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert result.error.code == "INPUT_INVALID"
        assert recorder.calls == []
        assert result.record.input == {"quantity": "many"}

    @pytest.mark.asyncio
    async def test_result_function_error_unwinds_everything(self, engine, recorder):
        """Test that a failing result function compensates all steps."""
        workflow = three_step_workflow(recorder).returns(lambda s: s.output("nope"))
        result = await engine.execute_workflow(workflow)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert result.error.code == "WIRING_INVALID"
        assert result.error.step_id == "result"
        assert recorder.compensations == ["c", "b", "a"]

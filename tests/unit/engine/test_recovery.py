"""Unit tests for run-state persistence and crash recovery."""

import json
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from saga_core.config import ExecutionConfig, SagaConfig
from saga_core.engine import ExecutionRecord, WorkflowEngine
from saga_core.errors import CancellationError, SagaError, StepForwardError, create_error
from saga_core.store import MemoryRunStateStore, RunStateStore, SQLiteRunStateStore
from saga_core.types import ExecutionStatus, RecoveryMode, StepStatus
from saga_core.workflow import WorkflowDefinition, create_step


class Crash(BaseException):
    """Stands in for the process dying."""


class CrashingStore(RunStateStore):
    """Dies on the n-th save. ``inner`` holds what was saved before that."""

    def __init__(self, inner: RunStateStore, crash_on: int):
        self.inner = inner
        self.crash_on = crash_on
        self.saves = 0

    async def save(self, execution_id, record):
        self.saves += 1
        if self.saves == self.crash_on:
            raise Crash()
        await self.inner.save(execution_id, record)

    async def load(self, execution_id):
        return await self.inner.load(execution_id)

    async def delete(self, execution_id):
        return await self.inner.delete(execution_id)

    async def list_ids(self, status=None):
        return await self.inner.list_ids(status)


class RecordingStore(MemoryRunStateStore):
    """Memory store keeping every saved status."""

    def __init__(self):
        super().__init__()
        self.history: list[tuple[str, int, int]] = []

    async def save(self, execution_id, record):
        entry = (record.status.value, record.current_step, len(record.compensation_log))
        self.history.append(entry)
        await super().save(execution_id, record)


class BrokenStore(MemoryRunStateStore):
    """Memory store whose writes always fail."""

    async def save(self, execution_id, record):
        raise create_error("STORE_FAILED", operation="save", execution_id=execution_id)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def durable_store(request) -> AsyncIterator[RunStateStore]:
    """Run each test against both stores; SQLite round-trips records through JSON."""
    store = MemoryRunStateStore() if request.param == "memory" else SQLiteRunStateStore(":memory:")
    yield store
    await store.close()


async def crash_run(make_engine, durable_store, workflow, crash_on: int, data=None) -> None:
    """Run ``workflow`` (a definition or a registered name) until save ``crash_on`` dies."""
    engine = make_engine(store=CrashingStore(durable_store, crash_on))
    with pytest.raises(Crash):
        if isinstance(workflow, str):
            await engine.invoke(workflow, data, execution_id="e1")
        else:
            await engine.execute_workflow(workflow, data, execution_id="e1")


def three_steps(recorder, **overrides) -> WorkflowDefinition:
    steps = {name: recorder.step(name) for name in ("a", "b", "c")}
    steps.update(overrides)
    return WorkflowDefinition(name="w", steps=list(steps.values()))


class TestPersistence:
    """Tests for what the engine writes to the store."""

    @pytest.mark.asyncio
    async def test_progress_saved_after_each_step(self, make_engine, recorder):
        """Test that each forward success is saved with its log entry."""
        store = RecordingStore()
        engine = make_engine(store=store)

        result = await engine.execute_workflow(three_steps(recorder), execution_id="e1")

        assert result.succeeded
        assert store.history == [
            ("running", 0, 0),
            ("running", 1, 1),
            ("running", 2, 2),
            ("running", 3, 3),
        ]

    @pytest.mark.asyncio
    async def test_succeeded_record_deleted(self, make_engine, durable_store, recorder):
        engine = make_engine(store=durable_store)
        await engine.execute_workflow(three_steps(recorder), execution_id="e1")

        assert await durable_store.load("e1") is None

    @pytest.mark.asyncio
    async def test_succeeded_record_retained(self, make_engine, durable_store, recorder):
        """Test execution.retain_succeeded keeps the terminal record."""
        config = SagaConfig(execution=ExecutionConfig(retain_succeeded=True))
        engine = make_engine(store=durable_store, config=config)

        await engine.execute_workflow(three_steps(recorder), execution_id="e1")

        record = await durable_store.load("e1")
        assert record.status == ExecutionStatus.SUCCEEDED
        assert len(record.compensation_log) == 0
        assert record.output == "c-out"

    @pytest.mark.asyncio
    async def test_failed_record_kept_with_errors(self, make_engine, durable_store, recorder):
        engine = make_engine(store=durable_store)
        workflow = three_steps(
            recorder,
            b=recorder.step("b", compensate_fail=RuntimeError("gone")),
            c=recorder.step("c", fail=RuntimeError("boom")),
        )

        await engine.execute_workflow(workflow, execution_id="e1")

        record = await durable_store.load("e1")
        assert record.status == ExecutionStatus.FAILED_DIRTY
        assert record.failed_step == "c"
        assert record.error.code == "STEP_FAILED"
        assert [e.step_id for e in record.compensation_errors] == ["b"]
        assert [e.step_id for e in record.failed_compensations] == ["b"]
        assert len(record.compensation_log) == 0

    @pytest.mark.asyncio
    async def test_persist_runs_disabled(self, make_engine, recorder):
        store = RecordingStore()
        config = SagaConfig(execution=ExecutionConfig(persist_runs=False))
        engine = make_engine(store=store, config=config)

        await engine.execute_workflow(
            three_steps(recorder, c=recorder.step("c", fail=RuntimeError()))
        )

        assert store.history == []

    @pytest.mark.asyncio
    async def test_store_failure_does_not_change_outcome(self, make_engine, recorder, log_output):
        """Test that store errors are logged and the invocation carries on."""
        engine = make_engine(store=BrokenStore())

        result = await engine.execute_workflow(three_steps(recorder))

        assert result.succeeded
        assert recorder.forwards == ["a", "b", "c"]
        events = [json.loads(line).get("event") for line in log_output.getvalue().splitlines()]
        assert "store_failed" in events

    @pytest.mark.asyncio
    async def test_store_failure_without_logger(self, registry, container, recorder, caplog):
        engine = WorkflowEngine(registry, container, store=BrokenStore())
        result = await engine.execute_workflow(three_steps(recorder))

        assert result.succeeded
        assert "Run-state store save failed" in caplog.text


class TestRecover:
    """Tests for WorkflowEngine.recover."""

    @pytest.mark.asyncio
    async def test_unwind_after_crash(self, make_engine, durable_store, registry, recorder):
        """Test that a crashed invocation is unwound from its persisted log."""
        workflow = three_steps(recorder)
        registry.register(workflow)

        # Saves: start, after a, after b, after c (dies here)
        await crash_run(make_engine, durable_store, workflow, crash_on=4)

        persisted = await durable_store.load("e1")
        assert persisted.status == ExecutionStatus.RUNNING
        assert persisted.current_step == 2

        recorder.calls.clear()
        result = await make_engine(store=durable_store).recover("e1", RecoveryMode.UNWIND)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert isinstance(result.error, CancellationError)
        assert "recovery" in result.error.detail
        assert recorder.compensations == ["b", "a"]
        assert (await durable_store.load("e1")).status == ExecutionStatus.FAILED_CLEAN

    @pytest.mark.asyncio
    async def test_resume_after_crash(self, make_engine, durable_store, registry, recorder):
        """Test that resume re-runs the first step without a persisted success."""
        workflow = three_steps(recorder)
        registry.register(workflow)
        await crash_run(make_engine, durable_store, workflow, crash_on=4)

        recorder.calls.clear()
        result = await make_engine(store=durable_store).recover("e1", RecoveryMode.RESUME)

        assert result.succeeded
        assert result.output == "c-out"
        assert recorder.forwards == ["c"]
        assert await durable_store.load("e1") is None

    @pytest.mark.asyncio
    async def test_resume_failure_unwinds_persisted_entries(
        self, make_engine, durable_store, registry, recorder
    ):
        registry.register(three_steps(recorder, c=recorder.step("c", fail=RuntimeError("down"))))
        await crash_run(make_engine, durable_store, three_steps(recorder), crash_on=4)

        recorder.calls.clear()
        result = await make_engine(store=durable_store).recover("e1", RecoveryMode.RESUME)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert isinstance(result.error, StepForwardError)
        assert recorder.compensations == ["b", "a"]

    @pytest.mark.asyncio
    async def test_crash_during_unwind_continues_unwind(
        self, make_engine, durable_store, registry, recorder
    ):
        """Test that a record caught mid-unwind is unwound, even in resume mode."""
        workflow = three_steps(recorder, c=recorder.step("c", fail=RuntimeError("boom")))
        registry.register(workflow)

        # Saves: start, after a, after b, unwinding, after compensating b (dies)
        await crash_run(make_engine, durable_store, workflow, crash_on=5)
        assert (await durable_store.load("e1")).status == ExecutionStatus.UNWINDING

        recorder.calls.clear()
        result = await make_engine(store=durable_store).recover("e1", RecoveryMode.RESUME)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        # The interrupted compensation runs again
        assert recorder.compensations == ["b", "a"]
        assert result.error.code == "STEP_FAILED"
        assert result.error.step_id == "c"

    @pytest.mark.asyncio
    async def test_recover_logs_event(self, make_engine, registry, recorder, log_output):
        registry.register(three_steps(recorder))
        store = MemoryRunStateStore()
        await store.save(
            "e1",
            ExecutionRecord(
                execution_id="e1",
                workflow_id="w",
                workflow_version="1.0",
                status=ExecutionStatus.RUNNING,
            ),
        )

        await make_engine(store=store).recover("e1")

        events = [json.loads(line) for line in log_output.getvalue().splitlines()]
        recovered = [e for e in events if e.get("event") == "workflow_recovered"]
        assert len(recovered) == 1

    @pytest.mark.asyncio
    async def test_terminal_record_rejected(self, make_engine, memory_store, recorder, registry):
        registry.register(three_steps(recorder, c=recorder.step("c", fail=RuntimeError())))
        engine = make_engine(store=memory_store)
        await engine.invoke("w", execution_id="e1")

        with pytest.raises(SagaError) as exc_info:
            await engine.recover("e1")

        assert exc_info.value.code == "RECOVERY_INVALID"
        assert "failed_clean" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_recover_unknown_execution(self, make_engine, memory_store):
        with pytest.raises(SagaError) as exc_info:
            await make_engine(store=memory_store).recover("missing")

        assert exc_info.value.code == "EXECUTION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_recover_without_store(self, engine):
        with pytest.raises(SagaError) as exc_info:
            await engine.recover("e1")

        assert exc_info.value.code == "EXECUTION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_resume_rejects_changed_workflow(self, make_engine, registry, recorder):
        registry.register(
            WorkflowDefinition(name="w", version="2.0", steps=[recorder.step("a")])
        )
        store = MemoryRunStateStore()
        await store.save(
            "e1",
            ExecutionRecord(
                execution_id="e1",
                workflow_id="w",
                workflow_version="1.0",
                status=ExecutionStatus.RUNNING,
            ),
        )

        with pytest.raises(SagaError) as exc_info:
            await make_engine(store=store).recover("e1", RecoveryMode.RESUME)

        assert exc_info.value.code == "RECOVERY_INVALID"
        assert "2.0" in exc_info.value.detail
        assert recorder.forwards == []


class TestRetryCompensations:
    """Tests for WorkflowEngine.retry_compensations."""

    @pytest.mark.asyncio
    async def test_retry_makes_dirty_run_clean(
        self, make_engine, durable_store, registry, recorder
    ):
        attempts = {"b": 0}

        async def forward(data, ctx):
            return "b-out"

        async def flaky_undo(data, ctx):
            attempts["b"] += 1
            if attempts["b"] == 1:
                raise ConnectionError("pricing unavailable")

        workflow = WorkflowDefinition(
            name="w",
            steps=[
                recorder.step("a"),
                create_step("b", forward, flaky_undo),
                recorder.step("c", fail=RuntimeError("boom")),
            ],
        )
        registry.register(workflow)
        engine = make_engine(store=durable_store)

        first = await engine.invoke("w", execution_id="e1")
        assert first.status == ExecutionStatus.FAILED_DIRTY
        assert recorder.compensations == ["a"]

        retried = await engine.retry_compensations("e1")

        assert retried.status == ExecutionStatus.FAILED_CLEAN
        assert retried.compensation_errors == []
        assert attempts["b"] == 2
        # Only the failed compensation is retried
        assert recorder.compensations == ["a"]
        assert retried.record.step_result("b").status == StepStatus.COMPENSATED
        assert retried.error.code == "STEP_FAILED"
        assert (await durable_store.load("e1")).status == ExecutionStatus.FAILED_CLEAN

    @pytest.mark.asyncio
    async def test_retry_still_failing(self, make_engine, durable_store, registry, recorder):
        workflow = three_steps(
            recorder,
            a=recorder.step("a", compensate_fail=RuntimeError("a gone")),
            b=recorder.step("b", compensate_fail=RuntimeError("b gone")),
            c=recorder.step("c", fail=RuntimeError("boom")),
        )
        registry.register(workflow)
        engine = make_engine(store=durable_store)
        await engine.invoke("w", execution_id="e1")

        recorder.calls.clear()
        retried = await engine.retry_compensations("e1")

        assert retried.status == ExecutionStatus.FAILED_DIRTY
        assert recorder.compensations == ["b", "a"]
        assert [e.step_id for e in retried.compensation_errors] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_retry_requires_dirty_run(self, make_engine, memory_store, registry, recorder):
        registry.register(three_steps(recorder, c=recorder.step("c", fail=RuntimeError())))
        engine = make_engine(store=memory_store)
        await engine.invoke("w", execution_id="e1")

        with pytest.raises(SagaError) as exc_info:
            await engine.retry_compensations("e1")

        assert exc_info.value.code == "RECOVERY_INVALID"


class TestCommerceRecovery:
    """Recovery of the commerce workflows, with outputs read back from the store."""

    PUBLISH = {"variant_id": "v1", "product_id": "p1", "amount": 1999, "quantity": 2}

    @pytest.mark.asyncio
    async def test_resume_publish_variant_price(self, make_engine, durable_store, commerce):
        """The link step reads the stored price record to finish the run."""
        # Saves: start, after reserve, after price, after link (dies here)
        await crash_run(
            make_engine, durable_store, "publish-variant-price", crash_on=4, data=self.PUBLISH
        )
        assert (await durable_store.load("e1")).current_step == 2

        result = await make_engine(store=durable_store).recover("e1", RecoveryMode.RESUME)

        assert result.succeeded
        price_set = commerce.price_sets[result.output["price_set_id"]]
        assert price_set.amount == 1999
        assert commerce.reservations[result.output["reservation_id"]] == ("v1", 2)
        assert len(commerce.links) == 1
        assert await durable_store.load("e1") is None

    @pytest.mark.asyncio
    async def test_resume_add_line_item(self, make_engine, durable_store, commerce):
        """The price step rebuilds the variant from its stored output."""
        # Saves: start, after load-variant, after derive-unit-price (dies here)
        await crash_run(
            make_engine,
            durable_store,
            "add-line-item",
            crash_on=3,
            data={"variant_id": "v1", "quantity": 2, "cart_id": "cart-1"},
        )

        result = await make_engine(store=durable_store).recover("e1", RecoveryMode.RESUME)

        assert result.succeeded
        assert result.output["unit_price"] == 2500
        assert result.output["quantity"] == 2
        assert len(commerce.line_items) == 1

    @pytest.mark.asyncio
    async def test_unwind_publish_variant_price(self, make_engine, durable_store, commerce):
        """Dying as the unwind starts leaves a log that recovery replays in reverse."""
        data = {**self.PUBLISH, "product_id": "missing"}
        # Saves: start, after reserve, after price, unwinding (dies here)
        await crash_run(
            make_engine, durable_store, "publish-variant-price", crash_on=4, data=data
        )
        assert commerce.journal[-1][0] == "create_price_set"

        result = await make_engine(store=durable_store).recover("e1", RecoveryMode.UNWIND)

        assert result.status == ExecutionStatus.FAILED_CLEAN
        assert [op for op, _ in commerce.journal] == [
            "reserve",
            "create_price_set",
            "delete_price_sets",
            "release",
        ]
        assert commerce.reservations == {}
        assert list(commerce.price_sets) == ["pset_0001"]

    @pytest.mark.asyncio
    async def test_retry_failed_price_deletion(self, make_engine, durable_store, commerce):
        engine = make_engine(store=durable_store)
        delete = commerce.delete_price_sets
        commerce.delete_price_sets = AsyncMock(side_effect=ConnectionError("pricing down"))

        first = await engine.invoke(
            "publish-variant-price", {**self.PUBLISH, "product_id": "missing"}, execution_id="e1"
        )
        assert first.status == ExecutionStatus.FAILED_DIRTY
        assert len(commerce.price_sets) == 2

        commerce.delete_price_sets = delete
        retried = await engine.retry_compensations("e1")

        assert retried.status == ExecutionStatus.FAILED_CLEAN
        assert list(commerce.price_sets) == ["pset_0001"]
        assert commerce.reservations == {}

"""Workflow engine: runs steps in order and unwinds compensations on failure."""

import asyncio
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from saga_core.config import SagaConfig
from saga_core.container import ServiceContainer
from saga_core.errors import ErrorFactory, SagaError, create_error, get_error_factory
from saga_core.logging import SagaLogger, WorkflowLogger
from saga_core.telemetry import (
    instrument_compensation,
    instrument_step,
    instrument_workflow,
    record_outcome,
)
from saga_core.types import ExecutionStatus, RecoveryMode, StepStatus
from saga_core.workflow import StepResponse, WiringScope, WorkflowDefinition, WorkflowRegistry
from saga_core.workflow.types import WorkflowNode

from .types import (
    CompensationEntry,
    ExecutionContext,
    ExecutionRecord,
    ExecutionResult,
    StepResult,
    generate_execution_id,
)

if TYPE_CHECKING:
    from saga_core.store import RunStateStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Invocation:
    """Engine-private state of one running invocation."""

    workflow: WorkflowDefinition
    record: ExecutionRecord
    context: ExecutionContext
    log: WorkflowLogger | None
    started_at: datetime
    started: float
    # Cancellation requests absorbed while finishing the invocation
    cancellations: int = 0

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


@dataclass
class _StepOutcome:
    node: WorkflowNode
    result: StepResult
    response: StepResponse | None = None
    error: SagaError | None = None


class WorkflowEngine:
    """
    Execute workflow definitions as sagas.

    Core execution loop:
    1. Validate the input against the workflow's input model
    2. For each step in declaration order:
       a. Wire the step input from the workflow input and prior outputs
       b. Run the forward action
       c. On success, append its compensation entry to the log
    3. On the first failure, pop and run compensations newest-first.
       A failing compensation is recorded and the unwind carries on.
    4. Return succeeded, failed_clean or failed_dirty
    """

    def __init__(
        self,
        registry: WorkflowRegistry,
        container: ServiceContainer,
        logger: SagaLogger | None = None,
        store: "RunStateStore | None" = None,
        config: SagaConfig | None = None,
        error_factory: ErrorFactory | None = None,
    ):
        """Initialize workflow engine.

        Args:
            registry: Registry for fetching workflows by name
            container: Collaborators handed to steps through the context
            logger: Optional logger
            store: Optional durable run-state store
            config: Saga configuration (execution + collaborator settings)
            error_factory: Optional error factory
        """
        self._registry = registry
        self._container = container
        self._logger = logger
        self._store = store
        self._config = config or SagaConfig()
        self._error_factory = error_factory or get_error_factory()

    @property
    def store(self) -> "RunStateStore | None":
        return self._store

    async def invoke(
        self,
        workflow_name: str,
        input: Any = None,
        *,
        execution_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> ExecutionResult:
        """
        Run a registered workflow.

        Args:
            workflow_name: Name of workflow to run
            input: Workflow input
            execution_id: Optional caller-chosen invocation id
            metadata: Request-scoped values exposed as ``ctx.metadata``
            timeout_seconds: Deadline override for this invocation

        Returns:
            ExecutionResult; step failures never raise

        Raises:
            SagaError(WORKFLOW_NOT_FOUND) if workflow doesn't exist
        """
        workflow = self._registry.get_or_raise(workflow_name)
        return await self.execute_workflow(
            workflow,
            input,
            execution_id=execution_id,
            metadata=metadata,
            timeout_seconds=timeout_seconds,
        )

    async def execute_workflow(
        self,
        workflow: WorkflowDefinition,
        input: Any = None,
        *,
        execution_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> ExecutionResult:
        """
        Run a workflow definition directly, without registry lookup.

        Args:
            workflow: Workflow definition
            input: Workflow input

        Returns:
            ExecutionResult
        """
        record = ExecutionRecord(
            execution_id=execution_id or generate_execution_id(),
            workflow_id=workflow.name,
            workflow_version=workflow.version,
            input=input,
            metadata=dict(metadata or {}),
        )
        if timeout_seconds is None:
            timeout_seconds = self._config.execution.timeout_seconds
        return await self._run(workflow, record, timeout_seconds=timeout_seconds)

    async def recover(
        self,
        execution_id: str,
        mode: RecoveryMode = RecoveryMode.UNWIND,
        *,
        timeout_seconds: float | None = None,
    ) -> ExecutionResult:
        """
        Bring a persisted, interrupted invocation to a terminal state.

        ``UNWIND`` compensates everything in the persisted log. ``RESUME``
        continues forward from the first step without a persisted success;
        that step runs again, so it must tolerate re-execution. A record
        that was already unwinding is always unwound.

        Raises:
            SagaError(EXECUTION_NOT_FOUND) if nothing is persisted under the id
            SagaError(RECOVERY_INVALID) if the invocation already terminated
        """
        record = await self._load(execution_id)
        if record.status.is_terminal:
            raise create_error(
                "RECOVERY_INVALID",
                execution_id=execution_id,
                status=record.status.value,
            )

        workflow = self._registry.get_or_raise(record.workflow_id)

        if mode == RecoveryMode.RESUME and record.status != ExecutionStatus.UNWINDING:
            if workflow.version != record.workflow_version:
                raise create_error(
                    "RECOVERY_INVALID",
                    execution_id=execution_id,
                    detail=(
                        f"Workflow '{workflow.name}' changed from version "
                        f"{record.workflow_version} to {workflow.version}"
                    ),
                )
            result = await self._run(workflow, record, timeout_seconds=timeout_seconds)
        else:
            error = record.error or create_error(
                "EXECUTION_CANCELLED",
                execution_id=execution_id,
                workflow_id=record.workflow_id,
                detail="Interrupted invocation unwound during recovery",
            )
            result = await self._run(workflow, record, unwind_error=error)

        if self._logger:
            self._logger.workflow(workflow.name, execution_id).recovered(
                mode.value, result.status.value
            )
        return result

    async def retry_compensations(self, execution_id: str) -> ExecutionResult:
        """
        Re-run the compensations that failed in a failed_dirty invocation.

        Retried newest-first. If all succeed the invocation becomes
        failed_clean; the ones that fail again stay recorded.

        Raises:
            SagaError(EXECUTION_NOT_FOUND) if nothing is persisted under the id
            SagaError(RECOVERY_INVALID) if the invocation is not failed_dirty
        """
        record = await self._load(execution_id)
        if record.status != ExecutionStatus.FAILED_DIRTY:
            raise create_error(
                "RECOVERY_INVALID",
                execution_id=execution_id,
                status=record.status.value,
            )

        workflow = self._registry.get_or_raise(record.workflow_id)
        inv = self._open(workflow, record)

        pending = sorted(record.failed_compensations, key=lambda e: e.sequence, reverse=True)
        record.failed_compensations = []
        record.compensation_errors = []

        async def retry() -> ExecutionResult:
            for entry in pending:
                await self._compensate(inv, entry)
                await self._persist(inv)
            dirty = bool(record.compensation_errors)
            record.status = ExecutionStatus.FAILED_DIRTY if dirty else ExecutionStatus.FAILED_CLEAN
            await self._persist(inv)
            if inv.log and record.error is not None:
                inv.log.failed(
                    record.error,
                    inv.elapsed_ms(),
                    dirty=dirty,
                    compensation_errors=len(record.compensation_errors),
                )
            return self._result(inv)

        result = await self._shielded(inv, retry())
        self._uncancel(inv)
        return result

    # Invocation lifecycle

    def _open(self, workflow: WorkflowDefinition, record: ExecutionRecord) -> _Invocation:
        context = ExecutionContext(
            execution_id=record.execution_id,
            workflow_id=workflow.name,
            container=self._container,
            config=self._config.collaborators,
            metadata=record.metadata,
        )
        return _Invocation(
            workflow=workflow,
            record=record,
            context=context,
            log=self._logger.workflow(workflow.name, record.execution_id) if self._logger else None,
            started_at=datetime.now(UTC),
            started=time.perf_counter(),
        )

    async def _run(
        self,
        workflow: WorkflowDefinition,
        record: ExecutionRecord,
        *,
        timeout_seconds: float | None = None,
        unwind_error: SagaError | None = None,
    ) -> ExecutionResult:
        inv = self._open(workflow, record)

        async with instrument_workflow(workflow.name, record.execution_id) as outcome:
            if inv.log:
                inv.log.started(workflow.version, len(workflow.steps))

            error = unwind_error
            if error is None:
                try:
                    error = await self._run_forward(inv, timeout_seconds)
                except asyncio.CancelledError:
                    # Cancelled outside a step (e.g. while persisting)
                    inv.cancellations += 1
                    error = self._cancelled(inv)

            # Unwinding and the final bookkeeping must not be interrupted
            result = await self._shielded(inv, self._finish(inv, error))
            record_outcome(
                outcome,
                result.status.value,
                result.error.code if result.error else None,
            )

        self._uncancel(inv)
        return result

    async def _run_forward(
        self,
        inv: _Invocation,
        timeout_seconds: float | None,
    ) -> SagaError | None:
        """Run steps from ``record.current_step``. Returns the primary error, if any."""
        workflow = inv.workflow
        record = inv.record

        try:
            step_input = self._validate_input(workflow, record)
        except SagaError as e:
            return e

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds if timeout_seconds else None

        record.status = ExecutionStatus.RUNNING
        await self._persist(inv)

        for index in range(record.current_step, len(workflow.steps)):
            node = workflow.steps[index]
            if deadline is not None and loop.time() >= deadline:
                return self._timed_out(inv, timeout_seconds)

            record.current_step = index
            task = asyncio.ensure_future(self._execute_step(inv, node, index, step_input))
            outcome, interrupt = await self._await_step(inv, task, deadline, timeout_seconds)
            record.set_step_result(outcome.result)

            # Exactly one of response and error is set
            response = outcome.response
            if response is None:
                record.failed_step = node.id
                return interrupt or outcome.error

            self._log_compensation(inv, node, response)
            record.current_step = index + 1
            await self._persist(inv)

            if interrupt is not None:
                return interrupt

        try:
            record.output = self._build_result(workflow, step_input, record.outputs)
        except Exception as e:
            return self._error_factory.from_exception(
                e,
                step_id="result",
                workflow_id=workflow.name,
                execution_id=record.execution_id,
            )
        return None

    async def _await_step(
        self,
        inv: _Invocation,
        task: "asyncio.Future[_StepOutcome]",
        deadline: float | None,
        timeout_seconds: float | None,
    ) -> tuple[_StepOutcome, SagaError | None]:
        """Wait for the in-flight step.

        A cancellation or an expired deadline does not abort the step: it is
        left to settle so that a success is logged (and later compensated).
        The second element is the interrupt error, if any.
        """
        interrupt: SagaError | None = None
        try:
            if deadline is None:
                return await asyncio.shield(task), None
            remaining = max(deadline - asyncio.get_running_loop().time(), 0)
            return await asyncio.wait_for(asyncio.shield(task), remaining), None
        except asyncio.CancelledError:
            if task.cancelled():
                raise
            inv.cancellations += 1
            interrupt = self._cancelled(inv)
        except TimeoutError:
            interrupt = self._timed_out(inv, timeout_seconds)

        outcome = await self._shielded(inv, task)
        return outcome, interrupt

    async def _execute_step(
        self,
        inv: _Invocation,
        node: WorkflowNode,
        index: int,
        workflow_input: Any,
    ) -> _StepOutcome:
        """Wire and run one forward action. Never raises for step failures."""
        record = inv.record
        step_log = inv.log.step(node.id) if inv.log else None
        result = StepResult(
            step_id=node.id,
            step_name=node.step.name,
            status=StepStatus.RUNNING,
            started_at=datetime.now(UTC),
        )

        if step_log:
            step_log.started(node.step.name, index)

        inv.context.step_id = node.id
        start = time.perf_counter()
        try:
            async with instrument_step(inv.workflow.name, node.id):
                if node.wire is not None:
                    scope = WiringScope(workflow_input, record.outputs, reader=node.id)
                    step_input = node.wire(scope)
                else:
                    step_input = workflow_input
                response = await node.step.run_forward(step_input, inv.context)
        except Exception as e:
            error = self._error_factory.from_exception(
                e,
                step_id=node.id,
                workflow_id=inv.workflow.name,
                execution_id=record.execution_id,
            )
            result.status = StepStatus.FAILED
            result.error = error
            result.duration_ms = int((time.perf_counter() - start) * 1000)
            if step_log:
                step_log.failed(error)
            return _StepOutcome(node=node, result=result, error=error)

        result.status = StepStatus.SUCCEEDED
        result.output = response.output
        result.duration_ms = int((time.perf_counter() - start) * 1000)
        if step_log:
            step_log.succeeded(result.duration_ms, response.output)
        return _StepOutcome(node=node, result=result, response=response)

    def _log_compensation(
        self,
        inv: _Invocation,
        node: WorkflowNode,
        response: StepResponse,
    ) -> None:
        """Record a forward success: its output and its undo obligation."""
        record = inv.record
        record.outputs[node.id] = response.output
        record.compensation_log.append(
            step_id=node.id,
            step_name=node.step.name,
            data=response.compensation_data,
            compensable=node.step.is_compensable and response.compensation_data is not None,
        )

    async def _finish(self, inv: _Invocation, error: SagaError | None) -> ExecutionResult:
        record = inv.record

        if error is None:
            record.status = ExecutionStatus.SUCCEEDED
            record.compensation_log.clear()
            if inv.log:
                inv.log.succeeded(inv.elapsed_ms(), len(record.steps))
            if self._config.execution.retain_succeeded:
                await self._persist(inv)
            else:
                await self._discard(inv)
        else:
            await self._unwind(inv, error)

        return self._result(inv)

    async def _unwind(self, inv: _Invocation, error: SagaError) -> None:
        record = inv.record
        record.error = error
        record.output = None
        record.status = ExecutionStatus.UNWINDING

        if inv.log:
            inv.log.unwinding(record.failed_step, len(record.compensation_log), error)
        await self._persist(inv)

        # Pop only after the attempt, so a crash mid-compensation retries it
        while (entry := record.compensation_log.peek()) is not None:
            await self._compensate(inv, entry)
            record.compensation_log.pop()
            await self._persist(inv)

        dirty = bool(record.compensation_errors)
        record.status = ExecutionStatus.FAILED_DIRTY if dirty else ExecutionStatus.FAILED_CLEAN
        await self._persist(inv)

        if inv.log:
            inv.log.failed(
                error,
                inv.elapsed_ms(),
                dirty=dirty,
                compensation_errors=len(record.compensation_errors),
            )

    async def _compensate(self, inv: _Invocation, entry: CompensationEntry) -> None:
        """Run one compensation. Failures are recorded, never raised."""
        record = inv.record
        node = inv.workflow.node(entry.step_id)
        step_log = inv.log.step(entry.step_id) if inv.log else None

        step_result = record.step_result(entry.step_id)
        if step_result is None:
            step_result = StepResult(
                step_id=entry.step_id,
                step_name=entry.step_name,
                status=StepStatus.SUCCEEDED,
            )
            record.set_step_result(step_result)

        if not entry.compensable:
            reason = (
                "step has no compensation"
                if node is None or not node.step.is_compensable
                else "no compensation data"
            )
            step_result.status = StepStatus.SKIPPED
            step_result.skip_reason = reason
            if step_log:
                step_log.compensation_skipped(reason)
            return

        if node is None or node.step.compensate is None:
            missing = LookupError(
                f"Step '{entry.step_id}' has no compensation in workflow "
                f"'{inv.workflow.name}' v{inv.workflow.version}"
            )
            self._compensation_failed(inv, entry, step_result, missing)
            return

        if step_log:
            step_log.compensating(entry.sequence)

        inv.context.step_id = entry.step_id
        start = time.perf_counter()
        try:
            async with instrument_compensation(inv.workflow.name, entry.step_id):
                await node.step.run_compensation(entry.data, inv.context)
        except Exception as e:
            self._compensation_failed(inv, entry, step_result, e)
            return

        step_result.status = StepStatus.COMPENSATED
        step_result.compensation_error = None
        if step_log:
            step_log.compensated(int((time.perf_counter() - start) * 1000))

    def _compensation_failed(
        self,
        inv: _Invocation,
        entry: CompensationEntry,
        step_result: StepResult,
        cause: Exception,
    ) -> None:
        record = inv.record
        error = self._error_factory.from_compensation(
            cause,
            step_id=entry.step_id,
            workflow_id=inv.workflow.name,
            execution_id=record.execution_id,
        )
        record.compensation_errors.append(error)
        record.failed_compensations.append(entry)
        step_result.status = StepStatus.COMPENSATION_FAILED
        step_result.compensation_error = error
        if inv.log:
            inv.log.step(entry.step_id).compensation_failed(error)

    def _result(self, inv: _Invocation) -> ExecutionResult:
        record = inv.record
        return ExecutionResult(
            execution_id=record.execution_id,
            workflow_id=record.workflow_id,
            status=record.status,
            output=record.output if record.status == ExecutionStatus.SUCCEEDED else None,
            error=record.error,
            compensation_errors=list(record.compensation_errors),
            steps=list(record.steps),
            started_at=inv.started_at,
            completed_at=datetime.now(UTC),
            duration_ms=inv.elapsed_ms(),
            record=record,
        )

    # Helpers

    def _validate_input(self, workflow: WorkflowDefinition, record: ExecutionRecord) -> Any:
        model = workflow.input_model
        if model is None or isinstance(record.input, model):
            return record.input
        try:
            return model.model_validate(record.input)
        except ValidationError as e:
            raise create_error(
                "INPUT_INVALID",
                workflow_id=workflow.name,
                execution_id=record.execution_id,
                detail=str(e),
            ) from e

    def _build_result(
        self,
        workflow: WorkflowDefinition,
        workflow_input: Any,
        outputs: dict[str, Any],
    ) -> Any:
        if workflow.result is not None:
            return workflow.result(WiringScope(workflow_input, outputs))
        if workflow.steps:
            return outputs.get(workflow.steps[-1].id)
        return None

    def _cancelled(self, inv: _Invocation) -> SagaError:
        return create_error(
            "EXECUTION_CANCELLED",
            execution_id=inv.record.execution_id,
            workflow_id=inv.workflow.name,
        )

    def _timed_out(self, inv: _Invocation, timeout_seconds: float | None) -> SagaError:
        return create_error(
            "EXECUTION_TIMEOUT",
            timeout_seconds=timeout_seconds,
            execution_id=inv.record.execution_id,
            workflow_id=inv.workflow.name,
        )

    async def _shielded(self, inv: _Invocation, aw: "Awaitable[T]") -> T:
        """Await ``aw`` to completion, absorbing cancellation of the caller."""
        task = asyncio.ensure_future(aw)
        while True:
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                if task.cancelled():
                    raise
                inv.cancellations += 1

    def _uncancel(self, inv: _Invocation) -> None:
        """Withdraw the cancellation requests this invocation absorbed."""
        task = asyncio.current_task()
        if task is None:
            return
        for _ in range(inv.cancellations):
            task.uncancel()

    # Run-state persistence

    def _persisting(self) -> bool:
        return self._store is not None and self._config.execution.persist_runs

    async def _persist(self, inv: _Invocation) -> None:
        if not self._persisting():
            return
        record = inv.record
        record.touch()
        try:
            await self._store.save(record.execution_id, record)  # type: ignore[union-attr]
        except SagaError as e:
            self._store_failed("save", record.execution_id, e)

    async def _discard(self, inv: _Invocation) -> None:
        if not self._persisting():
            return
        try:
            await self._store.delete(inv.record.execution_id)  # type: ignore[union-attr]
        except SagaError as e:
            self._store_failed("delete", inv.record.execution_id, e)

    async def _load(self, execution_id: str) -> ExecutionRecord:
        if self._store is None:
            raise create_error(
                "EXECUTION_NOT_FOUND",
                execution_id=execution_id,
                detail="No run-state store is configured",
            )
        record = await self._store.load(execution_id)
        if record is None:
            raise create_error("EXECUTION_NOT_FOUND", execution_id=execution_id)
        return record

    def _store_failed(self, operation: str, execution_id: str, error: SagaError) -> None:
        # Persistence is best-effort; it never changes the invocation outcome
        if self._logger:
            self._logger.store_error(operation, execution_id, error)
        else:
            logger.warning("Run-state store %s failed for %s: %s", operation, execution_id, error)

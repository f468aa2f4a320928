"""Types for the saga workflow engine."""

import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, TypeVar, overload

from saga_core.container import ServiceContainer
from saga_core.errors import SagaError, error_from_dict
from saga_core.types import ExecutionStatus, StepStatus

T = TypeVar("T")


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class ExecutionContext:
    """Per-invocation handle given to step functions.

    Exposes collaborator resolution and read-only configuration. A step
    must not keep a reference to it after its own execution.
    """

    execution_id: str
    workflow_id: str
    container: ServiceContainer
    config: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    # Step currently executing or being compensated
    step_id: str | None = None

    def __post_init__(self) -> None:
        self.config = MappingProxyType(dict(self.config))
        self.metadata = MappingProxyType(dict(self.metadata))

    @overload
    def resolve(self, name: str) -> Any: ...

    @overload
    def resolve(self, name: str, expected: type[T]) -> T: ...

    def resolve(self, name: str, expected: type[Any] | None = None) -> Any:
        """Resolve a named collaborator. Raises ResolutionError."""
        return self.container.resolve(name, expected)


@dataclass
class StepResult:
    """Result of a single step in one invocation."""

    step_id: str
    step_name: str
    status: StepStatus

    # Timing
    started_at: datetime | None = None
    duration_ms: int | None = None

    output: Any = None

    # Forward failure (status FAILED)
    error: SagaError | None = None
    # Undo failure (status COMPENSATION_FAILED)
    compensation_error: SagaError | None = None
    skip_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_name": self.step_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "duration_ms": self.duration_ms,
            "output": self.output,
            "error": self.error.to_dict() if self.error else None,
            "compensation_error": (
                self.compensation_error.to_dict() if self.compensation_error else None
            ),
            "skip_reason": self.skip_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepResult":
        return cls(
            step_id=data["step_id"],
            step_name=data["step_name"],
            status=StepStatus(data["status"]),
            started_at=_dt(data.get("started_at")),
            duration_ms=data.get("duration_ms"),
            output=data.get("output"),
            error=error_from_dict(data["error"]) if data.get("error") else None,
            compensation_error=(
                error_from_dict(data["compensation_error"])
                if data.get("compensation_error")
                else None
            ),
            skip_reason=data.get("skip_reason"),
        )


@dataclass
class CompensationEntry:
    """One undo obligation, created right after a forward action succeeds."""

    step_id: str
    step_name: str
    data: Any
    sequence: int
    compensable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_name": self.step_name,
            "data": self.data,
            "sequence": self.sequence,
            "compensable": self.compensable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompensationEntry":
        return cls(
            step_id=data["step_id"],
            step_name=data["step_name"],
            data=data.get("data"),
            sequence=data["sequence"],
            compensable=data.get("compensable", True),
        )


class CompensationLog:
    """Ordered undo log of one invocation.

    Entries get increasing sequence numbers and are consumed last-in,
    first-out. Only the engine running the invocation touches it.
    """

    def __init__(self, entries: list[CompensationEntry] | None = None):
        self._entries: list[CompensationEntry] = sorted(entries or [], key=lambda e: e.sequence)
        self._next_sequence = self._entries[-1].sequence + 1 if self._entries else 1

    def append(
        self,
        step_id: str,
        step_name: str,
        data: Any,
        compensable: bool = True,
    ) -> CompensationEntry:
        entry = CompensationEntry(
            step_id=step_id,
            step_name=step_name,
            data=data,
            sequence=self._next_sequence,
            compensable=compensable,
        )
        self._next_sequence += 1
        self._entries.append(entry)
        return entry

    def peek(self) -> CompensationEntry | None:
        """Most recent entry, or None when the log is empty."""
        return self._entries[-1] if self._entries else None

    def pop(self) -> CompensationEntry | None:
        return self._entries.pop() if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> list[CompensationEntry]:
        """Entries in sequence order (oldest first)."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CompensationEntry]:
        return iter(list(self._entries))


@dataclass
class ExecutionRecord:
    """Run state of one invocation.

    This is what a durable store persists: enough to resume forward from
    ``current_step`` or to unwind the compensation log after a crash.
    """

    execution_id: str
    workflow_id: str
    workflow_version: str
    input: Any = None
    status: ExecutionStatus = ExecutionStatus.PENDING

    # Index of the next step to run
    current_step: int = 0
    # Node id -> output, for wiring
    outputs: dict[str, Any] = field(default_factory=dict)
    output: Any = None
    steps: list[StepResult] = field(default_factory=list)

    compensation_log: CompensationLog = field(default_factory=CompensationLog)
    failed_step: str | None = None
    error: SagaError | None = None
    compensation_errors: list[SagaError] = field(default_factory=list)
    # Entries whose compensation failed, kept for retry_compensations()
    failed_compensations: list[CompensationEntry] = field(default_factory=list)

    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        self.updated_at = datetime.now(UTC)

    def step_result(self, step_id: str) -> StepResult | None:
        for result in self.steps:
            if result.step_id == step_id:
                return result
        return None

    def set_step_result(self, result: StepResult) -> None:
        """Add or replace the result for ``result.step_id``."""
        for index, existing in enumerate(self.steps):
            if existing.step_id == result.step_id:
                self.steps[index] = result
                return
        self.steps.append(result)

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "workflow_version": self.workflow_version,
            "input": self.input,
            "status": self.status.value,
            "current_step": self.current_step,
            "outputs": self.outputs,
            "output": self.output,
            "steps": [s.to_dict() for s in self.steps],
            "compensation_log": [e.to_dict() for e in self.compensation_log.entries()],
            "failed_step": self.failed_step,
            "error": self.error.to_dict() if self.error else None,
            "compensation_errors": [e.to_dict() for e in self.compensation_errors],
            "failed_compensations": [e.to_dict() for e in self.failed_compensations],
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionRecord":
        return cls(
            execution_id=data["execution_id"],
            workflow_id=data["workflow_id"],
            workflow_version=data["workflow_version"],
            input=data.get("input"),
            status=ExecutionStatus(data["status"]),
            current_step=data.get("current_step", 0),
            outputs=dict(data.get("outputs") or {}),
            output=data.get("output"),
            steps=[StepResult.from_dict(s) for s in data.get("steps", [])],
            compensation_log=CompensationLog(
                [CompensationEntry.from_dict(e) for e in data.get("compensation_log", [])]
            ),
            failed_step=data.get("failed_step"),
            error=error_from_dict(data["error"]) if data.get("error") else None,
            compensation_errors=[error_from_dict(e) for e in data.get("compensation_errors", [])],
            failed_compensations=[
                CompensationEntry.from_dict(e) for e in data.get("failed_compensations", [])
            ],
            metadata=dict(data.get("metadata") or {}),
            created_at=_dt(data.get("created_at")) or datetime.now(UTC),
            updated_at=_dt(data.get("updated_at")) or datetime.now(UTC),
        )


@dataclass
class ExecutionResult:
    """What the caller sees: succeeded, failed_clean or failed_dirty."""

    # Identity
    execution_id: str
    workflow_id: str

    status: ExecutionStatus

    output: Any = None
    # Primary error (the forward failure, cancellation or timeout)
    error: SagaError | None = None
    compensation_errors: list[SagaError] = field(default_factory=list)

    steps: list[StepResult] = field(default_factory=list)

    # Timing
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None

    record: ExecutionRecord | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCEEDED

    @property
    def failed_clean(self) -> bool:
        return self.status == ExecutionStatus.FAILED_CLEAN

    @property
    def failed_dirty(self) -> bool:
        return self.status == ExecutionStatus.FAILED_DIRTY

    def unwrap(self) -> Any:
        """Return the output, or raise the primary error."""
        if self.succeeded:
            return self.output
        if self.error is not None:
            raise self.error
        raise RuntimeError(f"Execution {self.execution_id} ended in {self.status.value}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reporting."""
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "output": self.output,
            "error": self.error.to_dict() if self.error else None,
            "compensation_errors": [e.to_dict() for e in self.compensation_errors],
            "steps": [s.to_dict() for s in self.steps],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
        }


def generate_execution_id() -> str:
    """Generate a unique execution ID."""
    return f"exec-{uuid.uuid4().hex[:12]}"

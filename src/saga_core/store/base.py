"""Run-state store abstract base class and record codec."""

import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import TypeAdapter

from saga_core.engine.types import ExecutionRecord
from saga_core.errors import SagaError, create_error
from saga_core.types import ExecutionStatus

_json = TypeAdapter(Any)


def encode_record(record: ExecutionRecord) -> str:
    """Serialize a record to JSON.

    Step outputs and compensation data may hold pydantic models, dataclasses
    or datetimes; they are stored in their JSON form.

    Raises:
        SagaError(STORE_FAILED) if a value cannot be serialized
    """
    try:
        return _json.dump_json(record.to_dict()).decode()
    except Exception as e:
        raise store_error("encode", record.execution_id, e) from e


def decode_record(execution_id: str, data: str | bytes) -> ExecutionRecord:
    try:
        return ExecutionRecord.from_dict(json.loads(data))
    except (ValueError, KeyError, TypeError) as e:
        raise store_error("decode", execution_id, e) from e


def store_error(operation: str, execution_id: str, cause: Exception) -> SagaError:
    return create_error(
        "STORE_FAILED",
        operation=operation,
        execution_id=execution_id,
        detail=f"{type(cause).__name__}: {cause}",
    )


class RunStateStore(ABC):
    """Abstract interface for durable run state.

    Implementations:
    - MemoryRunStateStore: In-process, for tests and single-process recovery
    - SQLiteRunStateStore: SQLite file-based persistence
    - RedisRunStateStore: Redis, shared between workers

    All operations raise ``SagaError(STORE_FAILED)`` on backend failure.
    """

    @abstractmethod
    async def save(self, execution_id: str, record: ExecutionRecord) -> None:
        """Save or replace the record of an invocation."""
        ...

    @abstractmethod
    async def load(self, execution_id: str) -> ExecutionRecord | None:
        """Load a record.

        Returns:
            ExecutionRecord if found, None otherwise
        """
        ...

    @abstractmethod
    async def delete(self, execution_id: str) -> bool:
        """Delete a record.

        Returns:
            True if deleted, False if not found
        """
        ...

    @abstractmethod
    async def list_ids(self, status: ExecutionStatus | None = None) -> list[str]:
        """List persisted invocation ids, optionally filtered by status.

        ``list_ids(ExecutionStatus.RUNNING)`` after a restart yields the
        invocations a recovery pass should pick up.
        """
        ...

    async def close(self) -> None:
        """Close any open connections."""
        pass

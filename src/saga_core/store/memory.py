"""In-memory run-state store."""

import asyncio
import copy

from saga_core.engine.types import ExecutionRecord
from saga_core.types import ExecutionStatus

from .base import RunStateStore


class MemoryRunStateStore(RunStateStore):
    """In-memory run-state store.

    Records are snapshotted on save, so later mutation by the engine does
    not leak into what is stored. Data is lost on restart.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}
        self._lock = asyncio.Lock()

    async def save(self, execution_id: str, record: ExecutionRecord) -> None:
        snapshot = copy.deepcopy(record.to_dict())
        async with self._lock:
            self._records[execution_id] = snapshot

    async def load(self, execution_id: str) -> ExecutionRecord | None:
        data = self._records.get(execution_id)
        if data is None:
            return None
        return ExecutionRecord.from_dict(copy.deepcopy(data))

    async def delete(self, execution_id: str) -> bool:
        async with self._lock:
            return self._records.pop(execution_id, None) is not None

    async def list_ids(self, status: ExecutionStatus | None = None) -> list[str]:
        return [
            execution_id
            for execution_id, data in self._records.items()
            if status is None or data["status"] == status.value
        ]

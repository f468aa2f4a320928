"""SQLite-based run-state store."""

import asyncio
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from saga_core.engine.types import ExecutionRecord
from saga_core.types import ExecutionStatus

from .base import RunStateStore, decode_record, encode_record, store_error


class SQLiteRunStateStore(RunStateStore):
    """SQLite-based run-state store.

    One row per invocation; the full record is kept as a JSON document next
    to the columns used for filtering. All access goes through a single
    worker thread.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file (``:memory:`` for tests)
        """
        self._db_path = db_path
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._conn: sqlite3.Connection | None = None

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    def _init_db(self) -> None:
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS runs (
                execution_id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                record TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status);
            CREATE INDEX IF NOT EXISTS idx_runs_workflow ON runs(workflow_id);
        """
        )
        self._conn.commit()

    async def _run(self, operation: str, execution_id: str, fn: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, fn, *args)
        except sqlite3.Error as e:
            raise store_error(operation, execution_id, e) from e

    async def save(self, execution_id: str, record: ExecutionRecord) -> None:
        payload = encode_record(record)
        await self._run("save", execution_id, self._save_sync, execution_id, record, payload)

    def _save_sync(self, execution_id: str, record: ExecutionRecord, payload: str) -> None:
        conn = self._connection()
        conn.execute(
            """
            INSERT OR REPLACE INTO runs (execution_id, workflow_id, status, record, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """,
            (
                execution_id,
                record.workflow_id,
                record.status.value,
                payload,
                record.updated_at.isoformat(),
            ),
        )
        conn.commit()

    async def load(self, execution_id: str) -> ExecutionRecord | None:
        payload = await self._run("load", execution_id, self._load_sync, execution_id)
        if payload is None:
            return None
        return decode_record(execution_id, payload)

    def _load_sync(self, execution_id: str) -> str | None:
        row = (
            self._connection()
            .execute("SELECT record FROM runs WHERE execution_id = ?", (execution_id,))
            .fetchone()
        )
        return row["record"] if row else None

    async def delete(self, execution_id: str) -> bool:
        return await self._run("delete", execution_id, self._delete_sync, execution_id)

    def _delete_sync(self, execution_id: str) -> bool:
        conn = self._connection()
        cursor = conn.execute("DELETE FROM runs WHERE execution_id = ?", (execution_id,))
        conn.commit()
        return cursor.rowcount > 0

    async def list_ids(self, status: ExecutionStatus | None = None) -> list[str]:
        return await self._run("list", "*", self._list_sync, status)

    def _list_sync(self, status: ExecutionStatus | None) -> list[str]:
        conn = self._connection()
        if status is None:
            rows = conn.execute("SELECT execution_id FROM runs ORDER BY updated_at").fetchall()
        else:
            rows = conn.execute(
                "SELECT execution_id FROM runs WHERE status = ? ORDER BY updated_at",
                (status.value,),
            ).fetchall()
        return [row["execution_id"] for row in rows]

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Store is closed")
        return self._conn

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
        self._executor.shutdown(wait=False)

"""Redis-based run-state store.

Layout, for a key prefix ``saga:run``:
- ``saga:run:<execution_id>`` holds the JSON record
- ``saga:run:status:<status>`` is a set of execution ids in that status
"""

import logging
from typing import Any

from saga_core.engine.types import ExecutionRecord
from saga_core.types import ExecutionStatus

from .base import RunStateStore, decode_record, encode_record, store_error

logger = logging.getLogger(__name__)


class RedisRunStateStore(RunStateStore):
    """Redis-based run-state store, shared between worker processes.

    Requires the ``redis`` extra. A pre-built ``redis.asyncio`` client may
    be passed in; otherwise one is created from ``redis_url`` on first use.

    Example:
        store = RedisRunStateStore("redis://localhost:6379/0", ttl_seconds=86400)
        engine = WorkflowEngine(registry, container, store=store)
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "saga:run",
        ttl_seconds: int | None = None,
        client: Any | None = None,
    ):
        """Initialize the Redis run-state store.

        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix for all keys written by this store
            ttl_seconds: Expiry applied to records on every save
            client: Optional ``redis.asyncio.Redis`` instance
        """
        self._redis_url = redis_url
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl_seconds
        self._client = client  # redis.asyncio.Redis

    def _key(self, execution_id: str) -> str:
        return f"{self._key_prefix}:{execution_id}"

    def _status_key(self, status: ExecutionStatus) -> str:
        return f"{self._key_prefix}:status:{status.value}"

    def _connection(self) -> Any:
        if self._client is None:
            import redis.asyncio as redis

            self._client = redis.from_url(self._redis_url, decode_responses=True)
            logger.info("Created Redis run-state client for prefix %s", self._key_prefix)
        return self._client

    async def save(self, execution_id: str, record: ExecutionRecord) -> None:
        payload = encode_record(record)
        client = self._connection()
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._key(execution_id), payload, ex=self._ttl_seconds)
                for status in ExecutionStatus:
                    if status != record.status:
                        pipe.srem(self._status_key(status), execution_id)
                pipe.sadd(self._status_key(record.status), execution_id)
                await pipe.execute()
        except Exception as e:
            raise store_error("save", execution_id, e) from e

    async def load(self, execution_id: str) -> ExecutionRecord | None:
        client = self._connection()
        try:
            payload = await client.get(self._key(execution_id))
        except Exception as e:
            raise store_error("load", execution_id, e) from e
        if payload is None:
            return None
        return decode_record(execution_id, payload)

    async def delete(self, execution_id: str) -> bool:
        client = self._connection()
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.delete(self._key(execution_id))
                for status in ExecutionStatus:
                    pipe.srem(self._status_key(status), execution_id)
                results = await pipe.execute()
        except Exception as e:
            raise store_error("delete", execution_id, e) from e
        return bool(results[0])

    async def list_ids(self, status: ExecutionStatus | None = None) -> list[str]:
        client = self._connection()
        statuses = [status] if status is not None else list(ExecutionStatus)
        ids: list[str] = []
        try:
            for s in statuses:
                members = await client.smembers(self._status_key(s))
                ids.extend(sorted(members))
        except Exception as e:
            raise store_error("list", "*", e) from e
        return ids

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

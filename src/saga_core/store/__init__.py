"""Durable run-state stores for crash recovery."""

from saga_core.config import StoreConfig
from saga_core.errors import create_error
from saga_core.types import StoreBackend

from .base import RunStateStore, decode_record, encode_record
from .memory import MemoryRunStateStore
from .redis import RedisRunStateStore
from .sqlite import SQLiteRunStateStore


def create_store(config: StoreConfig) -> RunStateStore | None:
    """Create the store selected by configuration.

    Args:
        config: Store configuration

    Returns:
        Configured RunStateStore, or None for ``backend: none``

    Raises:
        SagaError(CONFIG_INVALID) if the backend is unknown
    """
    if config.backend == StoreBackend.NONE:
        return None
    if config.backend == StoreBackend.MEMORY:
        return MemoryRunStateStore()
    if config.backend == StoreBackend.SQLITE:
        return SQLiteRunStateStore(db_path=config.sqlite_path)
    if config.backend == StoreBackend.REDIS:
        return RedisRunStateStore(
            redis_url=config.redis_url,
            key_prefix=config.key_prefix,
            ttl_seconds=config.ttl_seconds,
        )
    raise create_error("CONFIG_INVALID", detail=f"Unknown store backend: {config.backend}")


__all__ = [
    "RunStateStore",
    "MemoryRunStateStore",
    "SQLiteRunStateStore",
    "RedisRunStateStore",
    "create_store",
    "encode_record",
    "decode_record",
]

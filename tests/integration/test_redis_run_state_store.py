"""Integration tests for the Redis run-state store.

These tests require a running Redis instance. They are skipped if Redis
is not available.

To run these tests:
    pytest tests/integration/test_redis_run_state_store.py -v

With a local Redis:
    docker run -d --name redis-test -p 6379:6379 redis:7-alpine
"""

import os
from datetime import UTC, datetime

import pytest
import pytest_asyncio

# Skip all tests if redis is not installed
pytest.importorskip("redis")

from saga_core.store import RedisRunStateStore  # noqa: E402
from saga_core.types import ExecutionStatus, RecoveryMode  # noqa: E402
from saga_core.workflow import WorkflowDefinition  # noqa: E402


@pytest.fixture
def redis_url() -> str:
    """Get Redis URL from environment or use default."""
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


@pytest.fixture
def test_prefix() -> str:
    """Use a unique prefix for test isolation."""
    return f"test:run:{datetime.now(UTC).timestamp()}"


@pytest_asyncio.fixture
async def redis_client(redis_url: str):
    """Create a Redis client for test setup/teardown."""
    import redis.asyncio as redis

    client = redis.from_url(redis_url, decode_responses=True)
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        pytest.skip("Redis not available")
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def run_store(redis_client, redis_url: str, test_prefix: str):
    """Store under a throwaway prefix; keys are removed afterwards."""
    store = RedisRunStateStore(redis_url=redis_url, key_prefix=test_prefix, ttl_seconds=300)
    yield store
    await store.close()
    keys = await redis_client.keys(f"{test_prefix}:*")
    if keys:
        await redis_client.delete(*keys)


class TestRedisRunStateStore:
    """Tests against a live Redis."""

    @pytest.mark.asyncio
    async def test_failed_run_persisted(self, make_engine, run_store, recorder):
        engine = make_engine(store=run_store)
        workflow = WorkflowDefinition(
            name="w",
            steps=[recorder.step("a"), recorder.step("b", fail=RuntimeError("boom"))],
        )

        result = await engine.execute_workflow(workflow, execution_id="e1")

        record = await run_store.load("e1")
        assert result.failed_clean
        assert record.status == ExecutionStatus.FAILED_CLEAN
        assert await run_store.list_ids(ExecutionStatus.FAILED_CLEAN) == ["e1"]

    @pytest.mark.asyncio
    async def test_pending_run_recovered(self, make_engine, registry, run_store, recorder):
        workflow = WorkflowDefinition(name="w", steps=[recorder.step("a"), recorder.step("b")])
        registry.register(workflow)
        engine = make_engine(store=run_store)

        record = (await engine.execute_workflow(workflow)).record
        record.status = ExecutionStatus.RUNNING
        record.current_step = 1
        record.compensation_log.append("a", "a", {"undo": "a"})
        await run_store.save(record.execution_id, record)
        recorder.calls.clear()

        result = await engine.recover(record.execution_id, RecoveryMode.UNWIND)

        assert result.failed_clean
        assert recorder.compensations == ["a"]
        assert await run_store.list_ids(ExecutionStatus.RUNNING) == []

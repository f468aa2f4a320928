"""Tests for SagaApplication wiring."""

import io
import json

import pytest

from saga_core.application import SagaApplication
from saga_core.commerce import InMemoryCommerce, Variant, register_commerce_workflows
from saga_core.config import LoggingConfig, SagaConfig, StoreConfig
from saga_core.engine import ExecutionRecord
from saga_core.store import MemoryRunStateStore
from saga_core.telemetry import get_telemetry, reset_telemetry
from saga_core.types import ExecutionStatus, LogFormat, StoreBackend
from saga_core.workflow import WorkflowDefinition


@pytest.fixture(autouse=True)
def clean_telemetry(monkeypatch):
    monkeypatch.delenv("SAGA_TELEMETRY_ENABLED", raising=False)
    reset_telemetry()
    yield
    reset_telemetry()


def memory_config() -> SagaConfig:
    return SagaConfig(
        logging=LoggingConfig(format=LogFormat.JSON),
        store=StoreConfig(backend=StoreBackend.MEMORY),
        collaborators={"default_currency": "cop"},
    )


class TestSagaApplication:
    """Tests for SagaApplication."""

    @pytest.mark.asyncio
    async def test_initialize_wires_components(self):
        output = io.StringIO()
        app = SagaApplication(config=memory_config(), log_output=output)

        await app.initialize()

        assert app.initialized
        assert isinstance(app.store, MemoryRunStateStore)
        assert app.workflow_engine.store is app.store
        assert get_telemetry()["metrics"] is None
        opened = [json.loads(line) for line in output.getvalue().splitlines()]
        assert opened[0]["message"] == "Run-state store opened"

        await app.shutdown()
        assert not app.initialized
        assert get_telemetry() is None

    @pytest.mark.asyncio
    async def test_loads_config_file(self, tmp_path):
        path = tmp_path / "saga-config.yaml"
        path.write_text("execution:\n  timeout_seconds: 5\n")
        app = SagaApplication(config_path=path, log_output=io.StringIO())

        await app.initialize()

        assert app.config.execution.timeout_seconds == 5
        assert app.store is None
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_invoke_commerce_workflow(self):
        app = SagaApplication(config=memory_config(), log_output=io.StringIO())
        await app.initialize()
        services = InMemoryCommerce()
        price_set = services.add_price_set(900)
        services.add_variant(
            Variant(id="v1", product_id="p1", title="Default", stock=3, price_set_id=price_set.id)
        )
        services.register_into(app.container)
        register_commerce_workflows(app.workflow_registry)

        result = await app.invoke(
            "add-line-item", {"variant_id": "v1", "quantity": 1, "cart_id": "c1"}
        )

        assert result.succeeded
        assert result.output["unit_price"] == 900
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_recover_pending(self, recorder):
        app = SagaApplication(config=memory_config(), log_output=io.StringIO())
        await app.initialize()
        app.register_workflow(WorkflowDefinition(name="w", steps=[recorder.step("a")]))

        record = ExecutionRecord(
            execution_id="e1",
            workflow_id="w",
            workflow_version="1.0",
            status=ExecutionStatus.RUNNING,
            current_step=1,
            outputs={"a": "a-out"},
        )
        record.compensation_log.append("a", "a", {"undo": "a"})
        await app.store.save("e1", record)
        await app.store.save(
            "e2",
            ExecutionRecord(
                execution_id="e2",
                workflow_id="w",
                workflow_version="1.0",
                status=ExecutionStatus.FAILED_CLEAN,
            ),
        )

        results = await app.recover_pending()

        assert [r.execution_id for r in results] == ["e1"]
        assert results[0].failed_clean
        assert recorder.compensations == ["a"]
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        app = SagaApplication(config=memory_config())

        with pytest.raises(RuntimeError, match="not initialized"):
            await app.invoke("w")

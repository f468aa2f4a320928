"""
Pytest configuration and shared fixtures for saga-core tests.
"""

import io
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from saga_core.commerce import InMemoryCommerce, Variant, register_commerce_workflows
from saga_core.config import SagaConfig
from saga_core.container import ServiceContainer
from saga_core.engine import ExecutionContext, WorkflowEngine
from saga_core.logging import LogConfig, SagaLogger
from saga_core.store import MemoryRunStateStore
from saga_core.types import LogFormat, LogLevel
from saga_core.workflow import StepDefinition, StepResponse, WorkflowRegistry, create_step

# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


# =============================================================================
# Step Fixtures
# =============================================================================


class CallRecorder:
    """Records forward and compensation calls in the order they happen."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    @property
    def forwards(self) -> list[str]:
        return [c.split(":", 1)[1] for c in self.calls if c.startswith("forward:")]

    @property
    def compensations(self) -> list[str]:
        return [c.split(":", 1)[1] for c in self.calls if c.startswith("compensate:")]

    def step(
        self,
        name: str,
        *,
        fail: Exception | None = None,
        compensate: bool = True,
        compensate_fail: Exception | None = None,
        output: Any = None,
    ) -> StepDefinition:
        """Build a step that records its calls.

        Args:
            name: Step name
            fail: Raised by the forward action
            compensate: Whether the step has a compensation
            compensate_fail: Raised by the compensation
            output: Forward output (defaults to ``"<name>-out"``)
        """

        async def forward(data: Any, ctx: ExecutionContext) -> StepResponse:
            self.calls.append(f"forward:{name}")
            if fail is not None:
                raise fail
            value = output if output is not None else f"{name}-out"
            return StepResponse(value, {"undo": name})

        async def undo(data: Any, ctx: ExecutionContext) -> None:
            self.calls.append(f"compensate:{name}")
            if compensate_fail is not None:
                raise compensate_fail

        return create_step(name, forward, undo if compensate else None)


@pytest.fixture
def recorder() -> CallRecorder:
    """Return a fresh call recorder."""
    return CallRecorder()


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def log_output() -> io.StringIO:
    """Capture log lines."""
    return io.StringIO()


@pytest.fixture
def logger(log_output: io.StringIO) -> SagaLogger:
    """JSON logger writing to ``log_output``."""
    return SagaLogger(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, output=log_output))


@pytest.fixture
def container() -> ServiceContainer:
    return ServiceContainer()


@pytest.fixture
def registry() -> WorkflowRegistry:
    return WorkflowRegistry()


@pytest.fixture
def engine(
    registry: WorkflowRegistry,
    container: ServiceContainer,
    logger: SagaLogger,
) -> WorkflowEngine:
    """Engine without a durable store."""
    return WorkflowEngine(registry, container, logger=logger)


@pytest.fixture
def memory_store() -> MemoryRunStateStore:
    return MemoryRunStateStore()


@pytest.fixture
def make_engine(
    registry: WorkflowRegistry,
    container: ServiceContainer,
    logger: SagaLogger,
) -> Callable[..., WorkflowEngine]:
    """Factory for engines with custom store/config."""

    def _make(store: Any = None, config: SagaConfig | None = None) -> WorkflowEngine:
        return WorkflowEngine(registry, container, logger=logger, store=store, config=config)

    return _make


# =============================================================================
# Commerce Fixtures
# =============================================================================


@pytest.fixture
def commerce(container: ServiceContainer, registry: WorkflowRegistry) -> InMemoryCommerce:
    """Seeded in-memory commerce registered into the container.

    Seeds product ``p1`` with variant ``v1`` (stock 10, price 2500 cop).
    """
    services = InMemoryCommerce()
    price_set = services.add_price_set(2500, "cop")
    services.add_variant(
        Variant(id="v1", product_id="p1", title="Default", stock=10, price_set_id=price_set.id)
    )
    services.register_into(container)
    register_commerce_workflows(registry)
    return services

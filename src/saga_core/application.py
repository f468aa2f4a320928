"""Saga Application - wires all components together.

Builds, in order, the configuration, logger, telemetry, error handling,
collaborator container, workflow registry, run-state store and the
workflow engine.
"""

import sys
from pathlib import Path
from typing import Any, TextIO

from saga_core.config import ConfigLoader, SagaConfig
from saga_core.container import ServiceContainer
from saga_core.engine import ExecutionResult, WorkflowEngine
from saga_core.errors import ErrorFactory, ErrorRegistry
from saga_core.logging import LogConfig, SagaLogger
from saga_core.store import RunStateStore, create_store
from saga_core.telemetry import (
    TelemetryConfig,
    reset_telemetry,
    setup_telemetry,
)
from saga_core.types import ExecutionStatus, LogLevel, RecoveryMode
from saga_core.workflow import WorkflowDefinition, WorkflowRegistry


class SagaApplication:
    """
    Saga application orchestrator.

    Example:
        app = SagaApplication("saga-config.yaml")
        await app.initialize()
        InMemoryCommerce().register_into(app.container)
        register_commerce_workflows(app.workflow_registry)
        result = await app.invoke("add-line-item", {...})
        await app.shutdown()
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        log_output: TextIO | None = None,
        config: SagaConfig | None = None,
    ):
        """Initialize application.

        Args:
            config_path: Path to config file (optional)
            log_output: Output stream for logs (default: sys.stdout)
            config: Ready-made configuration; skips file loading
        """
        self._config_path = config_path
        self._log_output = log_output or sys.stdout
        self._initialized = False

        # Components (initialized in initialize())
        self.config_loader: ConfigLoader | None = None
        self.config: SagaConfig | None = config
        self.logger: SagaLogger | None = None
        self.telemetry: dict[str, Any] | None = None
        self.error_registry: ErrorRegistry | None = None
        self.error_factory: ErrorFactory | None = None
        self.container: ServiceContainer | None = None
        self.workflow_registry: WorkflowRegistry | None = None
        self.store: RunStateStore | None = None
        self.workflow_engine: WorkflowEngine | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize all components.

        1. Load configuration
        2. Set up logging
        3. Set up telemetry
        4. Create error handling
        5. Create collaborator container and workflow registry
        6. Open the run-state store
        7. Create the workflow engine
        """
        if self._initialized:
            return

        # 1. Config
        self.config_loader = ConfigLoader()
        if self.config is None:
            self.config = self.config_loader.load(self._config_path)

        # 2. Logger
        log_config = LogConfig(
            level=self.config.logging.level,
            format=self.config.logging.format,
            show_params=self.config.logging.options.show_params,
            show_results=self.config.logging.options.show_results,
            truncate_at=self.config.logging.options.truncate_at,
            components={
                "workflow": self.config.logging.components.workflow,
                "step": self.config.logging.components.step,
                "compensation": self.config.logging.components.compensation,
                "store": self.config.logging.components.store,
            },
            output=self._log_output,
        )
        self.logger = SagaLogger(log_config)

        # 3. Telemetry
        self.telemetry = setup_telemetry(TelemetryConfig.from_saga_config(self.config))

        # 4. Error Registry & Factory
        self.error_registry = ErrorRegistry()
        self.error_factory = ErrorFactory(self.error_registry)

        # 5. Container & Workflow Registry
        self.container = ServiceContainer()
        self.workflow_registry = WorkflowRegistry(logger=self.logger)

        # 6. Run-state store
        self.store = create_store(self.config.store)
        if self.store is not None:
            self.logger._log(
                LogLevel.INFO,
                "store",
                "Run-state store opened",
                {"backend": self.config.store.backend.value},
            )

        # 7. Workflow Engine
        self.workflow_engine = WorkflowEngine(
            self.workflow_registry,
            self.container,
            logger=self.logger,
            store=self.store,
            config=self.config,
            error_factory=self.error_factory,
        )

        self._initialized = True

    async def shutdown(self) -> None:
        """Close the store and release telemetry."""
        if not self._initialized:
            return

        if self.store is not None:
            await self.store.close()
            self.store = None

        reset_telemetry()
        self._initialized = False

    def register_workflow(self, workflow: WorkflowDefinition) -> None:
        """Register a workflow definition."""
        self._require_initialized()
        self.workflow_registry.register(workflow)  # type: ignore[union-attr]

    async def invoke(
        self,
        workflow_name: str,
        input: Any = None,
        **kwargs: Any,
    ) -> ExecutionResult:
        """Run a registered workflow by name.

        Args:
            workflow_name: Workflow name
            input: Workflow input
            **kwargs: execution_id, metadata, timeout_seconds

        Returns:
            ExecutionResult
        """
        self._require_initialized()
        engine = self.workflow_engine
        return await engine.invoke(workflow_name, input, **kwargs)  # type: ignore[union-attr]

    async def recover_pending(
        self, mode: RecoveryMode = RecoveryMode.UNWIND
    ) -> list[ExecutionResult]:
        """Recover every invocation a previous process left unfinished.

        Returns:
            Results of the recovered invocations
        """
        self._require_initialized()
        if self.store is None:
            return []

        pending: list[str] = []
        for status in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING, ExecutionStatus.UNWINDING):
            pending.extend(await self.store.list_ids(status))

        return [
            await self.workflow_engine.recover(execution_id, mode)  # type: ignore[union-attr]
            for execution_id in pending
        ]

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Application not initialized")

"""Saga Core - step-based workflow orchestrator with compensating rollback.

Steps run in declaration order; when one fails, the steps that already
succeeded are undone newest-first through their compensations.
"""

from saga_core.application import SagaApplication
from saga_core.container import ServiceContainer
from saga_core.engine import ExecutionContext, ExecutionResult, WorkflowEngine
from saga_core.errors import (
    CancellationError,
    ResolutionError,
    SagaError,
    StepCompensationError,
    StepForwardError,
)
from saga_core.types import ExecutionStatus, RecoveryMode, StepStatus
from saga_core.workflow import (
    StepDefinition,
    StepResponse,
    WorkflowDefinition,
    WorkflowRegistry,
    create_step,
    step,
)

__version__ = "1.0.0"
__all__ = [
    "__version__",
    "SagaApplication",
    "ServiceContainer",
    "WorkflowEngine",
    "ExecutionContext",
    "ExecutionResult",
    "ExecutionStatus",
    "StepStatus",
    "RecoveryMode",
    "StepDefinition",
    "StepResponse",
    "WorkflowDefinition",
    "WorkflowRegistry",
    "step",
    "create_step",
    "SagaError",
    "StepForwardError",
    "StepCompensationError",
    "ResolutionError",
    "CancellationError",
]

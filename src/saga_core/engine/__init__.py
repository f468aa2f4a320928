"""Saga workflow execution engine."""

from .engine import WorkflowEngine
from .types import (
    CompensationEntry,
    CompensationLog,
    ExecutionContext,
    ExecutionRecord,
    ExecutionResult,
    StepResult,
    generate_execution_id,
)

__all__ = [
    "WorkflowEngine",
    "ExecutionContext",
    "ExecutionRecord",
    "ExecutionResult",
    "StepResult",
    "CompensationEntry",
    "CompensationLog",
    "generate_execution_id",
]

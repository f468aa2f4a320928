"""Workflow definitions: steps, wiring, validation and registry."""

from .registry import WorkflowRegistry
from .step import StepDefinition, StepResponse, create_step, step
from .types import WiringScope, WorkflowDefinition, WorkflowEntry, WorkflowNode
from .validator import WorkflowValidator

__all__ = [
    "StepDefinition",
    "StepResponse",
    "step",
    "create_step",
    "WorkflowDefinition",
    "WorkflowNode",
    "WorkflowEntry",
    "WiringScope",
    "WorkflowValidator",
    "WorkflowRegistry",
]

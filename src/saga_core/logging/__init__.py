"""Saga Logging - Hierarchical colored logging for workflow execution."""

from .colors import (
    CYAN,
    GREEN,
    LIGHT_BLUE,
    MAGENTA,
    ORANGE,
    RED,
    RESET,
    YELLOW,
)
from .logger import (
    LogConfig,
    SagaLogger,
    StepLogger,
    WorkflowLogger,
)

__all__ = [
    # Logger classes
    "SagaLogger",
    "WorkflowLogger",
    "StepLogger",
    "LogConfig",
    # Colors
    "RESET",
    "GREEN",
    "RED",
    "YELLOW",
    "ORANGE",
    "LIGHT_BLUE",
    "CYAN",
    "MAGENTA",
]

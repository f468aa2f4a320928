"""Shared types.

Import from here rather than submodules:
    from saga_core.types import ExecutionStatus, StepStatus
"""

from .enums import (
    ExecutionStatus,
    LogFormat,
    LogLevel,
    RecoveryMode,
    StepStatus,
    StoreBackend,
)
from .validation import ValidationIssue, ValidationResult

__all__ = [
    # Enums
    "LogLevel",
    "LogFormat",
    "ExecutionStatus",
    "StepStatus",
    "StoreBackend",
    "RecoveryMode",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]

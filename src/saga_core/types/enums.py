"""Shared enumerations for saga execution."""

from enum import Enum


class LogLevel(str, Enum):
    """Log verbosity level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log output format."""

    COLORED = "colored"
    JSON = "json"


class ExecutionStatus(str, Enum):
    """Workflow invocation state.

    SUCCEEDED, FAILED_CLEAN and FAILED_DIRTY are terminal.
    """

    PENDING = "pending"
    RUNNING = "running"
    UNWINDING = "unwinding"
    SUCCEEDED = "succeeded"
    FAILED_CLEAN = "failed_clean"
    FAILED_DIRTY = "failed_dirty"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in (
            ExecutionStatus.SUCCEEDED,
            ExecutionStatus.FAILED_CLEAN,
            ExecutionStatus.FAILED_DIRTY,
        )


class StepStatus(str, Enum):
    """Individual step status."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"
    SKIPPED = "skipped"  # Succeeded, but nothing to undo on unwind


class StoreBackend(str, Enum):
    """Durable run-state backend."""

    NONE = "none"
    MEMORY = "memory"
    SQLITE = "sqlite"
    REDIS = "redis"


class RecoveryMode(str, Enum):
    """How a persisted, interrupted invocation is brought to a terminal state."""

    RESUME = "resume"
    UNWIND = "unwind"

"""Saga error types."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error source categories."""

    STEP = "STEP"
    COMPENSATION = "COMPENSATION"
    RESOLUTION = "RESOLUTION"
    CANCELLATION = "CANCELLATION"
    VALIDATION = "VALIDATION"
    WORKFLOW = "WORKFLOW"
    STORE = "STORE"
    SYSTEM = "SYSTEM"


@dataclass
class SagaError(Exception):
    """Structured error with context. Base exception for all saga errors."""

    # Identity
    code: str  # e.g., "STEP_FAILED"
    category: ErrorCategory

    # Messages
    message: str  # Human-readable summary
    detail: str | None = None  # Extended explanation
    suggestion: str | None = None  # Actionable fix

    # Context
    retryable: bool = False
    step_id: str | None = None
    workflow_id: str | None = None
    execution_id: str | None = None

    # Error chain
    cause: "SagaError | None" = None

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Set Exception message."""
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.detail and self.detail != self.message:
            return f"{self.message}: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence and reporting.

        Returns:
            Dictionary representation of the error
        """
        return {
            "type": type(self).__name__,
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
            "detail": self.detail,
            "suggestion": self.suggestion,
            "retryable": self.retryable,
            "step_id": self.step_id,
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "timestamp": self.timestamp.isoformat(),
            "cause": self.cause.to_dict() if self.cause else None,
        }

    def with_context(
        self,
        step_id: str | None = None,
        workflow_id: str | None = None,
        execution_id: str | None = None,
    ) -> "SagaError":
        """Return copy with additional context.

        Unlike plain ``dataclasses.replace``, values already set are kept.

        Args:
            step_id: Optional step identifier
            workflow_id: Optional workflow identifier
            execution_id: Optional execution identifier

        Returns:
            New error of the same class with updated context
        """
        copy = replace(
            self,
            step_id=self.step_id or step_id,
            workflow_id=self.workflow_id or workflow_id,
            execution_id=self.execution_id or execution_id,
        )
        copy.__cause__ = self.__cause__
        return copy


class StepForwardError(SagaError):
    """A step's forward action failed. Triggers unwind."""


class StepCompensationError(SagaError):
    """A compensation itself failed. Escalates the invocation to failed_dirty."""


class ResolutionError(SagaError):
    """A required collaborator could not be obtained."""


class CancellationError(SagaError):
    """The invocation was aborted by its caller."""


_ERROR_TYPES: dict[str, type[SagaError]] = {
    cls.__name__: cls
    for cls in (
        SagaError,
        StepForwardError,
        StepCompensationError,
        ResolutionError,
        CancellationError,
    )
}


def error_from_dict(data: dict[str, Any]) -> SagaError:
    """Rebuild an error serialized with ``SagaError.to_dict``."""
    cls = _ERROR_TYPES.get(data.get("type", ""), SagaError)
    timestamp = data.get("timestamp")
    return cls(
        code=data["code"],
        category=ErrorCategory(data["category"]),
        message=data["message"],
        detail=data.get("detail"),
        suggestion=data.get("suggestion"),
        retryable=data.get("retryable", False),
        step_id=data.get("step_id"),
        workflow_id=data.get("workflow_id"),
        execution_id=data.get("execution_id"),
        cause=error_from_dict(data["cause"]) if data.get("cause") else None,
        timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC),
    )


@dataclass
class ErrorTemplate:
    """Template for creating errors."""

    code: str
    category: ErrorCategory
    message_template: str  # "Collaborator '{name}' could not be resolved"
    detail_template: str | None = None
    suggestion_template: str | None = None
    default_retryable: bool = False
    error_type: type[SagaError] = SagaError


@dataclass
class MatchResult:
    """Result of matching an exception."""

    code: str
    context: dict[str, Any]
    retryable: bool | None = None  # None = use template default


class ErrorMatcher(ABC):
    """Base class for exception matchers."""

    @abstractmethod
    def matches(self, error: BaseException) -> bool:
        """Check if this matcher handles the error.

        Args:
            error: Exception to check

        Returns:
            True if this matcher can handle the error
        """

    @abstractmethod
    def extract(self, error: BaseException) -> MatchResult:
        """Extract error code and context from the exception.

        Args:
            error: Exception to extract from

        Returns:
            MatchResult with error code and context
        """

"""Saga error handling - Structured errors with context."""

from .errors import (
    CancellationError,
    ErrorCategory,
    ErrorMatcher,
    ErrorTemplate,
    MatchResult,
    ResolutionError,
    SagaError,
    StepCompensationError,
    StepForwardError,
    error_from_dict,
)
from .factory import ErrorFactory, create_error, get_error_factory
from .matchers import ErrorMatcherChain
from .registry import ErrorRegistry

__all__ = [
    # Core error types
    "SagaError",
    "StepForwardError",
    "StepCompensationError",
    "ResolutionError",
    "CancellationError",
    "ErrorCategory",
    "ErrorTemplate",
    "MatchResult",
    "error_from_dict",
    # Registry and factory
    "ErrorRegistry",
    "ErrorFactory",
    "ErrorMatcherChain",
    "ErrorMatcher",
    # Convenience functions
    "get_error_factory",
    "create_error",
]

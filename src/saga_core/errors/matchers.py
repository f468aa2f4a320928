"""Error matchers for converting exceptions to SagaErrors."""

import asyncio
from typing import Any

from .errors import ErrorMatcher, MatchResult


class TimeoutErrorMatcher(ErrorMatcher):
    """Matches timeout errors raised by a step or a collaborator."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, (asyncio.TimeoutError, TimeoutError))

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult(
            code="EXECUTION_TIMEOUT",
            context={"timeout_seconds": "unknown", "detail": str(error) or None},
            retryable=True,
        )


class CancelledErrorMatcher(ErrorMatcher):
    """Matches asyncio cancellation."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, asyncio.CancelledError)

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult(code="EXECUTION_CANCELLED", context={}, retryable=False)


class GenericErrorMatcher(ErrorMatcher):
    """Fallback matcher for any exception raised by a forward action."""

    def matches(self, error: BaseException) -> bool:
        """Always matches."""
        return True

    def extract(self, error: BaseException) -> MatchResult:
        """Extract generic error info.

        Args:
            error: Exception to extract from

        Returns:
            MatchResult with STEP_FAILED code
        """
        return MatchResult(
            code="STEP_FAILED",
            context={
                "detail": str(error) or type(error).__name__,
                "error_type": type(error).__name__,
            },
            retryable=False,
        )


class ErrorMatcherChain:
    """Ordered chain of matchers. First match wins."""

    def __init__(self) -> None:
        """Initialize matcher chain with built-in matchers."""
        self.matchers: list[ErrorMatcher] = []
        self._load_builtin_matchers()

    def add(self, matcher: ErrorMatcher) -> None:
        """Insert a matcher ahead of the built-in ones."""
        self.matchers.insert(0, matcher)

    def match(self, error: BaseException) -> MatchResult:
        """Find first matching matcher and extract result.

        Args:
            error: Exception to match

        Returns:
            MatchResult from first matching matcher
        """
        for matcher in self.matchers:
            if matcher.matches(error):
                return matcher.extract(error)

        # Should never reach here due to GenericErrorMatcher
        context: dict[str, Any] = {"detail": str(error)}
        return MatchResult(code="STEP_FAILED", context=context, retryable=False)

    def _load_builtin_matchers(self) -> None:
        """Load built-in matchers in priority order."""
        # Order matters - more specific matchers first
        self.matchers = [
            CancelledErrorMatcher(),
            TimeoutErrorMatcher(),
            GenericErrorMatcher(),  # Fallback - must be last
        ]

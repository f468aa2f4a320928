"""Error factory for creating SagaErrors from any exception type."""

from typing import Any

from .errors import SagaError, StepCompensationError
from .matchers import ErrorMatcherChain
from .registry import ErrorRegistry


class ErrorFactory:
    """Creates SagaErrors from any exception type."""

    def __init__(
        self,
        registry: ErrorRegistry | None = None,
        matcher_chain: ErrorMatcherChain | None = None,
    ):
        """Initialize error factory.

        Args:
            registry: Error registry (defaults to new ErrorRegistry())
            matcher_chain: Matcher chain (defaults to new ErrorMatcherChain())
        """
        self.registry = registry or ErrorRegistry()
        self.matcher_chain = matcher_chain or ErrorMatcherChain()

    def from_exception(
        self,
        error: BaseException,
        step_id: str | None = None,
        workflow_id: str | None = None,
        execution_id: str | None = None,
    ) -> SagaError:
        """Convert an exception raised by a forward action to a SagaError.

        SagaErrors pass through with added context. Anything else is
        classified by the matcher chain and keeps the original exception
        as ``__cause__``.

        Args:
            error: Exception to convert
            step_id: Optional step identifier
            workflow_id: Optional workflow identifier
            execution_id: Optional execution identifier

        Returns:
            SagaError instance
        """
        if isinstance(error, SagaError):
            return error.with_context(
                step_id=step_id,
                workflow_id=workflow_id,
                execution_id=execution_id,
            )

        match_result = self.matcher_chain.match(error)

        context = match_result.context.copy()
        if step_id:
            context["step_id"] = step_id
        if workflow_id:
            context["workflow_id"] = workflow_id
        if execution_id:
            context["execution_id"] = execution_id

        saga_error = self.registry.create(code=match_result.code, context=context)

        # Override retryable if specified in match result
        if match_result.retryable is not None:
            saga_error.retryable = match_result.retryable

        saga_error.__cause__ = error
        return saga_error

    def from_compensation(
        self,
        error: BaseException,
        step_id: str | None = None,
        workflow_id: str | None = None,
        execution_id: str | None = None,
    ) -> StepCompensationError:
        """Convert an exception raised by a compensation to a StepCompensationError.

        Args:
            error: Exception raised by the undo action
            step_id: Step whose compensation failed
            workflow_id: Optional workflow identifier
            execution_id: Optional execution identifier

        Returns:
            StepCompensationError instance
        """
        if isinstance(error, StepCompensationError):
            return error.with_context(  # type: ignore[return-value]
                step_id=step_id,
                workflow_id=workflow_id,
                execution_id=execution_id,
            )

        comp_error = self.registry.create(
            code="COMPENSATION_FAILED",
            context={
                "step_id": step_id,
                "workflow_id": workflow_id,
                "execution_id": execution_id,
                "detail": str(error) or type(error).__name__,
            },
            cause=error if isinstance(error, SagaError) else None,
        )
        comp_error.__cause__ = error
        return comp_error  # type: ignore[return-value]

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> SagaError:
        """Create SagaError directly from code.

        Args:
            code: Error code
            context: Context variables for template interpolation
            **kwargs: Additional context variables

        Returns:
            SagaError instance
        """
        merged_context = dict(context or {})
        merged_context.update(kwargs)

        return self.registry.create(code=code, context=merged_context)


# Convenience singleton
_default_factory: ErrorFactory | None = None


def get_error_factory() -> ErrorFactory:
    """Get default error factory singleton.

    Returns:
        Default ErrorFactory instance
    """
    global _default_factory  # noqa: PLW0603
    if _default_factory is None:
        _default_factory = ErrorFactory()
    return _default_factory


def create_error(code: str, **context: Any) -> SagaError:
    """Convenience function to create error.

    Args:
        code: Error code
        **context: Context variables for template interpolation

    Returns:
        SagaError instance
    """
    return get_error_factory().create(code, context)

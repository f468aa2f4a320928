"""Error registry for creating errors from templates."""

from typing import Any

from .errors import (
    CancellationError,
    ErrorCategory,
    ErrorTemplate,
    ResolutionError,
    SagaError,
    StepCompensationError,
    StepForwardError,
)


class ErrorRegistry:
    """Registry of error templates. Creates errors from templates + context."""

    def __init__(self) -> None:
        """Initialize error registry with built-in templates."""
        self._templates: dict[str, ErrorTemplate] = {}
        self._load_builtin_templates()

    def get_template(self, code: str) -> ErrorTemplate | None:
        """Get template by error code.

        Args:
            code: Error code to look up

        Returns:
            ErrorTemplate if found, None otherwise
        """
        return self._templates.get(code)

    def register(self, template: ErrorTemplate) -> None:
        """Add or replace a template (application-specific codes)."""
        self._templates[template.code] = template

    def list_codes(self) -> list[str]:
        """List all registered error codes."""
        return list(self._templates.keys())

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        cause: SagaError | None = None,
    ) -> SagaError:
        """Create error instance from template + context.

        Args:
            code: Error code
            context: Context variables for template interpolation
            cause: Optional cause error

        Returns:
            Instance of the template's error type

        Raises:
            ValueError: If error code not found
        """
        template = self.get_template(code)
        if not template:
            msg = f"Unknown error code: {code}"
            raise ValueError(msg)

        context = context or {}

        message = self._interpolate(template.message_template, context)
        detail = context.get("detail") or self._interpolate(template.detail_template, context)
        suggestion = self._interpolate(template.suggestion_template, context)

        if message is None:
            message = f"Error {code}"

        return template.error_type(
            code=template.code,
            category=template.category,
            message=message,
            detail=detail,
            suggestion=suggestion,
            retryable=context.get("retryable", template.default_retryable),
            step_id=context.get("step_id"),
            workflow_id=context.get("workflow_id"),
            execution_id=context.get("execution_id"),
            cause=cause,
        )

    def _interpolate(
        self,
        template: str | None,
        context: dict[str, Any],
    ) -> str | None:
        """Safe string interpolation.

        Args:
            template: Template string with {var} placeholders
            context: Context variables

        Returns:
            Interpolated string or None if template is None
        """
        if template is None:
            return None

        try:
            return template.format(**context)
        except (KeyError, IndexError):
            # Missing context variable - return template as-is
            return template

    def _load_builtin_templates(self) -> None:
        """Load hardcoded built-in templates."""
        # STEP (forward) errors
        self._templates["STEP_FAILED"] = ErrorTemplate(
            code="STEP_FAILED",
            category=ErrorCategory.STEP,
            message_template="Step '{step_id}' failed",
            detail_template="The step's forward action raised an error",
            suggestion_template="Check the step input and the collaborator it calls",
            error_type=StepForwardError,
        )

        self._templates["ENTITY_NOT_FOUND"] = ErrorTemplate(
            code="ENTITY_NOT_FOUND",
            category=ErrorCategory.STEP,
            message_template="{entity} '{entity_id}' not found",
            detail_template="A step referenced an entity that does not exist",
            suggestion_template="Check the identifier passed in the workflow input",
            error_type=StepForwardError,
        )

        self._templates["PRECONDITION_FAILED"] = ErrorTemplate(
            code="PRECONDITION_FAILED",
            category=ErrorCategory.STEP,
            message_template="{reason}",
            detail_template="A business precondition of the step does not hold",
            error_type=StepForwardError,
        )

        self._templates["WIRING_INVALID"] = ErrorTemplate(
            code="WIRING_INVALID",
            category=ErrorCategory.STEP,
            message_template="Step '{step_id}' references output of '{ref}' which has not run",
            detail_template="Wiring may only read outputs of steps declared before the reader",
            suggestion_template="Reorder the workflow steps or fix the referenced step id",
            error_type=StepForwardError,
        )

        self._templates["EXECUTION_TIMEOUT"] = ErrorTemplate(
            code="EXECUTION_TIMEOUT",
            category=ErrorCategory.STEP,
            message_template="Workflow timed out after {timeout_seconds}s",
            detail_template="The invocation did not complete within its deadline",
            suggestion_template="Increase the timeout or check slow collaborators",
            default_retryable=True,
            error_type=StepForwardError,
        )

        # COMPENSATION errors
        self._templates["COMPENSATION_FAILED"] = ErrorTemplate(
            code="COMPENSATION_FAILED",
            category=ErrorCategory.COMPENSATION,
            message_template="Compensation for step '{step_id}' failed",
            detail_template="The undo action raised an error; its side effect may still exist",
            suggestion_template="Retry the compensation or reverse the side effect manually",
            default_retryable=True,
            error_type=StepCompensationError,
        )

        # RESOLUTION errors
        self._templates["RESOLUTION_FAILED"] = ErrorTemplate(
            code="RESOLUTION_FAILED",
            category=ErrorCategory.RESOLUTION,
            message_template="Collaborator '{name}' could not be resolved",
            detail_template="The service container has no usable collaborator under this name",
            suggestion_template="Register the collaborator before invoking the workflow",
            error_type=ResolutionError,
        )

        # CANCELLATION errors
        self._templates["EXECUTION_CANCELLED"] = ErrorTemplate(
            code="EXECUTION_CANCELLED",
            category=ErrorCategory.CANCELLATION,
            message_template="Invocation '{execution_id}' was cancelled",
            detail_template="The caller aborted the invocation; completed steps were unwound",
            error_type=CancellationError,
        )

        # VALIDATION errors
        self._templates["INPUT_INVALID"] = ErrorTemplate(
            code="INPUT_INVALID",
            category=ErrorCategory.VALIDATION,
            message_template="Invalid workflow input",
            detail_template="The workflow input does not match the declared input model",
            suggestion_template="Check the input model and provide valid data",
        )

        self._templates["WORKFLOW_INVALID"] = ErrorTemplate(
            code="WORKFLOW_INVALID",
            category=ErrorCategory.VALIDATION,
            message_template="Workflow '{workflow_id}' is invalid",
            suggestion_template="Fix the workflow definition and register it again",
        )

        self._templates["CONFIG_INVALID"] = ErrorTemplate(
            code="CONFIG_INVALID",
            category=ErrorCategory.VALIDATION,
            message_template="Invalid configuration",
            detail_template="The saga configuration is invalid",
            suggestion_template="Check the configuration file and fix errors",
        )

        # WORKFLOW errors
        self._templates["WORKFLOW_NOT_FOUND"] = ErrorTemplate(
            code="WORKFLOW_NOT_FOUND",
            category=ErrorCategory.WORKFLOW,
            message_template="Workflow '{workflow_id}' not found",
            detail_template="The requested workflow is not registered",
            suggestion_template="Check the workflow name and registry",
        )

        self._templates["EXECUTION_NOT_FOUND"] = ErrorTemplate(
            code="EXECUTION_NOT_FOUND",
            category=ErrorCategory.WORKFLOW,
            message_template="Execution '{execution_id}' not found",
            detail_template="No persisted run state exists for this invocation",
            suggestion_template="Enable a durable store to recover invocations",
        )

        self._templates["RECOVERY_INVALID"] = ErrorTemplate(
            code="RECOVERY_INVALID",
            category=ErrorCategory.WORKFLOW,
            message_template="Execution '{execution_id}' cannot be recovered",
            detail_template="Invocation is in state '{status}'",
        )

        # STORE errors
        self._templates["STORE_FAILED"] = ErrorTemplate(
            code="STORE_FAILED",
            category=ErrorCategory.STORE,
            message_template="Run-state store operation '{operation}' failed",
            detail_template="The durable store could not be read or written",
            suggestion_template="Check store connectivity and configuration",
            default_retryable=True,
        )

        # SYSTEM errors
        self._templates["INTERNAL_ERROR"] = ErrorTemplate(
            code="INTERNAL_ERROR",
            category=ErrorCategory.SYSTEM,
            message_template="Internal saga engine error",
            detail_template="An unexpected error occurred in the engine",
            suggestion_template="Check the logs and report this issue",
        )

"""Workflow validation."""

from pydantic import BaseModel

from saga_core.types import ValidationIssue, ValidationResult

from .step import StepDefinition
from .types import WorkflowDefinition


class WorkflowValidator:
    """Validate workflow definitions before registration."""

    def validate(self, workflow: WorkflowDefinition) -> ValidationResult:
        """Validate workflow definition.

        Checks:
        - Required fields present
        - Unique node ids
        - Callable forward action per step
        - Compensation, wiring and result are callable when given
        - Input model is a pydantic model

        Wiring can only read outputs of steps declared earlier; that is
        enforced while the workflow runs, not here.

        Args:
            workflow: Workflow to validate

        Returns:
            ValidationResult with errors and warnings
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if not workflow.name:
            errors.append(ValidationIssue(path="name", message="Workflow name is required"))

        if not workflow.version:
            errors.append(ValidationIssue(path="version", message="Workflow version is required"))

        if not workflow.steps:
            warnings.append(
                ValidationIssue(
                    path="steps",
                    message="Workflow has no steps and always succeeds",
                    severity="warning",
                )
            )

        step_ids = workflow.step_ids
        duplicates = sorted({sid for sid in step_ids if step_ids.count(sid) > 1})
        if duplicates:
            errors.append(
                ValidationIssue(
                    path="steps",
                    message=f"Duplicate step IDs: {', '.join(duplicates)}",
                )
            )

        for index, node in enumerate(workflow.steps):
            path = f"steps[{index}]"
            if not node.id:
                errors.append(ValidationIssue(path=f"{path}.id", message="Step id is required"))

            if not isinstance(node.step, StepDefinition):
                errors.append(
                    ValidationIssue(path=f"{path}.step", message="Not a StepDefinition")
                )
                continue

            if not callable(node.step.forward):
                errors.append(
                    ValidationIssue(
                        path=f"{path}.forward",
                        message=f"Forward action of '{node.id}' is not callable",
                    )
                )

            if node.step.compensate is not None and not callable(node.step.compensate):
                errors.append(
                    ValidationIssue(
                        path=f"{path}.compensate",
                        message=f"Compensation of '{node.id}' is not callable",
                    )
                )

            if node.wire is not None and not callable(node.wire):
                errors.append(
                    ValidationIssue(
                        path=f"{path}.wire",
                        message=f"Wiring of '{node.id}' is not callable",
                    )
                )

        if workflow.result is not None and not callable(workflow.result):
            errors.append(ValidationIssue(path="result", message="Result mapping is not callable"))

        if workflow.input_model is not None and not (
            isinstance(workflow.input_model, type) and issubclass(workflow.input_model, BaseModel)
        ):
            errors.append(
                ValidationIssue(
                    path="input_model",
                    message="input_model must be a pydantic BaseModel subclass",
                )
            )

        return ValidationResult(valid=True, errors=errors, warnings=warnings)

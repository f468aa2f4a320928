"""Workflow Registry implementation."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from saga_core.errors import create_error
from saga_core.types import LogLevel, ValidationResult

from .types import WorkflowDefinition, WorkflowEntry
from .validator import WorkflowValidator

if TYPE_CHECKING:
    from saga_core.logging import SagaLogger


class WorkflowRegistry:
    """Registry of workflow definitions, keyed by name."""

    def __init__(self, logger: "SagaLogger | None" = None):
        """Initialize workflow registry.

        Args:
            logger: Optional logger
        """
        self._workflows: dict[str, WorkflowEntry] = {}
        self._logger = logger
        self._validator = WorkflowValidator()

    def register(
        self,
        workflow: WorkflowDefinition,
        validate: bool = True,
    ) -> ValidationResult:
        """Register a workflow, replacing any workflow with the same name.

        Args:
            workflow: Workflow to register
            validate: Whether to validate before registering

        Returns:
            ValidationResult (always valid if validate=False)

        Raises:
            SagaError(WORKFLOW_INVALID) if validation fails
        """
        if validate:
            result = self._validator.validate(workflow)
            if not result.valid:
                raise create_error(
                    "WORKFLOW_INVALID",
                    workflow_id=workflow.name,
                    detail=result.summary(),
                )
        else:
            result = ValidationResult(valid=True, errors=[], warnings=[])

        self._workflows[workflow.name] = WorkflowEntry(
            workflow=workflow,
            registered_at=datetime.now(UTC).isoformat(),
        )

        if self._logger:
            self._logger._log(
                LogLevel.INFO,
                "workflow",
                "Workflow registered",
                {"name": workflow.name, "version": workflow.version},
            )

        return result

    def unregister(self, name: str) -> bool:
        """Unregister a workflow.

        Returns:
            True if workflow was registered, False if not found
        """
        if name in self._workflows:
            del self._workflows[name]
            if self._logger:
                self._logger._log(
                    LogLevel.INFO,
                    "workflow",
                    "Workflow unregistered",
                    {"name": name},
                )
            return True
        return False

    def get(self, name: str) -> WorkflowDefinition | None:
        entry = self._workflows.get(name)
        return entry.workflow if entry else None

    def get_or_raise(self, name: str) -> WorkflowDefinition:
        """Get workflow by name, raise if not found.

        Raises:
            SagaError(WORKFLOW_NOT_FOUND)
        """
        workflow = self.get(name)
        if workflow is None:
            raise create_error("WORKFLOW_NOT_FOUND", workflow_id=name)
        return workflow

    def list_workflows(self) -> list[WorkflowDefinition]:
        return [entry.workflow for entry in self._workflows.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._workflows

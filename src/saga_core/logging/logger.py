"""Saga Logger - Hierarchical colored logging for workflow execution and unwind."""

import json
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TextIO

from saga_core.logging.colors import (
    CYAN,
    GREEN,
    LIGHT_BLUE,
    MAGENTA,
    ORANGE,
    RED,
    RESET,
    YELLOW,
)
from saga_core.types import LogFormat, LogLevel


@dataclass
class LogConfig:
    """Logger configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    show_params: bool = True
    show_results: bool = True
    truncate_at: int = 200
    components: dict[str, bool] = field(default_factory=dict)
    output: TextIO = field(default=sys.stdout)

    def __post_init__(self) -> None:
        """Initialize default components if not provided."""
        if not self.components:
            self.components = {
                "workflow": True,
                "step": True,
                "compensation": True,
                "store": True,
            }


class SagaLogger:
    """Main logger facade. Creates component-specific loggers."""

    def __init__(self, config: LogConfig | None = None):
        """Initialize logger with configuration.

        Args:
            config: Logger configuration (defaults to LogConfig())
        """
        self.config = config or LogConfig()
        self._level_order = {
            LogLevel.DEBUG: 0,
            LogLevel.INFO: 1,
            LogLevel.WARN: 2,
            LogLevel.ERROR: 3,
        }

    def workflow(self, workflow_id: str, execution_id: str) -> "WorkflowLogger":
        """Get a logger scoped to a workflow execution.

        Args:
            workflow_id: Workflow identifier
            execution_id: Execution identifier

        Returns:
            WorkflowLogger instance
        """
        return WorkflowLogger(self, workflow_id, execution_id)

    def configure(self, config: LogConfig) -> None:
        """Update configuration."""
        self.config = config

    def store_error(self, operation: str, execution_id: str, error: Exception) -> None:
        """Log a run-state store failure that did not stop execution."""
        context = {
            "execution_id": execution_id,
            "event": "store_failed",
            "operation": operation,
            "error": str(error),
        }
        message = f"Run-state store '{operation}' failed for '{execution_id}': {error}"
        self._log(LogLevel.WARN, "store", message, context)

    def _should_log(self, level: LogLevel) -> bool:
        return self._level_order.get(level, 0) >= self._level_order.get(self.config.level, 1)

    def _truncate(self, value: Any) -> str:
        text = str(value)
        if len(text) > self.config.truncate_at:
            text = text[: self.config.truncate_at] + "..."
        return text

    def _log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Internal logging method.

        Args:
            level: Log level
            component: Component name (workflow, step, compensation, store)
            message: Log message
            context: Additional context data
        """
        if not self._should_log(level):
            return

        if not self.config.components.get(component, True):
            return

        if self.config.format == LogFormat.JSON:
            self._log_json(level, component, message, context)
        else:
            self._log_colored(level, component, message, context)

    def _log_json(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level.value,
            "component": component,
            "message": message,
        }
        if context:
            log_entry.update(context)

        print(json.dumps(log_entry, default=str), file=self.config.output)

    def _log_colored(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        level_colors = {
            LogLevel.DEBUG: LIGHT_BLUE,
            LogLevel.INFO: CYAN,
            LogLevel.WARN: YELLOW,
            LogLevel.ERROR: RED,
        }

        color = level_colors.get(level, RESET)
        component_color = {
            "workflow": MAGENTA,
            "step": CYAN,
            "compensation": ORANGE,
            "store": GREEN,
        }.get(component, RESET)

        # Format: [COMPONENT] message
        output = f"{component_color}[{component.upper()}]{RESET} {color}{message}{RESET}"

        if context and self.config.show_params:
            output += f" {LIGHT_BLUE}{self._truncate(context)}{RESET}"

        print(output, file=self.config.output)


class WorkflowLogger:
    """Logger for workflow-level events."""

    def __init__(self, parent: SagaLogger, workflow_id: str, execution_id: str):
        self.parent = parent
        self.workflow_id = workflow_id
        self.execution_id = execution_id

    def _context(self, event: str, **extra: Any) -> dict[str, Any]:
        context: dict[str, Any] = {
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "event": event,
        }
        context.update(extra)
        return context

    def started(self, version: str | None = None, step_count: int = 0) -> None:
        """Log workflow start.

        Args:
            version: Optional workflow version
            step_count: Number of declared steps
        """
        context = self._context("workflow_started", step_count=step_count)
        if version:
            context["version"] = version

        message = f"Workflow '{self.workflow_id}' started"
        if version:
            message += f" (v{version})"

        self.parent._log(LogLevel.INFO, "workflow", message, context)

    def succeeded(self, duration_ms: int, step_count: int) -> None:
        """Log workflow success with summary.

        Args:
            duration_ms: Execution duration in milliseconds
            step_count: Number of steps executed
        """
        context = self._context(
            "workflow_succeeded", duration_ms=duration_ms, step_count=step_count
        )

        duration_s = duration_ms / 1000
        message = (
            f"Workflow '{self.workflow_id}' succeeded ({step_count} steps, {duration_s:.2f}s) ✓"
        )

        self.parent._log(LogLevel.INFO, "workflow", message, context)

    def unwinding(self, failed_step: str | None, entries: int, error: Exception) -> None:
        """Log the start of an unwind.

        Args:
            failed_step: Step whose failure triggered the unwind
            entries: Number of compensation log entries to unwind
            error: Primary error
        """
        context = self._context(
            "workflow_unwinding",
            failed_step=failed_step,
            entries=entries,
            error=str(error),
        )

        message = f"Workflow '{self.workflow_id}' unwinding {entries} step(s)"
        if failed_step:
            message += f" after '{failed_step}' failed"

        self.parent._log(LogLevel.WARN, "workflow", message, context)

    def failed(
        self,
        error: Exception,
        duration_ms: int,
        dirty: bool = False,
        compensation_errors: int = 0,
    ) -> None:
        """Log workflow failure.

        A dirty failure is logged at ERROR level because it leaves side
        effects that need operator attention.

        Args:
            error: Primary error
            duration_ms: Execution duration in milliseconds
            dirty: Whether any compensation failed
            compensation_errors: Number of failed compensations
        """
        context = self._context(
            "workflow_failed",
            duration_ms=duration_ms,
            status="failed_dirty" if dirty else "failed_clean",
            error=str(error),
            error_type=type(error).__name__,
            compensation_errors=compensation_errors,
        )
        code = getattr(error, "code", None)
        if code:
            context["error_code"] = code

        duration_s = duration_ms / 1000
        if dirty:
            message = (
                f"Workflow '{self.workflow_id}' failed dirty ({duration_s:.2f}s, "
                f"{compensation_errors} compensation error(s)): {error}"
            )
            self.parent._log(LogLevel.ERROR, "workflow", message, context)
        else:
            message = f"Workflow '{self.workflow_id}' failed clean ({duration_s:.2f}s): {error}"
            self.parent._log(LogLevel.WARN, "workflow", message, context)

    def recovered(self, mode: str, status: str) -> None:
        """Log recovery of a persisted invocation."""
        context = self._context("workflow_recovered", mode=mode, status=status)
        message = f"Workflow '{self.workflow_id}' recovered ({mode}) -> {status}"
        self.parent._log(LogLevel.INFO, "workflow", message, context)

    def step(self, step_id: str) -> "StepLogger":
        """Get a logger scoped to a step.

        Args:
            step_id: Step identifier

        Returns:
            StepLogger instance
        """
        return StepLogger(self, step_id)


class StepLogger:
    """Logger for step-level events, forward and compensation."""

    def __init__(self, parent: WorkflowLogger, step_id: str):
        self.parent = parent
        self.step_id = step_id

    @property
    def root(self) -> SagaLogger:
        return self.parent.parent

    def _context(self, event: str, **extra: Any) -> dict[str, Any]:
        context: dict[str, Any] = {
            "workflow_id": self.parent.workflow_id,
            "execution_id": self.parent.execution_id,
            "step_id": self.step_id,
            "event": event,
        }
        context.update(extra)
        return context

    def started(self, step_name: str, index: int) -> None:
        """Log step start.

        Args:
            step_name: Name of the step definition
            index: Zero-based position in the workflow
        """
        context = self._context("step_started", step_name=step_name, index=index)

        message = f"Step '{self.step_id}' started"
        if step_name != self.step_id:
            message += f" (step: {step_name})"

        self.root._log(LogLevel.INFO, "step", message, context)

    def succeeded(self, duration_ms: int, output: Any = None) -> None:
        """Log step success.

        Args:
            duration_ms: Execution duration in milliseconds
            output: Step output, previewed when show_results is enabled
        """
        context = self._context("step_succeeded", duration_ms=duration_ms)
        if self.root.config.show_results and output is not None:
            context["output"] = self.root._truncate(output)

        duration_s = duration_ms / 1000
        message = f"Step '{self.step_id}' succeeded ({duration_s:.2f}s) ✓"

        self.root._log(LogLevel.INFO, "step", message, context)

    def failed(self, error: Exception) -> None:
        """Log step failure.

        Args:
            error: Exception that caused failure
        """
        context = self._context(
            "step_failed",
            error=str(error),
            error_type=type(error).__name__,
        )

        message = f"Step '{self.step_id}' failed: {error}"

        self.root._log(LogLevel.ERROR, "step", message, context)

    def compensating(self, sequence: int) -> None:
        """Log compensation start for this step."""
        context = self._context("compensation_started", sequence=sequence)
        message = f"Compensating step '{self.step_id}' (#{sequence})"
        self.root._log(LogLevel.INFO, "compensation", message, context)

    def compensated(self, duration_ms: int) -> None:
        """Log successful compensation."""
        context = self._context("compensation_succeeded", duration_ms=duration_ms)
        duration_s = duration_ms / 1000
        message = f"Step '{self.step_id}' compensated ({duration_s:.2f}s) ✓"
        self.root._log(LogLevel.INFO, "compensation", message, context)

    def compensation_failed(self, error: Exception) -> None:
        """Log a failed compensation. The side effect may still exist."""
        context = self._context(
            "compensation_failed",
            error=str(error),
            error_type=type(error).__name__,
        )
        message = f"Compensation for step '{self.step_id}' failed: {error}"
        self.root._log(LogLevel.ERROR, "compensation", message, context)

    def compensation_skipped(self, reason: str) -> None:
        """Log a step passed over during unwind.

        Args:
            reason: Reason for skipping
        """
        context = self._context("compensation_skipped", reason=reason)
        message = f"Step '{self.step_id}' not compensated: {reason}"
        self.root._log(LogLevel.DEBUG, "compensation", message, context)

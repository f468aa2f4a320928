"""Saga Metrics Schema - OpenTelemetry conventions.

Metrics:
- Counters: workflow executions, step executions, compensations, dirty unwinds
- Histograms: workflow, step and compensation durations
- Gauges: active workflows

Labels/Attributes:
- workflow_id: Workflow identifier
- step_id: Step identifier within workflow
- status: Outcome (succeeded, failed_clean, failed_dirty, error, ...)
- error_code: SagaError code when the outcome is a failure

All metrics use the 'saga_' prefix.
"""

from dataclasses import dataclass
from typing import Any

from opentelemetry import metrics
from opentelemetry.metrics import Counter, Histogram, UpDownCounter

# Metric prefix for all saga metrics
METRIC_PREFIX = "saga"


@dataclass
class MetricLabels:
    """Standard metric labels/attributes."""

    WORKFLOW_ID = "workflow_id"
    STEP_ID = "step_id"
    STATUS = "status"
    ERROR_CODE = "error_code"

    # Status values
    STATUS_SUCCESS = "success"
    STATUS_ERROR = "error"
    STATUS_SUCCEEDED = "succeeded"
    STATUS_FAILED_CLEAN = "failed_clean"
    STATUS_FAILED_DIRTY = "failed_dirty"
    STATUS_CANCELLED = "cancelled"
    STATUS_COMPENSATED = "compensated"
    STATUS_COMPENSATION_FAILED = "compensation_failed"


class SagaMetrics:
    """Saga metrics collection.

    Provides instrumentation for workflow invocations, forward steps and
    compensations.
    """

    def __init__(self, meter: metrics.Meter):
        """Initialize metrics.

        Args:
            meter: OpenTelemetry Meter instance
        """
        self._meter = meter
        self._setup_counters()
        self._setup_histograms()
        self._setup_gauges()

    def _setup_counters(self) -> None:
        self.workflow_executions_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_workflow_executions_total",
            description="Total number of workflow invocations",
            unit="1",
        )

        self.step_executions_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_step_executions_total",
            description="Total number of step forward executions",
            unit="1",
        )

        self.compensations_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_compensations_total",
            description="Total number of compensation attempts",
            unit="1",
        )

        self.dirty_unwinds_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_dirty_unwinds_total",
            description="Invocations that ended with at least one failed compensation",
            unit="1",
        )

    def _setup_histograms(self) -> None:
        self.workflow_duration_seconds: Histogram = self._meter.create_histogram(
            name=f"{METRIC_PREFIX}_workflow_duration_seconds",
            description="Workflow invocation duration in seconds",
            unit="s",
        )

        self.step_duration_seconds: Histogram = self._meter.create_histogram(
            name=f"{METRIC_PREFIX}_step_duration_seconds",
            description="Step forward execution duration in seconds",
            unit="s",
        )

        self.compensation_duration_seconds: Histogram = self._meter.create_histogram(
            name=f"{METRIC_PREFIX}_compensation_duration_seconds",
            description="Compensation duration in seconds",
            unit="s",
        )

    def _setup_gauges(self) -> None:
        self.active_workflows: UpDownCounter = self._meter.create_up_down_counter(
            name=f"{METRIC_PREFIX}_active_workflows",
            description="Number of currently running workflow invocations",
            unit="1",
        )

    def initialize(self) -> None:
        """Record zero values so every metric is exported before first use."""
        init = {MetricLabels.WORKFLOW_ID: "_init", MetricLabels.STATUS: "init"}
        self.workflow_executions_total.add(0, init)
        self.step_executions_total.add(0, {**init, MetricLabels.STEP_ID: "_init"})
        self.compensations_total.add(0, {**init, MetricLabels.STEP_ID: "_init"})
        self.dirty_unwinds_total.add(0, {MetricLabels.WORKFLOW_ID: "_init"})
        self.active_workflows.add(0, {MetricLabels.WORKFLOW_ID: "_init"})

    def record_workflow_start(self, workflow_id: str) -> None:
        self.active_workflows.add(1, {MetricLabels.WORKFLOW_ID: workflow_id})

    def record_workflow_end(
        self,
        workflow_id: str,
        duration_seconds: float,
        status: str,
        error_code: str | None = None,
    ) -> None:
        """Record the end of an invocation.

        Args:
            workflow_id: Workflow identifier
            duration_seconds: Execution duration
            status: Terminal status (succeeded, failed_clean, failed_dirty)
            error_code: Primary error code on failure
        """
        labels: dict[str, Any] = {
            MetricLabels.WORKFLOW_ID: workflow_id,
            MetricLabels.STATUS: status,
        }
        if error_code:
            labels[MetricLabels.ERROR_CODE] = error_code

        self.active_workflows.add(-1, {MetricLabels.WORKFLOW_ID: workflow_id})
        self.workflow_executions_total.add(1, labels)
        self.workflow_duration_seconds.record(duration_seconds, labels)
        if status == MetricLabels.STATUS_FAILED_DIRTY:
            self.dirty_unwinds_total.add(1, {MetricLabels.WORKFLOW_ID: workflow_id})

    def record_step_execution(
        self,
        workflow_id: str,
        step_id: str,
        duration_seconds: float,
        status: str,
        error_code: str | None = None,
    ) -> None:
        labels: dict[str, Any] = {
            MetricLabels.WORKFLOW_ID: workflow_id,
            MetricLabels.STEP_ID: step_id,
            MetricLabels.STATUS: status,
        }
        if error_code:
            labels[MetricLabels.ERROR_CODE] = error_code

        self.step_executions_total.add(1, labels)
        self.step_duration_seconds.record(duration_seconds, labels)

    def record_compensation(
        self,
        workflow_id: str,
        step_id: str,
        duration_seconds: float,
        status: str,
    ) -> None:
        labels: dict[str, Any] = {
            MetricLabels.WORKFLOW_ID: workflow_id,
            MetricLabels.STEP_ID: step_id,
            MetricLabels.STATUS: status,
        }
        self.compensations_total.add(1, labels)
        self.compensation_duration_seconds.record(duration_seconds, labels)

"""Saga Telemetry Instrumentation - async context managers.

Provides instrumentation helpers for:
- Workflow invocations
- Step forward execution
- Compensation

All helpers are no-ops when telemetry has not been set up.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any

from opentelemetry.trace import Status, StatusCode

from .metrics import MetricLabels
from .setup import get_telemetry


def _error_code(error: BaseException) -> str:
    return getattr(error, "code", None) or type(error).__name__


@asynccontextmanager
async def instrument_workflow(workflow_id: str, execution_id: str | None = None):
    """Context manager for instrumenting a workflow invocation.

    The engine reports the terminal status through ``record_outcome``; an
    exception escaping the block is recorded as ``error``.

    Args:
        workflow_id: Workflow identifier
        execution_id: Optional execution identifier (span attribute)

    Yields:
        Dictionary to store execution status
    """
    telemetry = get_telemetry()
    start_time = time.time()
    result: dict[str, Any] = {"status": MetricLabels.STATUS_SUCCEEDED, "error_code": None}

    tracer = telemetry["tracer"] if telemetry else None
    metrics = telemetry["metrics"] if telemetry else None

    span = None
    if tracer:
        span = tracer.start_span(f"workflow:{workflow_id}")
        span.set_attribute("workflow.id", workflow_id)
        if execution_id:
            span.set_attribute("execution.id", execution_id)

    if metrics:
        metrics.record_workflow_start(workflow_id)

    try:
        yield result
    except Exception as e:
        result["status"] = MetricLabels.STATUS_ERROR
        result["error_code"] = _error_code(e)
        if span:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
        raise
    finally:
        duration = time.time() - start_time

        if metrics:
            metrics.record_workflow_end(
                workflow_id=workflow_id,
                duration_seconds=duration,
                status=result["status"],
                error_code=result.get("error_code"),
            )

        if span:
            span.set_attribute("saga.status", result["status"])
            if result["status"] == MetricLabels.STATUS_SUCCEEDED:
                span.set_status(Status(StatusCode.OK))
            elif result["status"] != MetricLabels.STATUS_ERROR:
                span.set_status(Status(StatusCode.ERROR, result.get("error_code") or ""))
            span.end()


@asynccontextmanager
async def instrument_step(workflow_id: str, step_id: str):
    """Context manager for instrumenting a step's forward action.

    Args:
        workflow_id: Workflow identifier
        step_id: Step identifier

    Yields:
        Dictionary to store execution status
    """
    telemetry = get_telemetry()
    start_time = time.time()
    result: dict[str, Any] = {"status": MetricLabels.STATUS_SUCCESS, "error_code": None}

    tracer = telemetry["tracer"] if telemetry else None
    metrics = telemetry["metrics"] if telemetry else None

    span = None
    if tracer:
        span = tracer.start_span(f"step:{step_id}")
        span.set_attribute("workflow.id", workflow_id)
        span.set_attribute("step.id", step_id)

    try:
        yield result
    except asyncio.CancelledError:
        result["status"] = MetricLabels.STATUS_CANCELLED
        raise
    except Exception as e:
        result["status"] = MetricLabels.STATUS_ERROR
        result["error_code"] = _error_code(e)
        if span:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
        raise
    finally:
        duration = time.time() - start_time

        if metrics:
            metrics.record_step_execution(
                workflow_id=workflow_id,
                step_id=step_id,
                duration_seconds=duration,
                status=result["status"],
                error_code=result.get("error_code"),
            )

        if span:
            if result["status"] == MetricLabels.STATUS_SUCCESS:
                span.set_status(Status(StatusCode.OK))
            span.end()


@asynccontextmanager
async def instrument_compensation(workflow_id: str, step_id: str):
    """Context manager for instrumenting a compensation.

    Args:
        workflow_id: Workflow identifier
        step_id: Step whose side effect is being undone

    Yields:
        Dictionary to store compensation status
    """
    telemetry = get_telemetry()
    start_time = time.time()
    result: dict[str, Any] = {"status": MetricLabels.STATUS_COMPENSATED}

    tracer = telemetry["tracer"] if telemetry else None
    metrics = telemetry["metrics"] if telemetry else None

    span = None
    if tracer:
        span = tracer.start_span(f"compensate:{step_id}")
        span.set_attribute("workflow.id", workflow_id)
        span.set_attribute("step.id", step_id)

    try:
        yield result
    except Exception as e:
        result["status"] = MetricLabels.STATUS_COMPENSATION_FAILED
        if span:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
        raise
    finally:
        duration = time.time() - start_time

        if metrics:
            metrics.record_compensation(
                workflow_id=workflow_id,
                step_id=step_id,
                duration_seconds=duration,
                status=result["status"],
            )

        if span:
            if result["status"] == MetricLabels.STATUS_COMPENSATED:
                span.set_status(Status(StatusCode.OK))
            span.end()


def record_outcome(result: dict[str, Any], status: str, error_code: str | None = None) -> None:
    """Update result dictionary with the terminal status.

    Args:
        result: Result dictionary from context manager
        status: Terminal status value
        error_code: Primary error code if failed
    """
    result["status"] = status
    result["error_code"] = error_code

"""Saga Telemetry - OpenTelemetry-based observability."""

from .instrumentation import (
    instrument_compensation,
    instrument_step,
    instrument_workflow,
    record_outcome,
)
from .metrics import MetricLabels, SagaMetrics
from .setup import (
    OTLPExporterConfig,
    TelemetryConfig,
    get_telemetry,
    reset_telemetry,
    setup_telemetry,
)

__all__ = [
    # Metrics
    "SagaMetrics",
    "MetricLabels",
    # Setup
    "TelemetryConfig",
    "OTLPExporterConfig",
    "setup_telemetry",
    "get_telemetry",
    "reset_telemetry",
    # Instrumentation
    "instrument_workflow",
    "instrument_step",
    "instrument_compensation",
    "record_outcome",
]

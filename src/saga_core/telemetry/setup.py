"""Process-wide OpenTelemetry state for saga runs.

``setup_telemetry`` installs one meter provider (read by Prometheus) and
one tracer provider (optionally exporting over OTLP), then hands the
engine a ``SagaMetrics`` bound to the meter. The state is held until
``reset_telemetry``; instrumentation reads it through ``get_telemetry``.
"""

import importlib
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from saga_core.config import SagaConfig
from saga_core.errors import create_error

from .metrics import SagaMetrics

# protocol -> module providing OTLPSpanExporter (the ``otlp`` extra)
SPAN_EXPORTER_MODULES = {
    "grpc": "opentelemetry.exporter.otlp.proto.grpc.trace_exporter",
    "http": "opentelemetry.exporter.otlp.proto.http.trace_exporter",
}


@dataclass
class OTLPExporterConfig:
    """Where finished saga spans are shipped."""

    enabled: bool = False
    endpoint: str = "http://localhost:4317"
    insecure: bool = True
    protocol: str = "grpc"
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.protocol not in SPAN_EXPORTER_MODULES:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Unknown OTLP protocol '{self.protocol}' (expected grpc or http)",
            )


@dataclass
class TelemetryConfig:
    """Resolved telemetry settings for one process.

    Unlike the ``telemetry`` section of ``SagaConfig`` this is flat and has
    environment overrides applied; build it with ``from_saga_config``.
    """

    enabled: bool = True
    service_name: str = "saga-core"
    service_version: str = "1.0.0"
    metrics_enabled: bool = True
    prometheus_enabled: bool = True
    traces_enabled: bool = False
    otlp: OTLPExporterConfig = field(default_factory=OTLPExporterConfig)
    # Extra resource attributes, e.g. deployment.environment
    attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_saga_config(
        cls, config: SagaConfig, environ: Mapping[str, str] | None = None
    ) -> "TelemetryConfig":
        """Flatten ``config.telemetry``.

        SAGA_TELEMETRY_ENABLED=true switches telemetry on regardless of the
        file; OTEL_SERVICE_NAME and OTEL_EXPORTER_OTLP_ENDPOINT take
        precedence over the configured values.
        """
        env = os.environ if environ is None else environ
        section = config.telemetry
        return cls(
            enabled=section.enabled or env.get("SAGA_TELEMETRY_ENABLED", "").lower() == "true",
            service_name=env.get("OTEL_SERVICE_NAME", section.service_name),
            service_version=section.service_version,
            metrics_enabled=section.metrics.enabled,
            prometheus_enabled=section.metrics.prometheus_enabled,
            traces_enabled=section.tracing.enabled,
            otlp=OTLPExporterConfig(
                enabled=section.otlp.enabled or section.tracing.export_to_otlp,
                endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT", section.otlp.endpoint),
                insecure=section.otlp.insecure,
                protocol=section.otlp.protocol,
                headers=section.otlp.headers,
            ),
        )


_telemetry: dict[str, Any] | None = None


def _create_otlp_span_exporter(otlp: OTLPExporterConfig) -> SpanExporter:
    module = importlib.import_module(SPAN_EXPORTER_MODULES[otlp.protocol])
    headers = otlp.headers or None
    if otlp.protocol == "http":
        # The HTTP exporter wants the full signal path
        return module.OTLPSpanExporter(endpoint=f"{otlp.endpoint}/v1/traces", headers=headers)
    return module.OTLPSpanExporter(
        endpoint=otlp.endpoint, insecure=otlp.insecure, headers=headers
    )


def _resource(config: TelemetryConfig) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: config.service_name,
            SERVICE_VERSION: config.service_version,
            **config.attributes,
        }
    )


def _install_tracer_provider(config: TelemetryConfig, resource: Resource) -> TracerProvider:
    provider = TracerProvider(resource=resource)
    if config.traces_enabled and config.otlp.enabled:
        provider.add_span_processor(BatchSpanProcessor(_create_otlp_span_exporter(config.otlp)))
    trace.set_tracer_provider(provider)
    return provider


def _install_saga_metrics(config: TelemetryConfig, resource: Resource) -> SagaMetrics | None:
    if not config.metrics_enabled:
        return None
    readers = [PrometheusMetricReader()] if config.prometheus_enabled else []
    metrics.set_meter_provider(MeterProvider(metric_readers=readers, resource=resource))
    saga_metrics = SagaMetrics(metrics.get_meter(config.service_name, config.service_version))
    # Series show up in Prometheus only once recorded
    saga_metrics.initialize()
    return saga_metrics


def setup_telemetry(config: TelemetryConfig | None = None) -> dict[str, Any]:
    """Install telemetry once per process and return its state.

    The state maps ``meter``, ``tracer``, ``metrics`` (a ``SagaMetrics``)
    and ``config``; when enabled it also holds ``tracer_provider``. With
    telemetry disabled the instruments are None and instrumentation is a
    no-op. Later calls return the same state until ``reset_telemetry``.
    """
    global _telemetry

    if _telemetry is not None:
        return _telemetry

    config = config or TelemetryConfig()
    if not config.enabled:
        _telemetry = {"meter": None, "tracer": None, "metrics": None, "config": config}
        return _telemetry

    resource = _resource(config)
    saga_metrics = _install_saga_metrics(config, resource)
    tracer_provider = _install_tracer_provider(config, resource)

    _telemetry = {
        "meter": metrics.get_meter(config.service_name, config.service_version),
        "tracer": trace.get_tracer(config.service_name, config.service_version),
        "metrics": saga_metrics,
        "config": config,
        "tracer_provider": tracer_provider,
    }
    return _telemetry


def get_telemetry() -> dict[str, Any] | None:
    return _telemetry


def reset_telemetry() -> None:
    """Forget the installed state (application shutdown and tests)."""
    global _telemetry
    _telemetry = None

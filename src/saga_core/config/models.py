"""Saga configuration data models."""

from dataclasses import dataclass, field
from typing import Any

from saga_core.types import LogFormat, LogLevel, StoreBackend


@dataclass
class LoggingComponentsConfig:
    """Logging components configuration."""

    workflow: bool = True
    step: bool = True
    compensation: bool = True
    store: bool = True


@dataclass
class LoggingOptionsConfig:
    """Logging options configuration."""

    show_params: bool = True
    show_results: bool = True
    truncate_at: int = 200


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    components: LoggingComponentsConfig = field(default_factory=LoggingComponentsConfig)
    options: LoggingOptionsConfig = field(default_factory=LoggingOptionsConfig)


@dataclass
class ExecutionConfig:
    """Execution configuration.

    Attributes:
        timeout_seconds: Deadline for a whole invocation (None = no deadline)
        persist_runs: Write run state to the configured store
        retain_succeeded: Keep records of succeeded invocations in the store
    """

    timeout_seconds: float | None = None
    persist_runs: bool = True
    retain_succeeded: bool = False


@dataclass
class StoreConfig:
    """Durable run-state store configuration."""

    backend: StoreBackend = StoreBackend.NONE
    sqlite_path: str = "./saga-runs.db"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "saga:run"
    ttl_seconds: int | None = None


@dataclass
class TelemetryOTLPConfig:
    """Telemetry OTLP exporter configuration.

    Attributes:
        enabled: Whether OTLP export is enabled
        endpoint: OTLP collector endpoint (e.g., http://otel-collector:4317)
        insecure: Whether to use insecure connection (no TLS)
        protocol: Protocol to use (grpc or http)
        headers: Additional headers for authentication
    """

    enabled: bool = False
    endpoint: str = "http://localhost:4317"
    insecure: bool = True
    protocol: str = "grpc"  # grpc | http
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class TelemetryMetricsConfig:
    """Telemetry metrics configuration (OpenTelemetry)."""

    enabled: bool = True
    prometheus_enabled: bool = True


@dataclass
class TelemetryTracingConfig:
    """Telemetry tracing configuration (OpenTelemetry)."""

    enabled: bool = False
    export_to_otlp: bool = False


@dataclass
class TelemetryConfig:
    """Telemetry configuration."""

    enabled: bool = False
    service_name: str = "saga-core"
    service_version: str = "1.0.0"
    otlp: TelemetryOTLPConfig = field(default_factory=TelemetryOTLPConfig)
    metrics: TelemetryMetricsConfig = field(default_factory=TelemetryMetricsConfig)
    tracing: TelemetryTracingConfig = field(default_factory=TelemetryTracingConfig)


@dataclass
class SagaConfig:
    """Root configuration object."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    # Handed read-only to every ExecutionContext
    collaborators: dict[str, Any] = field(default_factory=dict)

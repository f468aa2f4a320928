"""Saga configuration - Config loading and models."""

from .loader import (
    ConfigLoader,
    deep_merge,
    get_config_loader,
    load_config,
    resolve_env_vars,
)
from .models import (
    ExecutionConfig,
    LoggingComponentsConfig,
    LoggingConfig,
    LoggingOptionsConfig,
    SagaConfig,
    StoreConfig,
    TelemetryConfig,
    TelemetryMetricsConfig,
    TelemetryOTLPConfig,
    TelemetryTracingConfig,
)

__all__ = [
    # Config models
    "SagaConfig",
    "ExecutionConfig",
    "LoggingConfig",
    "LoggingComponentsConfig",
    "LoggingOptionsConfig",
    "StoreConfig",
    "TelemetryConfig",
    "TelemetryMetricsConfig",
    "TelemetryOTLPConfig",
    "TelemetryTracingConfig",
    # Loader
    "ConfigLoader",
    "get_config_loader",
    "load_config",
    "resolve_env_vars",
    "deep_merge",
]

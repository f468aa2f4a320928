"""Saga configuration loader."""

import logging
import os
import re
import typing
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from saga_core.errors import create_error
from saga_core.types import StoreBackend, ValidationIssue, ValidationResult

from .models import SagaConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "SAGA_CONFIG_PATH"
LOCAL_CONFIG_FILE = "saga-config.yaml"


def resolve_env_vars(value: str) -> str:
    """Resolve environment variable references in string.

    Supports:
    - ${VAR} - Required, error if not set
    - ${VAR:-default} - With default value
    - ${VAR:?error message} - Required with custom error

    Args:
        value: String with potential env var references

    Returns:
        String with env vars resolved

    Raises:
        SagaError: If required var not set
    """
    # Pattern: ${VAR}, ${VAR:-default}, ${VAR:?error}
    pattern = r"\$\{([^}:]+)(?::([?-])([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        operator = match.group(2)  # '-' or '?' or None
        operand = match.group(3)  # default value or error message

        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value

        if operator == "-":
            return operand or ""
        elif operator == "?":
            error_msg = operand or f"Required environment variable {var_name} not set"
            raise create_error("CONFIG_INVALID", detail=error_msg)
        else:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Required environment variable {var_name} not set",
            )

    return re.sub(pattern, replacer, value)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    else:
        return data


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


class ConfigLoader:
    """Load and validate saga configuration."""

    def __init__(self) -> None:
        self._config: SagaConfig | None = None
        self._config_path: Path | None = None

    @property
    def config_path(self) -> Path | None:
        """Path the current configuration was loaded from, if any."""
        return self._config_path

    def load(
        self,
        path: str | Path | None = None,
        use_defaults: bool = True,
        overrides: dict[str, Any] | None = None,
    ) -> SagaConfig:
        """Load configuration from file.

        Resolution order if path not specified:
        1. SAGA_CONFIG_PATH environment variable
        2. ./saga-config.yaml
        3. ~/.saga/config.yaml
        4. If use_defaults=True and no file found, use default configuration

        Args:
            path: Optional path to config file
            use_defaults: If True, use default config when no file found
            overrides: Values deep-merged over the file contents

        Returns:
            Loaded SagaConfig instance

        Raises:
            SagaError: If file not found (when use_defaults=False) or invalid
        """
        if path is None:
            path = self._resolve_config_path()

        config_path = Path(path)

        if not config_path.exists():
            if use_defaults:
                logger.info("No config file found at %s, using default configuration", path)
                return self.load_from_dict(overrides or {})
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Configuration file not found: {config_path}",
            )

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Invalid YAML in config file: {e}",
            ) from e

        if not isinstance(data, dict):
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Config file must contain a mapping: {config_path}",
            )

        data = _resolve_env_vars_recursive(data)
        if overrides:
            data = deep_merge(data, overrides)

        return self.load_from_dict(data, config_path)

    def load_defaults(self) -> SagaConfig:
        """Load default configuration without a file."""
        return self.load_from_dict({})

    def load_from_dict(self, data: dict[str, Any], config_path: Path | None = None) -> SagaConfig:
        """Load configuration from dictionary.

        Args:
            data: Configuration dictionary
            config_path: Optional path to config file (for tracking)

        Returns:
            Loaded SagaConfig instance

        Raises:
            SagaError: If configuration is invalid
        """
        validation = self.validate(data)
        for warning in validation.warnings:
            logger.warning("Config %s: %s", warning.path, warning.message)
        if not validation.valid:
            error_messages = [f"- {issue.path}: {issue.message}" for issue in validation.errors]
            raise create_error(
                "CONFIG_INVALID",
                detail="Configuration validation failed:\n" + "\n".join(error_messages),
            )

        try:
            config = self._dict_to_config(data)
        except (TypeError, ValueError) as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Failed to parse configuration: {e}",
            ) from e

        self._config = config
        self._config_path = config_path
        logger.debug("Configuration loaded from %s", config_path or "defaults")

        return config

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        """Validate config data without loading.

        Args:
            data: Configuration dictionary

        Returns:
            ValidationResult with errors and warnings
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        valid_keys = {f.name for f in fields(SagaConfig)}

        for key in data:
            if key not in valid_keys:
                warnings.append(
                    ValidationIssue(
                        path=key,
                        message=f"Unknown configuration key: {key}",
                        severity="warning",
                    )
                )

        for section in valid_keys - {"collaborators"}:
            if section in data and not isinstance(data[section], dict):
                errors.append(
                    ValidationIssue(path=section, message=f"{section} must be a dictionary")
                )

        execution = data.get("execution")
        if isinstance(execution, dict):
            timeout = execution.get("timeout_seconds")
            if timeout is not None and not _is_positive_number(timeout):
                errors.append(
                    ValidationIssue(
                        path="execution.timeout_seconds",
                        message="timeout_seconds must be a positive number",
                    )
                )

        store = data.get("store")
        if isinstance(store, dict):
            backend = store.get("backend")
            allowed = [b.value for b in StoreBackend]
            if backend is not None and backend not in allowed:
                errors.append(
                    ValidationIssue(
                        path="store.backend",
                        message=f"backend must be one of {', '.join(allowed)}",
                    )
                )
            ttl = store.get("ttl_seconds")
            if ttl is not None and (not isinstance(ttl, int) or isinstance(ttl, bool) or ttl <= 0):
                errors.append(
                    ValidationIssue(
                        path="store.ttl_seconds",
                        message="ttl_seconds must be a positive integer",
                    )
                )

        collaborators = data.get("collaborators")
        if collaborators is not None and not isinstance(collaborators, dict):
            errors.append(
                ValidationIssue(path="collaborators", message="collaborators must be a mapping")
            )

        return ValidationResult(valid=True, errors=errors, warnings=warnings)

    def get(self) -> SagaConfig:
        """Get current configuration.

        Raises:
            SagaError: If configuration not loaded
        """
        if self._config is None:
            raise create_error("CONFIG_INVALID", detail="Configuration not loaded")
        return self._config

    def _resolve_config_path(self) -> Path:
        # 1. SAGA_CONFIG_PATH environment variable
        env_path = os.environ.get(CONFIG_PATH_ENV)
        if env_path:
            return Path(env_path)

        # 2. ./saga-config.yaml
        local_path = Path(LOCAL_CONFIG_FILE)
        if local_path.exists():
            return local_path

        # 3. ~/.saga/config.yaml
        home_path = Path.home() / ".saga" / "config.yaml"
        if home_path.exists():
            return home_path

        # Not found - use local path as default
        return local_path

    def _dict_to_config(self, data: dict[str, Any]) -> SagaConfig:
        kwargs: dict[str, Any] = {}

        for f in fields(SagaConfig):
            if f.name in data:
                kwargs[f.name] = self._convert_field(f.type, data[f.name])

        return SagaConfig(**kwargs)

    def _convert_field(self, field_type: Any, value: Any) -> Any:
        """Convert field value to appropriate type.

        Args:
            field_type: Expected field type
            value: Value to convert

        Returns:
            Converted value
        """
        if value is None:
            return None

        origin = typing.get_origin(field_type)

        if origin is list:
            if not isinstance(value, list):
                return value
            args = typing.get_args(field_type)
            if args:
                return [self._convert_field(args[0], item) for item in value]
            return value

        if origin is dict:
            if not isinstance(value, dict):
                return value
            args = typing.get_args(field_type)
            if args and len(args) == 2:
                return {k: self._convert_field(args[1], v) for k, v in value.items()}
            return value

        if hasattr(field_type, "__dataclass_fields__"):
            if isinstance(value, dict):
                kwargs = {}
                for f in fields(field_type):
                    if f.name in value:
                        kwargs[f.name] = self._convert_field(f.type, value[f.name])
                return field_type(**kwargs)
            return value

        if hasattr(field_type, "__mro__") and any(
            base.__name__ == "Enum" for base in field_type.__mro__
        ):
            if isinstance(value, str):
                return field_type(value)
            return value

        return value


# Convenience singleton
_default_loader: ConfigLoader | None = None


def get_config_loader() -> ConfigLoader:
    """Get default config loader singleton."""
    global _default_loader  # noqa: PLW0603
    if _default_loader is None:
        _default_loader = ConfigLoader()
    return _default_loader


def load_config(path: str | Path | None = None) -> SagaConfig:
    """Convenience function to load config.

    Args:
        path: Optional path to config file

    Returns:
        Loaded SagaConfig instance
    """
    return get_config_loader().load(path)

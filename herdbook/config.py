"""
HERDBOOK Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (HERDBOOK_*)
    2. Runtime overrides / loaded files
    3. Default values

Default files, applied in order when present:
    ./herdbook.yaml, ./config/herdbook.yaml, ~/.herdbook/config.yaml

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

T = TypeVar("T")

BURN_PRINCIPAL = "SP000000000000000000002Q6VF78"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def get_valid(self) -> T:
        """Get the current value, raising ConfigValidationError if it fails validation."""
        try:
            value = self.get()
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"Invalid value for {self.env_var}: {e}") from e

        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value}")
        return value

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)

        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        """Drop any set value, falling back to env var or default."""
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class RegistryConfig:
    """Configuration for the livestock registry engine."""
    max_records: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10000,
        env_var="HERDBOOK_MAX_RECORDS",
        description="Maximum number of records the registry will ever hold",
        validator=lambda x: x > 0,
    ))
    max_per_owner: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=100,
        env_var="HERDBOOK_MAX_PER_OWNER",
        description="Maximum number of records indexed under one owner",
        validator=lambda x: x > 0,
    ))
    max_breed_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=50,
        env_var="HERDBOOK_MAX_BREED_LENGTH",
        description="Maximum breed length in characters",
        validator=lambda x: x > 0,
    ))
    max_description_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=200,
        env_var="HERDBOOK_MAX_DESCRIPTION_LENGTH",
        description="Maximum description length in characters",
        validator=lambda x: x >= 0,
    ))
    burn_principal: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=BURN_PRINCIPAL,
        env_var="HERDBOOK_BURN_PRINCIPAL",
        description="Reserved principal meaning 'no one'; never an authority or transfer target",
        validator=lambda x: bool(x),
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="HERDBOOK_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    audit_enabled: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="HERDBOOK_AUDIT_ENABLED",
        description="Record a hash-chained audit event for every mutation attempt",
    ))


@dataclass
class HerdbookConfig:
    """
    Root configuration for HERDBOOK.

    Aggregates all component configurations and provides
    loading/saving functionality.
    """
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = HerdbookConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @property
    def config(self) -> HerdbookConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {path}")

        if data:
            self._apply_dict(data)
            self._config_paths.append(path)

    def load_defaults(self) -> List[Path]:
        """Load default configuration files if they exist. Returns the files applied."""
        default_paths = [
            Path("herdbook.yaml"),
            Path("config/herdbook.yaml"),
            Path.home() / ".herdbook" / "config.yaml",
        ]

        loaded = []
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {prefix}{key}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{prefix}{key}.")
                else:
                    raise ConfigError(f"Invalid config section: {prefix}{key}")

        apply_to_config(self._config, data, "")

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("registry.max_per_owner", 250)
        """
        attr = self._resolve(path)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("registry.max_records")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def reset(self) -> None:
        """Restore every value to its default (env vars still apply)."""
        self._config = HerdbookConfig()
        self._config_paths = []

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except (TypeError, ValueError) as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> HerdbookConfig:
    """Get the current HERDBOOK configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()

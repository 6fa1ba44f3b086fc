"""
Tyron Configuration System

Configuration management with YAML files, environment variables, validation
and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (TYRON_*)
    2. Runtime overrides
    3. User config file (~/.tyron/config.yaml)
    4. Project config file (./tyron.yaml or ./config/tyron.yaml)
    5. Default values

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

import copy
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from tyron.observability import Component, get_logger

T = TypeVar("T")

logger = get_logger("config", Component.CONFIG)


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
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with coercion and validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class DomainConfig:
    """Signing domain bound into every recovery digest."""
    name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="Tyron",
        env_var="TYRON_DOMAIN_NAME",
        description="System name in the signing domain",
        validator=lambda x: isinstance(x, str) and len(x) > 0,
    ))
    version: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="1",
        env_var="TYRON_DOMAIN_VERSION",
        description="Protocol version in the signing domain",
        validator=lambda x: isinstance(x, str) and len(x) > 0,
    ))
    chain_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=31337,
        env_var="TYRON_CHAIN_ID",
        description="Network/chain identifier in the signing domain",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))


@dataclass
class GuardianConfig:
    """Guardian registry policy."""
    min_threshold: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3,
        env_var="TYRON_GUARDIAN_MIN_THRESHOLD",
        description="Lower bound of the recovery threshold",
        validator=lambda x: isinstance(x, int) and x >= 1,
    ))


@dataclass
class RecoveryConfig:
    """Guardian recovery policy."""
    count_duplicate_votes: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="TYRON_RECOVERY_COUNT_DUPLICATE_VOTES",
        description="Count a guardian once per submitted signature instead of once per call",
        validator=lambda x: isinstance(x, bool),
    ))


@dataclass
class OwnershipConfig:
    """Two-step ownership transfer policy."""
    pending_ttl_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="TYRON_OWNERSHIP_PENDING_TTL",
        description="Seconds a transfer proposal stays acceptable (0 = no expiry)",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="TYRON_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="TYRON_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class AccountConfig:
    """
    Root configuration for Tyron accounts.

    Aggregates all component configurations.
    """
    domain: DomainConfig = field(default_factory=DomainConfig)
    guardians: GuardianConfig = field(default_factory=GuardianConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    ownership: OwnershipConfig = field(default_factory=OwnershipConfig)
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
        return yaml.dump(self.to_dict(), default_flow_style=False)

    def copy(self) -> "AccountConfig":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountConfig":
        config = cls()
        apply_dict(config, data)
        return config


def apply_dict(config_obj: Any, values: Dict[str, Any], path: str = "") -> None:
    """Apply nested dictionary values onto a config dataclass."""
    for key, value in values.items():
        key_path = f"{path}.{key}" if path else key
        if not hasattr(config_obj, key):
            raise ConfigError(f"Unknown config key: {key_path}")
        attr = getattr(config_obj, key)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
            apply_dict(attr, value, key_path)
        else:
            raise ConfigError(f"Invalid config section: {key_path}")


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

        self._config = AccountConfig()
        self._config_paths: List[Path] = []
        self._watchers: List[Callable[[AccountConfig], None]] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (tests and long-running tools reloading config)."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> AccountConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file must contain a mapping: {path}")
            apply_dict(self._config, data)
            if path not in self._config_paths:
                self._config_paths.append(path)
        logger.info("Loaded configuration", operation="load_from_file", path=str(path))

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        default_paths = [
            Path("tyron.yaml"),
            Path("config/tyron.yaml"),
            Path.home() / ".tyron" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                try:
                    self.load_from_file(path)
                except (ConfigError, yaml.YAMLError) as e:
                    logger.warning("Ignoring invalid default config", path=str(path), error=str(e))

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("guardians.min_threshold", 3)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("domain.chain_id")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def watch(self, callback: Callable[[AccountConfig], None]) -> None:
        """Register a callback for configuration changes."""
        self._watchers.append(callback)

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in self._config_paths:
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

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


def get_config() -> AccountConfig:
    """Get the current process-wide configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()

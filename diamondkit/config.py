"""
DIAMONDKIT Configuration System

Settings for the simulated ledger, governance timelocks, assembly policy and
logging. Every value has a default, can be overridden from a YAML file or at
runtime, and is bound to a `DIAMONDKIT_*` environment variable.

Resolution for one value:
    1. Environment variable, when set
    2. Last value written by `set()` or a loaded YAML file
    3. Default

`load_defaults()` reads ./diamondkit.yaml, ./config/diamondkit.yaml and
~/.diamondkit/config.yaml, in that order, when they exist.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

import yaml

T = TypeVar("T")


class ConfigError(Exception):
    """Unreadable config file, unknown key or invalid path."""


class ConfigValidationError(ConfigError):
    """A value rejected by its validator."""


@dataclass
class ConfigValue(Generic[T]):
    """One setting: default, optional env binding, validator and change hooks."""
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Env var first, then the explicit value, then the default."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Store `value`; strings are coerced to the default's type before validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Convert env or CLI text to the type of the default."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        elif target_type == list:
            return value.split(",")  # type: ignore
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Call `callback(old, new)` after every successful set."""
        self._callbacks.append(callback)


@dataclass
class ChainConfig:
    """Configuration for the simulated ledger."""
    start_timestamp: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1_700_000_000,
        env_var="DIAMONDKIT_CHAIN_START_TIMESTAMP",
        description="Initial simulated clock value (unix seconds)",
        validator=lambda x: x >= 0,
    ))
    address_seed: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="diamondkit",
        env_var="DIAMONDKIT_CHAIN_ADDRESS_SEED",
        description="Seed for deterministic contract address allocation",
        validator=lambda x: len(x) > 0,
    ))


@dataclass
class GovernanceConfig:
    """Configuration for governance timelocks."""
    timelock_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3600,
        env_var="DIAMONDKIT_GOVERNANCE_TIMELOCK",
        description="Delay before a deferred governance call may execute",
        validator=lambda x: x >= 0,
    ))
    diamond_cut_min_timelock_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="DIAMONDKIT_DIAMOND_CUT_MIN_TIMELOCK",
        description="Minimum delay for diamondCut, applied when above the governance timelock",
        validator=lambda x: x >= 0,
    ))


@dataclass
class AssemblyConfig:
    """Configuration for composite assembly."""
    strict_duplicates: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="DIAMONDKIT_ASSEMBLY_STRICT_DUPLICATES",
        description="Reject signatures declared by more than one required interface",
    ))
    verify_coverage: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="DIAMONDKIT_ASSEMBLY_VERIFY_COVERAGE",
        description="Run the coverage verifier after assembly",
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="DIAMONDKIT_LOG_LEVEL",
        description="Log level for diamondkit loggers",
        validator=lambda x: x.lower() in ("debug", "info", "warning", "error", "critical"),
    ))
    json_logs: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="DIAMONDKIT_JSON_LOGS",
        description="Emit log events as JSON lines instead of plain text",
    ))


@dataclass
class DiamondConfig:
    """All diamondkit settings, grouped by component."""
    chain: ChainConfig = field(default_factory=ChainConfig)
    governance: GovernanceConfig = field(default_factory=GovernanceConfig)
    assembly: AssemblyConfig = field(default_factory=AssemblyConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Resolved values as nested plain dicts."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """Process-wide owner of the active DiamondConfig (a locked singleton)."""

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

        self._config = DiamondConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @property
    def config(self) -> DiamondConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Apply a YAML mapping of section -> key -> value; unknown keys are errors."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration root must be a mapping: {path}")
            self._apply_dict(data)
            self._config_paths.append(path)

    def load_defaults(self) -> List[Path]:
        """Load default configuration files that exist; returns the loaded paths."""
        default_paths = [
            Path("diamondkit.yaml"),
            Path("config/diamondkit.yaml"),
            Path.home() / ".diamondkit" / "config.yaml",
        ]

        loaded = []
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Write nested `data` onto the matching sections and values."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {prefix}{key}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{prefix}{key}.")

        apply_to_config(self._config, data, "")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("governance.timelock_seconds", 60)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("governance.timelock_seconds")
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

    def reset(self) -> None:
        """Drop runtime overrides and loaded files, returning to defaults."""
        self._config = DiamondConfig()
        self._config_paths = []

    def _values(self) -> List[Tuple[str, ConfigValue]]:
        """Every ConfigValue with its dotted path, in declaration order."""
        found: List[Tuple[str, ConfigValue]] = []
        for section_name in self._config.__dataclass_fields__:
            section = getattr(self._config, section_name)
            for key in section.__dataclass_fields__:
                found.append((f"{section_name}.{key}", getattr(section, key)))
        return found

    def validate(self) -> List[str]:
        """Check every resolved value (env vars included); returns error strings."""
        errors: List[str] = []
        for path, value in self._values():
            try:
                resolved = value.get()
            except (TypeError, ValueError) as e:
                errors.append(f"{path}: {e}")
                continue
            if value.validator and not value.validator(resolved):
                errors.append(f"{path}: validation failed for value {resolved}")
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Describe every setting as a JSON Schema object, one property per section."""
        json_types = {bool: "boolean", int: "integer", str: "string", list: "array"}
        schema: Dict[str, Any] = {
            "$schema": "https://json-schema.org/draft/2020-12/schema",
            "title": "diamondkit configuration",
            "type": "object",
            "properties": {},
        }
        for path, value in self._values():
            section_name, key = path.split(".", 1)
            section = schema["properties"].setdefault(
                section_name, {"type": "object", "properties": {}}
            )
            entry = {
                "type": json_types.get(type(value.default), "string"),
                "default": value.default,
                "description": value.description,
            }
            if value.env_var:
                entry["env_var"] = value.env_var
            section["properties"][key] = entry
        return schema


def get_config() -> DiamondConfig:
    """Get the current diamondkit configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()

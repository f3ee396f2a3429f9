"""Configuration management and validation service."""

import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    path: str
    message: str


class ConfigValidationException(Exception):
    """Raised when config validation fails."""

    def __init__(self, errors: List[ConfigValidationError]):
        self.errors = errors
        messages = [f"{e.path}: {e.message}" for e in errors]
        super().__init__("Configuration validation failed:\n" + "\n".join(messages))


@dataclass(frozen=True)
class FieldRule:
    """Constraint on a single key inside a config section."""
    kind: str
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    options: Optional[Sequence[str]] = None

    def check(self, value: Any) -> Optional[str]:
        """Return a problem description, or None when ``value`` is acceptable."""
        python_types: Tuple[type, ...] = {
            "str": (str,),
            "int": (int,),
            "float": (int, float),
            "bool": (bool,),
        }[self.kind]
        numeric = self.kind in ("int", "float")
        if not isinstance(value, python_types) or (numeric and isinstance(value, bool)):
            return f"Expected {self.kind}, got {type(value).__name__}"
        if numeric and self.minimum is not None and value < self.minimum:
            return f"Value {value} is below minimum {self.minimum}"
        if numeric and self.maximum is not None and value > self.maximum:
            return f"Value {value} is above maximum {self.maximum}"
        if self.options is not None and value not in self.options:
            return f"Value '{value}' not in allowed options: {list(self.options)}"
        return None


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Every section is optional and every key inside it is optional.
CONFIG_SCHEMA: Dict[str, Dict[str, FieldRule]] = {
    "server": {
        "host": FieldRule("str"),
        "port": FieldRule("int", minimum=1, maximum=65535),
        "debug": FieldRule("bool"),
    },
    "database": {
        "url": FieldRule("str"),
    },
    "engine": {
        "tick_interval_seconds": FieldRule("float", minimum=0),
        "min_trade_interval_seconds": FieldRule("float", minimum=0),
        "max_consecutive_errors": FieldRule("int", minimum=1),
        "connect_retries": FieldRule("int", minimum=0),
        "price_wait_retries": FieldRule("int", minimum=0),
        "retry_delay_seconds": FieldRule("float", minimum=0),
        "min_trade_amount": FieldRule("float", minimum=0),
        "trade_history_limit": FieldRule("int", minimum=1),
        "training_seconds": FieldRule("float", minimum=0),
        "optimize_seconds": FieldRule("float", minimum=0),
        "stop_timeout_seconds": FieldRule("float", minimum=0),
    },
    "ledger": {
        "mode": FieldRule("str", options=("demo", "live")),
        "demo_initial_balance": FieldRule("float", minimum=0),
        "quote_currency": FieldRule("str"),
    },
    "risk": {
        "max_order_value": FieldRule("float", minimum=0),
        "max_daily_loss": FieldRule("float", minimum=0),
        "max_leverage": FieldRule("float", minimum=1),
        "stop_loss_percentage": FieldRule("float", minimum=0, maximum=100),
    },
    "recommendations": {
        "endpoint": FieldRule("str"),
        "cache_ttl_seconds": FieldRule("int", minimum=0),
        "timeout_seconds": FieldRule("float", minimum=0),
    },
    "market_data": {
        "exchange_id": FieldRule("str"),
        "poll_interval_seconds": FieldRule("float", minimum=0),
        "kline_limit": FieldRule("int", minimum=1),
    },
    "logging": {
        "level": FieldRule("str", options=LOG_LEVELS),
        "format": FieldRule("str"),
    },
}


def validate_config(config: Dict[str, Any]) -> List[ConfigValidationError]:
    """Check a parsed config mapping against ``CONFIG_SCHEMA``."""
    errors: List[ConfigValidationError] = []

    for section_name, section in config.items():
        rules = CONFIG_SCHEMA.get(section_name)
        if rules is None:
            errors.append(ConfigValidationError(
                path=section_name,
                message=f"Unknown configuration key '{section_name}'"
            ))
            continue
        if section is None:
            continue
        if not isinstance(section, dict):
            errors.append(ConfigValidationError(
                path=section_name,
                message=f"Expected section mapping, got {type(section).__name__}"
            ))
            continue

        for key, value in section.items():
            path = f"{section_name}.{key}"
            rule = rules.get(key)
            if rule is None:
                errors.append(ConfigValidationError(
                    path=path,
                    message=f"Unknown configuration key '{key}'"
                ))
                continue
            problem = rule.check(value)
            if problem:
                errors.append(ConfigValidationError(path=path, message=problem))

    return errors


@dataclass
class EngineSettings:
    """Typed engine settings with defaults for every tunable."""
    tick_interval_seconds: float = 1.0
    min_trade_interval_seconds: float = 60.0
    max_consecutive_errors: int = 5
    connect_retries: int = 5
    price_wait_retries: int = 10
    retry_delay_seconds: float = 1.0
    min_trade_amount: float = 1.0
    trade_history_limit: int = 100
    training_seconds: float = 15.0
    optimize_seconds: float = 5.0
    stop_timeout_seconds: float = 10.0

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "EngineSettings":
        """Build settings from the ``engine`` section of a loaded config."""
        section = (config or {}).get("engine") or {}
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class ConfigService:
    """Loads the YAML config file and exposes its validated values."""

    def __init__(self, config_path: Optional[str] = None):
        """Resolve the config file location.

        Args:
            config_path: Explicit path. Falls back to ``AUTOTRADER_CONFIG``,
                then to ``config.yaml`` in the backend directory.
        """
        config_path = config_path or os.environ.get("AUTOTRADER_CONFIG")
        if config_path is None:
            config_path = str(Path(__file__).resolve().parents[2] / "config.yaml")

        self.config_path = config_path
        self._config: Dict[str, Any] = {}

    @property
    def config(self) -> Dict[str, Any]:
        return self._config

    def load_and_validate(self) -> Dict[str, Any]:
        """Read the config file and check it against ``CONFIG_SCHEMA``.

        A missing file is not an error: the engine runs on defaults.

        Raises:
            ConfigValidationException: On unreadable YAML or schema violations.
        """
        if not os.path.exists(self.config_path):
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._config = {}
            return self._config

        try:
            with open(self.config_path, "r") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationException([
                ConfigValidationError(path="", message=f"Invalid YAML syntax: {e}")
            ])

        loaded = loaded or {}
        if not isinstance(loaded, dict):
            raise ConfigValidationException([
                ConfigValidationError(
                    path="",
                    message=f"Top level must be a mapping, got {type(loaded).__name__}"
                )
            ])

        errors = validate_config(loaded)
        if errors:
            raise ConfigValidationException(errors)

        self._config = loaded
        logger.info(f"Configuration loaded from {self.config_path}")
        return loaded

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a dotted key such as ``"engine.tick_interval_seconds"``."""
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def engine_settings(self) -> EngineSettings:
        """Typed engine settings from the loaded configuration."""
        return EngineSettings.from_config(self._config)

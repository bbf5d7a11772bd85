"""Booking stream configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Store (PostgreSQL) connection and cursor settings
- Broker (Kafka) producer settings and destination topic
- Pipeline and metrics settings

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from core.errors import ConfigurationError

# Configure module logger
logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

VALID_ACKS = ["0", "1", "all", 0, 1]
VALID_COMPRESSION = ["none", "gzip", "snappy", "lz4", "zstd"]

# Never converted to int even when they look numeric
_STRING_SETTINGS = frozenset({"dsn", "topic", "bootstrap_servers", "client_id"})


@dataclass
class StoreConfig:
    """PostgreSQL connection and cursor settings."""

    dsn: str = ""
    fetch_size: int = 2000
    connect_timeout_seconds: int = 30


@dataclass
class BrokerConfig:
    """Kafka producer settings.

    All timing values in milliseconds.
    """

    bootstrap_servers: str = ""
    topic: str = ""
    acks: Union[str, int] = "all"
    compression_type: str = "gzip"
    max_retries: int = 1
    input_queue_size: int = 256
    retry_backoff_ms: int = 100
    request_timeout_ms: int = 30000
    linger_ms: int = 0
    max_batch_size: int = 16384
    client_id: str = "booking-stream"


@dataclass
class PipelineSettings:
    """Delivery pipeline behaviour."""

    progress_interval: int = 100000


@dataclass
class MetricsConfig:
    """Prometheus exporter; port 0 disables the HTTP server."""

    port: int = 0


@dataclass
class AppConfig:
    """Complete booking stream configuration.

    Configuration structure:
        store: {...}       # PostgreSQL
        broker: {...}      # Kafka producer + topic
        pipeline: {...}    # Delivery loop
        metrics: {...}     # Prometheus exporter
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    broker: BrokerConfig = field(default_factory=BrokerConfig)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    def validate(self) -> None:
        """Validate configuration for correctness and constraints.

        Raises:
            ConfigurationError: On the first invalid setting
        """
        if not self.store.dsn:
            raise ConfigurationError("store.dsn is required")
        if not self.broker.bootstrap_servers:
            raise ConfigurationError("broker.bootstrap_servers is required")
        if not self.broker.topic:
            raise ConfigurationError("broker.topic is required")

        broker = asdict(self.broker)
        self._validate_enum(broker, "acks", VALID_ACKS, "broker")
        self._validate_enum(broker, "compression_type", VALID_COMPRESSION, "broker")
        self._validate_min(broker, "max_retries", 0, "broker")
        self._validate_min(broker, "input_queue_size", 1, "broker")
        self._validate_min(broker, "retry_backoff_ms", 0, "broker")
        self._validate_min(broker, "request_timeout_ms", 1, "broker")
        self._validate_min(broker, "linger_ms", 0, "broker")
        self._validate_min(broker, "max_batch_size", 1, "broker")

        self._validate_min(asdict(self.store), "fetch_size", 1, "store")
        self._validate_min(asdict(self.pipeline), "progress_interval", 1, "pipeline")
        self._validate_min(asdict(self.metrics), "port", 0, "metrics")

    @staticmethod
    def _validate_enum(
        settings: Dict[str, Any],
        key: str,
        valid_values: List[Any],
        context: str
    ) -> None:
        """Validate that a setting's value is in a list of valid values."""
        if key in settings and settings[key] not in valid_values:
            raise ConfigurationError(
                f"{context}: {key} must be one of {valid_values}, "
                f"got '{settings[key]}'"
            )

    @staticmethod
    def _validate_min(
        settings: Dict[str, Any],
        key: str,
        min_value: int,
        context: str
    ) -> None:
        """Validate that a setting's value meets a minimum threshold (inclusive)."""
        if key in settings:
            value = settings[key]
            if not isinstance(value, int) or isinstance(value, bool) or value < min_value:
                raise ConfigurationError(
                    f"{context}: {key} must be an integer >= {min_value}, got {value!r}"
                )


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _coerce_int(value: Any) -> Any:
    """Environment-expanded values arrive as strings; convert numeric ones."""
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return value


def _build_section(cls, data: Dict[str, Any], section: str):
    known = {f for f in cls.__dataclass_fields__}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown settings in '{section}' section: {sorted(unknown)}"
        )
    values = {
        key: value if key in _STRING_SETTINGS else _coerce_int(value)
        for key, value in data.items()
    }
    return cls(**values)


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> AppConfig:
    """Load booking stream configuration from config.yaml.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.

    Raises:
        ConfigurationError: File missing, unknown keys or invalid values
    """
    if config_path is None:
        config_path = Path(os.getenv("BOOKING_STREAM_CONFIG", str(DEFAULT_CONFIG_FILE)))

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}\n"
            f"Expected file: config/config.yaml"
        )

    logger.info(f"Loading configuration from file: {config_path}")
    try:
        yaml_data = load_yaml(config_path)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}", cause=e)
    yaml_data = _expand_env_vars(yaml_data)

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        yaml_data = _deep_merge(yaml_data, overrides)

    for section in ("store", "broker"):
        if section not in yaml_data:
            raise ConfigurationError(
                f"Invalid config file: missing '{section}:' section\n"
                "See config.yaml for correct structure"
            )

    config = AppConfig(
        store=_build_section(StoreConfig, yaml_data.get("store") or {}, "store"),
        broker=_build_section(BrokerConfig, yaml_data.get("broker") or {}, "broker"),
        pipeline=_build_section(PipelineSettings, yaml_data.get("pipeline") or {}, "pipeline"),
        metrics=_build_section(MetricsConfig, yaml_data.get("metrics") or {}, "metrics"),
    )

    logger.debug("Configuration loaded successfully:")
    logger.debug(f"  - Bootstrap servers: {config.broker.bootstrap_servers}")
    logger.debug(f"  - Topic: {config.broker.topic}")

    config.validate()
    logger.debug("Configuration validation passed")

    return config


def _cli_main() -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(description="Booking stream configuration tool")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--json", action="store_true", help="Output merged config as JSON")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        config = load_config(config_path=args.config)
    except ConfigurationError as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(asdict(config), indent=2))
    else:
        print("✓ Configuration validation passed")
        print(yaml.dump(asdict(config), default_flow_style=False, sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())

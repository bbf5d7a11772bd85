"""Configuration loading for the booking stream.

Configuration is loaded from a single YAML file, config/config.yaml by
default or the path in BOOKING_STREAM_CONFIG.

Usage:
    from config import load_config

    config = load_config()
    print(config.broker.topic)
"""

from config.config import (
    AppConfig,
    BrokerConfig,
    MetricsConfig,
    PipelineSettings,
    StoreConfig,
    load_config,
)

__all__ = [
    "AppConfig",
    "BrokerConfig",
    "MetricsConfig",
    "PipelineSettings",
    "StoreConfig",
    "load_config",
]

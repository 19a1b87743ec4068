"""Configuration: TOML settings, profiles and logging setup."""

from perpview.config.settings import (
    AggregatorConfig,
    Settings,
    configure_logging,
    get_settings,
    load_config,
)

__all__ = ["AggregatorConfig", "Settings", "configure_logging", "get_settings", "load_config"]

"""Configuration loading."""

from wifi_station.config.config_manager import ConfigError, ConfigManager

__all__ = ["ConfigError", "ConfigManager"]

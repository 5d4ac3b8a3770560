"""Configuration manager for loading and validating config files."""

import copy
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, TypeVar, Union

import yaml

T = TypeVar("T")

logger = logging.getLogger(__name__)

BACKENDS = ("nmcli", "mock")

_TIMINGS = [
    "ready_poll_interval",
    "ready_timeout",
    "scan_timeout",
    "connect_timeout",
    "reconnect_delay",
]


class ConfigError(Exception):
    """Raised when configuration is invalid."""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class ConfigManager:
    """Manages loading and accessing configuration from YAML files."""

    def __init__(self, user_config_path: str) -> None:
        """Initialize the configuration manager.

        Args:
            user_config_path: Path to user config file (required)

        Raises:
            ConfigError: If config file doesn't exist or is invalid
        """
        self._config: Dict[str, Any] = {}
        self._user_config_path = user_config_path
        self._load_config()

    def _load_yaml_file(self, path: Path) -> Dict[str, Any]:
        """Load a YAML file and return its contents.

        Raises:
            ConfigError: If file cannot be read or parsed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(f"Top level of {path} must be a mapping")
        return content

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._config.get(name, {})
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{name}' section must be a dictionary")
        return section

    def _validate_config(self) -> None:  # pylint: disable=too-many-branches
        """Validate the loaded configuration.

        Raises:
            ConfigError: If configuration is invalid
        """
        if "wifi" not in self._config:
            raise ConfigError("Missing required config section: wifi")

        wifi = self._section("wifi")
        for key in ("ssid", "password"):
            value = wifi.get(key)
            if value is not None and not isinstance(value, str):
                raise ConfigError(f"'wifi.{key}' must be a string")

        if "country" in wifi:
            country = wifi["country"]
            if not isinstance(country, dict):
                raise ConfigError("'wifi.country' must be a dictionary")
            code = country.get("code")
            if code is not None and (not isinstance(code, str) or len(code) != 2):
                raise ConfigError("'wifi.country.code' must be a two-letter code")
            for key in ("first_channel", "channel_count"):
                if key in country and not _is_positive_int(country[key]):
                    raise ConfigError(f"'wifi.country.{key}' must be a positive integer")

        interface = self._section("interface")
        backend = interface.get("backend", "nmcli")
        if backend not in BACKENDS:
            raise ConfigError(f"'interface.backend' must be one of: {', '.join(BACKENDS)}")
        if "name" in interface and (not isinstance(interface["name"], str) or not interface["name"]):
            raise ConfigError("'interface.name' must be a non-empty string")
        if "monitor_interval" in interface:
            value = interface["monitor_interval"]
            if not _is_number(value) or value <= 0:
                raise ConfigError("'interface.monitor_interval' must be a positive number")

        store = self._section("store")
        if "path" in store and not isinstance(store["path"], str):
            raise ConfigError("'store.path' must be a string")

        # All timings are optional; defaults match the device firmware
        timing = self._section("timing")
        for timing_name in _TIMINGS:
            if timing_name in timing:
                value = timing[timing_name]
                if not _is_number(value):
                    raise ConfigError(f"Timing '{timing_name}' must be a number")
                if value <= 0:
                    raise ConfigError(f"Timing '{timing_name}' must be positive")

        reconnect = self._section("reconnect")
        max_attempts = reconnect.get("max_attempts")
        if max_attempts is not None and not _is_positive_int(max_attempts):
            raise ConfigError("'reconnect.max_attempts' must be null or a positive integer")

        events = self._section("events")
        if "queue_size" in events and not _is_positive_int(events["queue_size"]):
            raise ConfigError("'events.queue_size' must be a positive integer")

    def _load_config(self) -> None:
        """Load configuration from user config file.

        Raises:
            ConfigError: If config file doesn't exist or is invalid
        """
        config_path = Path(self._user_config_path)

        if not config_path.exists():
            raise ConfigError(
                f"Configuration file not found: {config_path}\n"
                f"Please create a config file. See config.yml.example for reference."
            )

        logger.info("Loading configuration from: %s", config_path)
        self._config = self._load_yaml_file(config_path)

        self._validate_config()
        logger.info("Configuration loaded and validated successfully")

    def get(self, key: str, default: Optional[T] = None) -> Union[Any, T]:
        """Get a configuration value by key.

        Supports dot notation for nested values (e.g., 'wifi.country.code')

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value or default (type matches default when provided)
        """
        value: Any = self._config

        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default  # type: ignore[return-value]

        return value

    def get_wifi_config(self) -> Dict[str, Any]:
        """Get the wifi section."""
        return self.get("wifi", {}) or {}

    def to_dict(self) -> Dict[str, Any]:
        """Get the entire configuration as a dictionary."""
        return self._config.copy()

    def update_config(self, updates: Dict[str, Any]) -> None:
        """Update configuration values with validation.

        Args:
            updates: Dictionary of config updates (dot notation keys)

        Raises:
            ConfigError: If updates would make config invalid (nothing is applied)
        """
        candidate = copy.deepcopy(self._config)
        for key, value in updates.items():
            keys = key.split(".")
            d = candidate
            for k in keys[:-1]:
                d = d.setdefault(k, {})
            d[keys[-1]] = value

        previous = self._config
        self._config = candidate
        try:
            self._validate_config()
        except ConfigError:
            self._config = previous
            raise

    def save_config(self, output_path: str) -> None:
        """Save current configuration to YAML file (atomic write).

        Args:
            output_path: Path to save configuration file

        Raises:
            ConfigError: If save fails
        """
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                delete=False,
                suffix=".yaml",
                encoding="utf-8",
                dir=os.path.dirname(os.path.abspath(output_path)),
            ) as tmp:
                yaml.dump(self._config, tmp, default_flow_style=False, allow_unicode=True)
                tmp_path = tmp.name

            shutil.move(tmp_path, output_path)
            logger.info("Configuration saved to %s", output_path)

        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConfigError(f"Failed to save config: {e}") from e

    def to_dict_safe(self) -> Dict[str, Any]:
        """Export config with sensitive data masked.

        Returns:
            Config dict with the Wi-Fi password masked
        """
        config = copy.deepcopy(self._config)
        wifi = config.get("wifi")
        if isinstance(wifi, dict) and wifi.get("password"):
            wifi["password"] = "***MASKED***"
        return config

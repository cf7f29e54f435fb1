"""
Configuration Dataclasses

Type-safe configuration for Neptun Smart devices, loaded from plain
mappings or a YAML file.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

# Modbus defaults for the Neptun Smart controller
DEFAULT_PORT = 503
DEFAULT_UNIT_ID = 240
DEFAULT_UPDATE_INTERVAL_S = 60
DEFAULT_NAME = "Neptun Smart"

# Fixed transport timings
REQUEST_TIMEOUT_S = 5.0
RECONNECT_COOLDOWN_S = 10.0

# Wireless sensors report battery in percent; below this is "low"
LOW_BATTERY_THRESHOLD = 20
MAX_WIRED_LINES = 4


@dataclass
class DeviceConfig:
    """Device configuration"""
    host: str
    port: int = DEFAULT_PORT
    unit_id: int = DEFAULT_UNIT_ID
    id: str = ""
    name: str = DEFAULT_NAME
    update_interval_s: int = DEFAULT_UPDATE_INTERVAL_S
    wired_sensors_count: int = 0
    groups_enabled: bool = False
    health_port: int | None = None

    @property
    def device_id(self) -> str:
        """Stable identifier, falls back to host:port"""
        return self.id or f"{self.host}:{self.port}"


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    """Return the first present key (snake_case first, then legacy camelCase)"""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def load_device_config(data: dict) -> DeviceConfig:
    """Load DeviceConfig from dictionary (e.g., one entry of a YAML file)"""
    if not isinstance(data, dict):
        raise ConfigError(f"Device entry must be a mapping, got {type(data).__name__}")

    host = _pick(data, "host")
    if not host:
        raise ConfigError("Device host is required")

    try:
        health_port = _pick(data, "health_port")
        config = DeviceConfig(
            host=str(host),
            port=int(_pick(data, "port", default=DEFAULT_PORT)),
            unit_id=int(_pick(data, "unit_id", "address", default=DEFAULT_UNIT_ID)),
            id=str(_pick(data, "id", default="")),
            name=str(_pick(data, "name", "displayName", default=DEFAULT_NAME)),
            update_interval_s=int(
                _pick(data, "update_interval_s", "updateInterval",
                      default=DEFAULT_UPDATE_INTERVAL_S)
            ),
            wired_sensors_count=int(
                _pick(data, "wired_sensors_count", "wiredSensorsCount", default=0)
            ),
            groups_enabled=bool(
                _pick(data, "groups_enabled", "groupsEnabled", default=False)
            ),
            health_port=int(health_port) if health_port is not None else None,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for device {host}: {e}") from e

    if not 1 <= config.port <= 65535:
        raise ConfigError(f"Port out of range: {config.port}")
    if not 0 <= config.unit_id <= 255:
        raise ConfigError(f"Unit id out of range: {config.unit_id}")
    if not 0 <= config.wired_sensors_count <= MAX_WIRED_LINES:
        raise ConfigError(
            f"wired_sensors_count must be 0..{MAX_WIRED_LINES}, "
            f"got {config.wired_sensors_count}"
        )
    if config.update_interval_s <= 0:
        raise ConfigError(
            f"update_interval_s must be positive, got {config.update_interval_s}"
        )

    return config


def load_config_file(path: str | Path) -> list[DeviceConfig]:
    """
    Load device configurations from a YAML file.

    Expected layout:

        devices:
          - host: 192.168.1.50
            port: 503
            unit_id: 240
            wired_sensors_count: 2
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")

    devices = data.get("devices") or []
    if not isinstance(devices, list):
        raise ConfigError("'devices' must be a list")

    return [load_device_config(d) for d in devices]

"""Device configuration loading"""

import pytest

from neptun_smart.common.config import (
    DEFAULT_PORT,
    DEFAULT_UNIT_ID,
    DEFAULT_UPDATE_INTERVAL_S,
    DeviceConfig,
    load_config_file,
    load_device_config,
)
from neptun_smart.common.exceptions import ConfigError


def test_defaults():
    config = load_device_config({"host": "192.168.1.50"})

    assert config.port == DEFAULT_PORT == 503
    assert config.unit_id == DEFAULT_UNIT_ID == 240
    assert config.update_interval_s == DEFAULT_UPDATE_INTERVAL_S == 60
    assert config.groups_enabled is False
    assert config.health_port is None
    assert config.device_id == "192.168.1.50:503"


def test_camel_case_aliases():
    config = load_device_config({
        "host": "192.168.1.50",
        "address": 17,
        "displayName": "Bathroom",
        "updateInterval": 30,
        "wiredSensorsCount": 3,
        "groupsEnabled": True,
    })

    assert config == DeviceConfig(
        host="192.168.1.50",
        unit_id=17,
        name="Bathroom",
        update_interval_s=30,
        wired_sensors_count=3,
        groups_enabled=True,
    )


def test_snake_case_wins_over_alias():
    config = load_device_config({"host": "h", "unit_id": 1, "address": 2})
    assert config.unit_id == 1


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"host": ""},
        {"host": "h", "port": 0},
        {"host": "h", "port": 70000},
        {"host": "h", "unit_id": 256},
        {"host": "h", "wired_sensors_count": 5},
        {"host": "h", "update_interval_s": 0},
        {"host": "h", "port": "not-a-port"},
    ],
)
def test_invalid_device_config(data):
    with pytest.raises(ConfigError):
        load_device_config(data)


def test_entry_must_be_mapping():
    with pytest.raises(ConfigError, match="mapping"):
        load_device_config(["host"])


def test_load_config_file(tmp_path):
    path = tmp_path / "devices.yaml"
    path.write_text(
        "devices:\n"
        "  - host: 192.168.1.50\n"
        "    id: kitchen\n"
        "    wired_sensors_count: 2\n"
        "  - host: 192.168.1.51\n"
        "    port: 5020\n"
        "    health_port: 8085\n"
    )

    configs = load_config_file(path)

    assert [c.device_id for c in configs] == ["kitchen", "192.168.1.51:5020"]
    assert configs[0].wired_sensors_count == 2
    assert configs[1].health_port == 8085


def test_empty_config_file(tmp_path):
    path = tmp_path / "devices.yaml"
    path.write_text("")

    assert load_config_file(path) == []


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config_file(tmp_path / "missing.yaml")


def test_malformed_yaml(tmp_path):
    path = tmp_path / "devices.yaml"
    path.write_text("devices: [unclosed\n")

    with pytest.raises(ConfigError):
        load_config_file(path)


def test_devices_must_be_list(tmp_path):
    path = tmp_path / "devices.yaml"
    path.write_text("devices:\n  host: 192.168.1.50\n")

    with pytest.raises(ConfigError, match="list"):
        load_config_file(path)

"""
Neptun Smart Register Map

Holding register addresses and the typed values decoded from them.
"""

from dataclasses import dataclass, fields
from enum import IntEnum

from neptun_smart.common.config import LOW_BATTERY_THRESHOLD


class Register(IntEnum):
    """Holding register addresses"""
    # 13-bit value
    CONFIG = 0
    # 4-bit value
    WIRED_SENSORS_STATUS = 3
    # Number of wireless sensors paired
    WIRELESS_SENSORS_COUNT = 6
    # First wireless sensor, sensor i lives at 57 + i
    WIRELESS_SENSOR_STATUS = 57


@dataclass(frozen=True)
class Config:
    """Device configuration register (field order = bit position)"""
    floor_wash_mode: bool = False                                # 0
    alarm_first_group: bool = False                              # 1
    alarm_second_group: bool = False                             # 2
    wireless_sensors_low_battery: bool = False                   # 3
    wireless_sensors_connection_lost: bool = False               # 4
    valve_close_on_first_group_lost_connection: bool = False     # 5
    valve_close_on_second_group_lost_connection: bool = False    # 6
    pairing_mode_active: bool = False                            # 7
    valve_open_first_group: bool = False                         # 8
    valve_open_second_group: bool = False                        # 9
    groups_enabled: bool = False                                 # A
    valve_close_on_lost_connection: bool = False                 # B
    keyboard_locked: bool = False                                # C


@dataclass(frozen=True)
class WiredSensorsStatus:
    """Wired leak sensor lines"""
    alarm_detected_line_one: bool = False    # 0
    alarm_detected_line_two: bool = False    # 1
    alarm_detected_line_three: bool = False  # 2
    alarm_detected_line_four: bool = False   # 3

    @property
    def lines(self) -> tuple[bool, ...]:
        return (
            self.alarm_detected_line_one,
            self.alarm_detected_line_two,
            self.alarm_detected_line_three,
            self.alarm_detected_line_four,
        )


@dataclass(frozen=True)
class WirelessSensorsCount:
    """Number of wireless sensors paired with the device"""
    count: int = 0


@dataclass(frozen=True)
class WirelessSensorStatus:
    """Status of a single wireless sensor"""
    alarm_detected: bool = False   # 0
    connection_lost: bool = False  # 2
    battery_level: int = 0         # F-8

    @property
    def battery_low(self) -> bool:
        return self.battery_level < LOW_BATTERY_THRESHOLD


# Bit position of each flag, in register order
CONFIG_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(Config))
WIRED_SENSORS_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(WiredSensorsStatus))

WIRELESS_ALARM_BIT = 0
WIRELESS_CONNECTION_LOST_BIT = 2
WIRELESS_BATTERY_SHIFT = 8

# Highest count whose status registers still fit the 16-bit address space
MAX_WIRELESS_SENSORS = 0x10000 - Register.WIRELESS_SENSOR_STATUS


def wireless_sensor_register(index: int) -> int:
    """Register address for wireless sensor ``index`` (0-based)"""
    if index < 0:
        raise ValueError(f"Wireless sensor index must be >= 0, got {index}")
    address = Register.WIRELESS_SENSOR_STATUS + index
    if address > 0xFFFF:
        raise ValueError(f"Wireless sensor index out of range: {index}")
    return address

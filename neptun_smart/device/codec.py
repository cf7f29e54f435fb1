"""
Register Codec

Pure conversions between raw 16-bit register words and the typed
register values. Any uint16 decodes; unused bits are masked off.
"""

from .registers import (
    CONFIG_FIELDS,
    WIRED_SENSORS_FIELDS,
    WIRELESS_ALARM_BIT,
    WIRELESS_BATTERY_SHIFT,
    WIRELESS_CONNECTION_LOST_BIT,
    Config,
    WiredSensorsStatus,
    WirelessSensorsCount,
    WirelessSensorStatus,
)

WORD_MASK = 0xFFFF
CONFIG_MASK = (1 << len(CONFIG_FIELDS)) - 1            # 0x1FFF
WIRED_SENSORS_MASK = (1 << len(WIRED_SENSORS_FIELDS)) - 1  # 0x000F


def get_bit(value: int, bit: int) -> bool:
    return bool((value >> bit) & 1)


def _pack_bits(flags: list[bool]) -> int:
    word = 0
    for bit, flag in enumerate(flags):
        if flag:
            word |= 1 << bit
    return word


def decode_config(word: int) -> Config:
    return Config(**{
        name: get_bit(word, bit) for bit, name in enumerate(CONFIG_FIELDS)
    })


def encode_config(config: Config) -> int:
    return _pack_bits([getattr(config, name) for name in CONFIG_FIELDS]) & CONFIG_MASK


def decode_wired_sensors_status(word: int) -> WiredSensorsStatus:
    return WiredSensorsStatus(**{
        name: get_bit(word, bit) for bit, name in enumerate(WIRED_SENSORS_FIELDS)
    })


def encode_wired_sensors_status(status: WiredSensorsStatus) -> int:
    return _pack_bits(list(status.lines)) & WIRED_SENSORS_MASK


def decode_wireless_sensors_count(word: int) -> WirelessSensorsCount:
    return WirelessSensorsCount(count=word & WORD_MASK)


def decode_wireless_sensor_status(word: int) -> WirelessSensorStatus:
    """Alarm in bit 0, lost connection in bit 2, battery level in the high byte"""
    return WirelessSensorStatus(
        alarm_detected=get_bit(word, WIRELESS_ALARM_BIT),
        connection_lost=get_bit(word, WIRELESS_CONNECTION_LOST_BIT),
        battery_level=(word >> WIRELESS_BATTERY_SHIFT) & 0xFF,
    )


def encode_wireless_sensor_status(status: WirelessSensorStatus) -> int:
    word = (status.battery_level & 0xFF) << WIRELESS_BATTERY_SHIFT
    if status.alarm_detected:
        word |= 1 << WIRELESS_ALARM_BIT
    if status.connection_lost:
        word |= 1 << WIRELESS_CONNECTION_LOST_BIT
    return word

"""
Device Layer - Neptun Smart Modbus communication

Responsibilities:
- Register map and bit codec
- Modbus-TCP session lifecycle with throttled reconnects
- Register reads and verified writes
- Periodic polling and valve commands
"""

from .client import NeptunSmartModbus
from .connection import ConnectionManager, ConnectionState
from .registers import (
    Config,
    Register,
    WiredSensorsStatus,
    WirelessSensorsCount,
    WirelessSensorStatus,
)
from .service import DeviceService, DeviceSnapshot

__all__ = [
    "NeptunSmartModbus",
    "ConnectionManager",
    "ConnectionState",
    "Config",
    "Register",
    "WiredSensorsStatus",
    "WirelessSensorsCount",
    "WirelessSensorStatus",
    "DeviceService",
    "DeviceSnapshot",
]

"""
Common Utilities

Shared modules used across the device layer:
- config.py - Device configuration dataclasses and loaders
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
"""

from .config import (
    DeviceConfig,
    DEFAULT_PORT,
    DEFAULT_UNIT_ID,
    REQUEST_TIMEOUT_S,
    RECONNECT_COOLDOWN_S,
    LOW_BATTERY_THRESHOLD,
    load_device_config,
    load_config_file,
)
from .exceptions import (
    FailureKind,
    NeptunError,
    ConfigError,
    DeviceError,
    CommunicationError,
    DisconnectedError,
    EmptyResultError,
    WriteError,
    WriteMismatchError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    log_device_read,
    log_device_write,
)

__all__ = [
    # Config
    "DeviceConfig",
    "DEFAULT_PORT",
    "DEFAULT_UNIT_ID",
    "REQUEST_TIMEOUT_S",
    "RECONNECT_COOLDOWN_S",
    "LOW_BATTERY_THRESHOLD",
    "load_device_config",
    "load_config_file",
    # Exceptions
    "FailureKind",
    "NeptunError",
    "ConfigError",
    "DeviceError",
    "CommunicationError",
    "DisconnectedError",
    "EmptyResultError",
    "WriteError",
    "WriteMismatchError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "log_device_read",
    "log_device_write",
]

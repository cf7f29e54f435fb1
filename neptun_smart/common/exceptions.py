"""
Custom Exception Classes for Neptun Smart

Hierarchical exception structure for error handling in the device layer.
"""

from enum import Enum


class FailureKind(str, Enum):
    """Transport failure kinds reported by the Modbus session"""
    TIMEOUT = "timeout"
    CONNECTION_RESET = "connection_reset"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_ABORTED = "connection_aborted"
    HOST_UNREACHABLE = "host_unreachable"
    HOST_DOWN = "host_down"
    NETWORK_UNREACHABLE = "network_unreachable"
    NETWORK_DOWN = "network_down"
    NETWORK_RESET = "network_reset"
    NOT_CONNECTED = "not_connected"
    SHUTDOWN = "shutdown"
    WOULD_BLOCK = "would_block"
    # Device answered with a Modbus exception or a malformed frame
    PROTOCOL = "protocol"
    UNKNOWN = "unknown"


class NeptunError(Exception):
    """Base exception for all Neptun Smart errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(NeptunError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class DeviceError(NeptunError):
    """Device communication errors"""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        recoverable: bool = True,
    ):
        self.host = host
        self.port = port
        super().__init__(f"Device Error: {message}", recoverable)


class CommunicationError(DeviceError):
    """Modbus/network transport errors"""

    def __init__(
        self,
        message: str,
        kind: FailureKind = FailureKind.UNKNOWN,
        host: str | None = None,
        port: int | None = None,
    ):
        self.kind = kind
        super().__init__(message, host, port, recoverable=True)


class DisconnectedError(DeviceError):
    """No live session; raised before any I/O is attempted"""

    def __init__(self, host: str | None = None, port: int | None = None):
        super().__init__("Disconnected.", host, port, recoverable=True)


class EmptyResultError(DeviceError):
    """Device answered a read with zero data words"""

    def __init__(
        self,
        register: int,
        host: str | None = None,
        port: int | None = None,
    ):
        self.register = register
        super().__init__(
            f"No result returned for register {register}.", host, port
        )


class WriteError(DeviceError):
    """Register write failed errors"""

    def __init__(
        self,
        message: str,
        register: int | None = None,
        value: int | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        self.register = register
        self.value = value
        super().__init__(message, host, port, recoverable=True)


class WriteMismatchError(WriteError):
    """Device acknowledged a different value than the one written"""

    def __init__(
        self,
        register: int | None = None,
        expected_value: int | None = None,
        actual_value: int | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        self.expected_value = expected_value
        self.actual_value = actual_value
        message = (
            f"Setting value failed: register {register} expected "
            f"{expected_value}, got {actual_value}"
        )
        super().__init__(message, register, expected_value, host, port)

"""
Async Modbus Session

Wrapper around pymodbus for one Modbus-TCP session to a Neptun Smart
device. Every transport failure leaves this module as a
CommunicationError carrying a FailureKind.
"""

import asyncio
from collections.abc import Awaitable, Callable

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from neptun_smart.common.config import DEFAULT_PORT, DEFAULT_UNIT_ID, REQUEST_TIMEOUT_S
from neptun_smart.common.exceptions import CommunicationError, FailureKind
from neptun_smart.common.logging_setup import get_service_logger

from .error_classifier import failure_kind_from_exception

logger = get_service_logger("device.modbus")

_TRANSPORT_ERRORS = (ModbusException, OSError, asyncio.TimeoutError)


class ModbusSession:
    """
    Live Modbus-TCP session.

    Owned by the ConnectionManager; replaced on reconnect, never reopened.
    """

    def __init__(
        self,
        client: AsyncModbusTcpClient,
        host: str,
        port: int = DEFAULT_PORT,
        unit_id: int = DEFAULT_UNIT_ID,
    ):
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self._client = client

    @property
    def connected(self) -> bool:
        return bool(self._client.connected)

    def _error(self, message: str, exc: BaseException) -> CommunicationError:
        return CommunicationError(
            f"{message} {self.host}:{self.port}: {exc}",
            kind=failure_kind_from_exception(exc),
            host=self.host,
            port=self.port,
        )

    async def read_holding_registers(self, address: int, count: int = 1) -> list[int]:
        """
        Read holding registers (FC03).

        Returns:
            Register words as returned by the device (may be empty)
        """
        try:
            response = await self._client.read_holding_registers(
                address=address,
                count=count,
                device_id=self.unit_id,
            )
        except _TRANSPORT_ERRORS as e:
            raise self._error("Read failed from", e) from e

        if response.isError():
            raise CommunicationError(
                f"Modbus error reading register {address}: {response}",
                kind=FailureKind.PROTOCOL,
                host=self.host,
                port=self.port,
            )

        return list(response.registers or [])

    async def write_register(self, address: int, value: int) -> int | None:
        """
        Write a single holding register (FC06).

        Returns:
            Value acknowledged by the device, None if the echo was empty
        """
        try:
            response = await self._client.write_register(
                address=address,
                value=value,
                device_id=self.unit_id,
            )
        except _TRANSPORT_ERRORS as e:
            raise self._error("Write failed to", e) from e

        if response.isError():
            raise CommunicationError(
                f"Modbus error writing register {address}: {response}",
                kind=FailureKind.PROTOCOL,
                host=self.host,
                port=self.port,
            )

        registers = response.registers or []
        return registers[0] if registers else None

    def close(self) -> None:
        """Close the session (best-effort)"""
        try:
            self._client.close()
        except _TRANSPORT_ERRORS as e:
            logger.debug(f"Error closing session to {self.host}:{self.port}: {e}")
        logger.debug(f"Closed session to {self.host}:{self.port}")


SessionFactory = Callable[[str, int, int, float], Awaitable[ModbusSession]]


async def open_session(
    host: str,
    port: int = DEFAULT_PORT,
    unit_id: int = DEFAULT_UNIT_ID,
    timeout: float = REQUEST_TIMEOUT_S,
) -> ModbusSession:
    """
    Open a Modbus-TCP session.

    Library-level retries are disabled; reconnects are throttled by the
    ConnectionManager instead.

    Raises:
        CommunicationError: the TCP connection could not be established
    """
    client = AsyncModbusTcpClient(
        host=host,
        port=port,
        timeout=timeout,
        retries=0,
    )

    try:
        connected = await client.connect()
    except _TRANSPORT_ERRORS as e:
        client.close()
        raise CommunicationError(
            f"Connection error to {host}:{port}: {e}",
            kind=failure_kind_from_exception(e),
            host=host,
            port=port,
        ) from e

    if not connected:
        client.close()
        raise CommunicationError(
            f"Failed to connect to Modbus device at {host}:{port}",
            kind=FailureKind.NOT_CONNECTED,
            host=host,
            port=port,
        )

    logger.debug(f"Connected to Modbus device at {host}:{port} (unit {unit_id})")
    return ModbusSession(client, host=host, port=port, unit_id=unit_id)

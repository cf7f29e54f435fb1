"""
Neptun Smart Modbus Client

Register reads and verified writes on top of the ConnectionManager,
plus typed fetches for each register in the device map.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from neptun_smart.common.config import (
    DEFAULT_PORT,
    DEFAULT_UNIT_ID,
    RECONNECT_COOLDOWN_S,
    REQUEST_TIMEOUT_S,
    DeviceConfig,
)
from neptun_smart.common.exceptions import (
    CommunicationError,
    DisconnectedError,
    EmptyResultError,
    WriteMismatchError,
)
from neptun_smart.common.logging_setup import (
    get_service_logger,
    log_device_read,
    log_device_write,
)

from .codec import (
    decode_config,
    decode_wired_sensors_status,
    decode_wireless_sensor_status,
    decode_wireless_sensors_count,
    encode_config,
)
from .connection import ConnectionManager
from .error_classifier import ErrorClass, classify
from .modbus_client import ModbusSession, SessionFactory, open_session
from .registers import (
    Config,
    MAX_WIRELESS_SENSORS,
    Register,
    WiredSensorsStatus,
    WirelessSensorsCount,
    WirelessSensorStatus,
    wireless_sensor_register,
)

logger = get_service_logger("device.client")


class NeptunSmartModbus:
    """
    Async client for one Neptun Smart controller.

    Register operations never wait for a connection: without a live
    session they fail with DisconnectedError. Transient transport
    failures schedule a throttled reconnect and are re-raised to the
    caller; nothing is retried here.

    Callers should issue operations for one device sequentially.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        unit_id: int = DEFAULT_UNIT_ID,
        on_connected: Callable[[], Any] | None = None,
        name: str | None = None,
        session_factory: SessionFactory = open_session,
        timeout: float = REQUEST_TIMEOUT_S,
        reconnect_cooldown_s: float = RECONNECT_COOLDOWN_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name or f"{host}:{port}"
        self.connection = ConnectionManager(
            host=host,
            port=port,
            unit_id=unit_id,
            on_connected=on_connected,
            session_factory=session_factory,
            timeout=timeout,
            reconnect_cooldown_s=reconnect_cooldown_s,
            sleep=sleep,
        )

    @classmethod
    def from_config(
        cls,
        config: DeviceConfig,
        on_connected: Callable[[], Any] | None = None,
        **kwargs: Any,
    ) -> "NeptunSmartModbus":
        return cls(
            host=config.host,
            port=config.port,
            unit_id=config.unit_id,
            on_connected=on_connected,
            name=config.name,
            **kwargs,
        )

    @property
    def host(self) -> str:
        return self.connection.host

    @property
    def port(self) -> int:
        return self.connection.port

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    async def start(self) -> bool:
        """Initial connect; failures are retried in the background"""
        return await self.connection.connect()

    async def stop(self) -> None:
        await self.connection.disconnect()

    # ------------------------------------------------------------------
    # Register access
    # ------------------------------------------------------------------

    def _require_session(self) -> ModbusSession:
        session = self.connection.session
        if session is None:
            raise DisconnectedError(host=self.host, port=self.port)
        return session

    def _check_error(self, error: CommunicationError) -> None:
        if classify(error) is ErrorClass.TRANSIENT:
            logger.warning(
                f"Transient failure on {self.name} ({error.kind.value}), "
                f"scheduling reconnect",
                extra={"device": self.name, "kind": error.kind.value},
            )
            self.connection.request_reconnect()

    async def read_register(self, address: int) -> int:
        """
        Read one holding register.

        Raises:
            DisconnectedError: no live session
            EmptyResultError: the device returned no data words
            CommunicationError: transport failure (transient ones also
                schedule a reconnect)
        """
        address = int(address)
        session = self._require_session()

        try:
            registers = await session.read_holding_registers(address, 1)
        except CommunicationError as e:
            log_device_read(logger.logger, self.name, address, None, success=False)
            self._check_error(e)
            raise

        if not registers:
            raise EmptyResultError(address, host=self.host, port=self.port)

        value = registers[0]
        log_device_read(logger.logger, self.name, address, value)
        return value

    async def write_register_verified(self, address: int, value: int) -> int:
        """
        Write one holding register and check the device's echo.

        Returns:
            The value acknowledged by the device

        Raises:
            DisconnectedError: no live session
            WriteMismatchError: acknowledged value differs from ``value``
            CommunicationError: transport failure (transient ones also
                schedule a reconnect)
        """
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"Register value out of range: {value}")

        address = int(address)
        session = self._require_session()

        try:
            acknowledged = await session.write_register(address, value)
        except CommunicationError as e:
            log_device_write(logger.logger, self.name, address, value, success=False)
            self._check_error(e)
            raise

        if acknowledged != value:
            log_device_write(logger.logger, self.name, address, value, success=False)
            raise WriteMismatchError(
                register=address,
                expected_value=value,
                actual_value=acknowledged,
                host=self.host,
                port=self.port,
            )

        log_device_write(logger.logger, self.name, address, value)
        return acknowledged

    # ------------------------------------------------------------------
    # Typed fetches
    # ------------------------------------------------------------------

    async def fetch_config(self) -> Config:
        return decode_config(await self.read_register(Register.CONFIG))

    async def fetch_wired_sensors_status(self) -> WiredSensorsStatus:
        return decode_wired_sensors_status(
            await self.read_register(Register.WIRED_SENSORS_STATUS)
        )

    async def fetch_wireless_sensors_count(self) -> WirelessSensorsCount:
        return decode_wireless_sensors_count(
            await self.read_register(Register.WIRELESS_SENSORS_COUNT)
        )

    async def fetch_wireless_sensor_status(self, index: int) -> WirelessSensorStatus:
        address = wireless_sensor_register(index)
        return decode_wireless_sensor_status(await self.read_register(address))

    async def fetch_wireless_sensor_statuses(self) -> list[WirelessSensorStatus]:
        """Count, then each sensor in turn (one request in flight)"""
        count = await self.fetch_wireless_sensors_count()
        total = count.count
        if total > MAX_WIRELESS_SENSORS:
            logger.warning(
                f"{self.name} reports {total} wireless sensors, "
                f"reading the first {MAX_WIRELESS_SENSORS}",
                extra={"device": self.name, "count": total},
            )
            total = MAX_WIRELESS_SENSORS

        statuses = []
        for index in range(total):
            statuses.append(await self.fetch_wireless_sensor_status(index))
        return statuses

    async def write_config_register(self, config: Config) -> Config:
        """
        Write the configuration register.

        Returns:
            The configuration the device acknowledged
        """
        acknowledged = await self.write_register_verified(
            Register.CONFIG, encode_config(config)
        )
        return decode_config(acknowledged)

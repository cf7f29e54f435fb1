"""
Connection Manager

Owns the Modbus-TCP session lifecycle for one device and repairs the
connection through the reconnect throttler.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from neptun_smart.common.config import (
    DEFAULT_PORT,
    DEFAULT_UNIT_ID,
    RECONNECT_COOLDOWN_S,
    REQUEST_TIMEOUT_S,
)
from neptun_smart.common.exceptions import CommunicationError
from neptun_smart.common.logging_setup import get_service_logger

from .modbus_client import ModbusSession, SessionFactory, open_session
from .throttle import ReconnectThrottler

logger = get_service_logger("device.connection")


class ConnectionState(str, Enum):
    """Session lifecycle states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionManager:
    """
    Modbus session owner for one device.

    Handles:
    - Opening the session (unit id and 5 s request timeout)
    - Post-connect notification, once per successful connection
    - Forced retry of failed connects via the throttler
    - Closing a stale session before reconnecting
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        unit_id: int = DEFAULT_UNIT_ID,
        on_connected: Callable[[], Any] | None = None,
        session_factory: SessionFactory = open_session,
        timeout: float = REQUEST_TIMEOUT_S,
        reconnect_cooldown_s: float = RECONNECT_COOLDOWN_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self.timeout = timeout

        self._on_connected = on_connected
        self._session_factory = session_factory
        self._session: ModbusSession | None = None
        self._state = ConnectionState.DISCONNECTED
        self._last_connected: datetime | None = None
        self._last_error: str | None = None
        # Bumped by disconnect(); a connect that started earlier drops its result
        self._generation = 0

        self.throttler = ReconnectThrottler(
            self.reconnect,
            cooldown_s=reconnect_cooldown_s,
            sleep=sleep,
        )

        self.stats = {
            "connections": 0,
            "connect_failures": 0,
            "reconnects": 0,
            "disconnections": 0,
        }

    @property
    def session(self) -> ModbusSession | None:
        return self._session

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._session is not None

    async def connect(self) -> bool:
        """
        Open a new session.

        Returns:
            True if connected; False if the attempt failed (a reconnect is
            then already scheduled), another attempt is in flight, or
            disconnect() was called while the session was being opened.
        """
        if self._state == ConnectionState.CONNECTING:
            logger.debug(f"Connect to {self.host}:{self.port} already in progress")
            return False

        self._close_session()
        self._state = ConnectionState.CONNECTING
        generation = self._generation

        try:
            session = await self._session_factory(
                self.host, self.port, self.unit_id, self.timeout
            )
        except asyncio.CancelledError:
            if generation == self._generation:
                self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:
            if generation != self._generation:
                logger.debug(f"Connect to {self.host}:{self.port} abandoned after disconnect")
                return False

            self._state = ConnectionState.DISCONNECTED
            self._last_error = str(e)
            self.stats["connect_failures"] += 1
            logger.warning(
                f"Connection to {self.host}:{self.port} failed: {e}",
                exc_info=not isinstance(e, (CommunicationError, OSError, asyncio.TimeoutError)),
                extra={"host": self.host, "port": self.port},
            )
            # A failed connect is always worth retrying
            self.request_reconnect()
            return False

        if generation != self._generation:
            session.close()
            logger.debug(f"Connect to {self.host}:{self.port} abandoned after disconnect")
            return False

        # No await between storing the session and notifying
        self._session = session
        self._state = ConnectionState.CONNECTED
        self._last_connected = datetime.now(timezone.utc)
        self._last_error = None
        self.stats["connections"] += 1
        logger.info(
            f"Connected to {self.host}:{self.port} (unit {self.unit_id})",
            extra={"host": self.host, "port": self.port},
        )

        await self._notify_connected()
        return True

    async def _notify_connected(self) -> None:
        if self._on_connected is None:
            return

        try:
            result = self._on_connected()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Post-connect callback failed: {e}", exc_info=True)

    async def reconnect(self) -> None:
        """Close the stale session (if any) and connect again"""
        self.stats["reconnects"] += 1
        logger.info(f"Reconnecting to {self.host}:{self.port}")

        self._close_session()
        await self.connect()

    def request_reconnect(self) -> bool:
        """Throttled reconnect; see ReconnectThrottler"""
        return self.throttler.request_reconnect()

    async def disconnect(self) -> None:
        """Cancel pending and running reconnects and close the session"""
        self._generation += 1
        self.throttler.cancel()
        self._close_session()
        self._state = ConnectionState.DISCONNECTED
        logger.debug(f"Disconnected from {self.host}:{self.port}")

    def _close_session(self) -> None:
        session, self._session = self._session, None
        if self._state == ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED

        if session is not None:
            session.close()
            self.stats["disconnections"] += 1

    def get_stats(self) -> dict:
        """Get connection statistics"""
        return {
            "host": self.host,
            "port": self.port,
            "unit_id": self.unit_id,
            "state": self._state.value,
            "last_connected": (
                self._last_connected.isoformat() if self._last_connected else None
            ),
            "last_error": self._last_error,
            "reconnect_pending": self.throttler.pending,
            **self.stats,
        }

"""
Device Service - Neptun Smart polling

Responsible for:
- Keeping the Modbus session to one device alive
- Polling config and leak sensor state at the configured interval
- Valve group commands with write verification
- Health/status endpoints
"""

import asyncio
import dataclasses
import inspect
import signal
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from aiohttp import web

from neptun_smart.common.config import DeviceConfig
from neptun_smart.common.exceptions import NeptunError
from neptun_smart.common.logging_setup import get_service_logger

from .client import NeptunSmartModbus
from .modbus_client import SessionFactory, open_session
from .registers import Config, WiredSensorsStatus, WirelessSensorStatus

logger = get_service_logger("device.service")


@dataclass(frozen=True)
class DeviceSnapshot:
    """Complete device state from one poll"""
    config: Config
    wired_sensors: WiredSensorsStatus
    wireless_sensors: tuple[WirelessSensorStatus, ...] = ()
    updated_at: datetime = dataclasses.field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def wired_leaks(self, count: int) -> list[bool]:
        """Leak state for the first ``count`` wired lines"""
        return list(self.wired_sensors.lines[:count])

    @property
    def leak_detected(self) -> bool:
        return any(self.wired_sensors.lines) or any(
            s.alarm_detected for s in self.wireless_sensors
        )

    @property
    def low_battery_sensors(self) -> list[int]:
        return [i for i, s in enumerate(self.wireless_sensors) if s.battery_low]

    @property
    def faulted_sensors(self) -> list[int]:
        return [i for i, s in enumerate(self.wireless_sensors) if s.connection_lost]

    def to_dict(self) -> dict:
        return {
            "config": dataclasses.asdict(self.config),
            "wired_sensors": dataclasses.asdict(self.wired_sensors),
            "wireless_sensors": [dataclasses.asdict(s) for s in self.wireless_sensors],
            "leak_detected": self.leak_detected,
            "updated_at": self.updated_at.isoformat(),
        }


class DeviceService:
    """
    Device Service for one Neptun Smart controller.

    Failed polls leave the last published snapshot untouched. Polls,
    post-connect reads and valve commands never interleave.
    """

    def __init__(
        self,
        config: DeviceConfig,
        on_update: Callable[[DeviceSnapshot], Any] | None = None,
        session_factory: SessionFactory = open_session,
        **client_kwargs: Any,
    ):
        self.config = config
        self._on_update = on_update
        self.client = NeptunSmartModbus.from_config(
            config,
            on_connected=self._handle_connected,
            session_factory=session_factory,
            **client_kwargs,
        )

        self._snapshot: DeviceSnapshot | None = None
        self._current_config: Config | None = None
        # Serializes config reads and valve writes against each other
        self._lock = asyncio.Lock()
        self._start_time = datetime.now(timezone.utc)

        # Health server
        self._health_runner: web.AppRunner | None = None

        # State
        self._running = False
        self._poll_task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()
        self._stats = {"polls": 0, "poll_failures": 0, "writes": 0}

    @property
    def snapshot(self) -> DeviceSnapshot | None:
        return self._snapshot

    @property
    def current_config(self) -> Config | None:
        return self._current_config

    async def _handle_connected(self) -> None:
        """Fetch device metadata right after each (re)connection"""
        async with self._lock:
            try:
                self._current_config = await self.client.fetch_config()
            except NeptunError as e:
                logger.error(f"Could not obtain device metadata after connection: {e}")
                return

        logger.info(
            f"Device {self.config.device_id} discovered successfully",
            extra={"device": self.config.name},
        )

    async def refresh(self) -> DeviceSnapshot | None:
        """
        Poll the device once.

        Returns:
            The new snapshot, or None if any read failed
        """
        self._stats["polls"] += 1
        async with self._lock:
            try:
                config = await self.client.fetch_config()
                wired = await self.client.fetch_wired_sensors_status()
                wireless = await self.client.fetch_wireless_sensor_statuses()
            except NeptunError as e:
                self._stats["poll_failures"] += 1
                logger.error(f"Could not update config and sensors: {e}")
                return None

            snapshot = DeviceSnapshot(
                config=config,
                wired_sensors=wired,
                wireless_sensors=tuple(wireless),
            )
            self._current_config = config
            self._snapshot = snapshot

        logger.debug(
            f"Updated {self.config.name}: leak={snapshot.leak_detected}, "
            f"wireless={len(wireless)}",
            extra={"device": self.config.name},
        )

        await self._publish(snapshot)
        return snapshot

    async def _publish(self, snapshot: DeviceSnapshot) -> None:
        if self._on_update is None:
            return
        try:
            result = self._on_update(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Snapshot callback failed: {e}", exc_info=True)

    async def set_valve_group_open(self, group: int, is_open: bool) -> Config:
        """
        Open or close a valve group.

        Without groups both valve groups follow the request.
        """
        if group not in (1, 2):
            raise ValueError(f"Valve group must be 1 or 2, got {group}")

        async with self._lock:
            current = self._current_config
            if current is None:
                current = await self.client.fetch_config()

            if not self.config.groups_enabled:
                changes = {
                    "valve_open_first_group": is_open,
                    "valve_open_second_group": is_open,
                }
            elif group == 1:
                changes = {"valve_open_first_group": is_open}
            else:
                changes = {"valve_open_second_group": is_open}

            requested = dataclasses.replace(current, **changes)
            logger.debug(f"Valve group {group}: updating to {requested}")

            written = await self.client.write_config_register(requested)
            self._current_config = written
            self._stats["writes"] += 1

        logger.info(
            f"Valve group {group} on {self.config.name} set to "
            f"{'open' if is_open else 'closed'}",
            extra={"device": self.config.name, "group": group, "open": is_open},
        )
        return written

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect, start polling and the optional health server"""
        logger.info(f"Starting Device Service for {self.config.name}")
        self._running = True

        await self.client.start()

        if self.config.health_port:
            await self._start_health_server(self.config.health_port)

        self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        logger.info(f"Stopping Device Service for {self.config.name}")
        self._running = False

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        await self.client.stop()
        await self._stop_health_server()

    async def run(self) -> None:
        """Run until SIGINT/SIGTERM"""
        await self.start()
        self._setup_signal_handlers()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def _poll_loop(self) -> None:
        """Main polling loop"""
        while self._running:
            try:
                if self.client.is_connected:
                    await self.refresh()
                else:
                    logger.debug(f"Skipping poll of {self.config.name}: not connected")
            except Exception as e:
                self._stats["poll_failures"] += 1
                logger.error(f"Poll of {self.config.name} failed: {e}", exc_info=True)

            await asyncio.sleep(self.config.update_interval_s)

    # ------------------------------------------------------------------
    # Health server
    # ------------------------------------------------------------------

    def create_health_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/status", self._status_handler)
        return app

    async def _start_health_server(self, port: int) -> None:
        self._health_runner = web.AppRunner(self.create_health_app())
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, "127.0.0.1", port)
        await site.start()

        logger.info(f"Health server started on port {port}")

    async def _stop_health_server(self) -> None:
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()

        return web.json_response({
            "status": "healthy" if self.client.is_connected else "unhealthy",
            "service": "device",
            "device": self.config.device_id,
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "connection": self.client.connection.get_stats(),
            **self._stats,
        })

    async def _status_handler(self, request: web.Request) -> web.Response:
        if self._snapshot is None:
            return web.json_response({"device": self.config.device_id, "snapshot": None})
        return web.json_response({
            "device": self.config.device_id,
            "snapshot": self._snapshot.to_dict(),
        })

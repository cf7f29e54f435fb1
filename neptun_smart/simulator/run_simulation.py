"""
Run the Virtual Neptun Smart Simulation

Starts a Modbus TCP server backed by a VirtualNeptunSmart so the device
layer can be exercised without hardware.

Usage:
    python -m neptun_smart.simulator.run_simulation               # port 5020
    python -m neptun_smart.simulator.run_simulation --port 503
    python -m neptun_smart.simulator.run_simulation --scenario leak
"""

import argparse
import asyncio

from pymodbus import ModbusDeviceIdentification
from pymodbus.datastore import (
    ModbusDeviceContext,
    ModbusSequentialDataBlock,
    ModbusServerContext,
)
from pymodbus.server import StartAsyncTcpServer

from neptun_smart.common.config import DEFAULT_UNIT_ID
from neptun_smart.common.logging_setup import get_service_logger
from neptun_smart.device.registers import Register

from .virtual_neptun import VirtualNeptunSmart

logger = get_service_logger("simulator.server")

# Holding registers function code
FC_HOLDING = 3
# Covers the fixed registers and 256 wireless sensors
REGISTER_SPACE = Register.WIRELESS_SENSOR_STATUS + 256

SCENARIOS = ("normal", "leak", "low_battery")

# FC06, FC16, FC22 (mask write) and FC23 (read/write multiple)
WRITE_FUNCTION_CODES = frozenset({6, 16, 22, 23})


class NeptunDeviceContext(ModbusDeviceContext):
    """
    Datastore for one virtual device.

    Only the configuration register is writable, one register at a time.
    Other writes are answered with an ILLEGAL_ADDRESS exception.
    """

    def validate(self, fc_as_hex, address, count=1):
        if fc_as_hex in WRITE_FUNCTION_CODES and (address != Register.CONFIG or count != 1):
            logger.warning(
                f"Rejected FC{fc_as_hex} write of {count} register(s) at {address}"
            )
            return False
        return super().validate(fc_as_hex, address, count)


class SimulatorServer:
    """
    Modbus TCP server that serves one virtual device.

    The datastore is a mirror: device state is copied in every
    ``sync_interval`` seconds, and client writes to the configuration
    register are applied to the device first. Writes to any other
    register are refused by NeptunDeviceContext.
    """

    def __init__(
        self,
        device: VirtualNeptunSmart,
        host: str = "0.0.0.0",
        port: int = 5020,
        sync_interval: float = 0.2,
    ):
        self.device = device
        self.host = host
        self.port = port
        self.sync_interval = sync_interval

        self._device_context = NeptunDeviceContext(
            di=ModbusSequentialDataBlock(0, [0] * 10),
            co=ModbusSequentialDataBlock(0, [0] * 10),
            hr=ModbusSequentialDataBlock(0, [0] * REGISTER_SPACE),
            ir=ModbusSequentialDataBlock(0, [0] * 10),
        )
        self.context = ModbusServerContext(
            devices={device.unit_id: self._device_context},
            single=False,
        )
        self._mirrored_config: int | None = None

        logger.info(f"Simulator server will listen on {host}:{port}")

    def sync(self) -> None:
        """Apply client writes to the device, then mirror its registers"""
        stored = self._device_context.getValues(FC_HOLDING, Register.CONFIG, 1)[0]
        if self._mirrored_config is not None and stored != self._mirrored_config:
            self.device.write_register(Register.CONFIG, stored)

        for address, value in self.device.registers.items():
            self._device_context.setValues(FC_HOLDING, address, [value])
        self._mirrored_config = self.device.read_register(Register.CONFIG)

    async def _sync_loop(self) -> None:
        while True:
            self.sync()
            await asyncio.sleep(self.sync_interval)

    async def _status_loop(self) -> None:
        while True:
            await asyncio.sleep(10)
            logger.info(f"Device status: {self.device.get_status()}")

    async def run(self) -> None:
        identity = ModbusDeviceIdentification()
        identity.VendorName = "Neptun"
        identity.ProductCode = "NEPTUN-SIM"
        identity.ProductName = "Virtual Neptun Smart"
        identity.ModelName = "Neptun Smart"

        self.sync()
        tasks = [
            asyncio.create_task(self._sync_loop()),
            asyncio.create_task(self._status_loop()),
        ]

        logger.info(
            f"Starting Modbus TCP server on {self.host}:{self.port} "
            f"(unit id {self.device.unit_id})"
        )
        try:
            await StartAsyncTcpServer(
                context=self.context,
                identity=identity,
                address=(self.host, self.port),
            )
        finally:
            for task in tasks:
                task.cancel()


def apply_scenario(device: VirtualNeptunSmart, scenario: str) -> None:
    """Set up a predefined device state"""
    if scenario == "normal":
        device.add_wireless_sensor(battery_level=90)

    elif scenario == "leak":
        device.add_wireless_sensor(battery_level=90)
        device.trigger_wired_alarm(1)

    elif scenario == "low_battery":
        device.add_wireless_sensor(battery_level=15)

    else:
        raise ValueError(
            f"Unknown scenario: {scenario} (available: {', '.join(SCENARIOS)})"
        )

    logger.info(f"Scenario '{scenario}' applied")


async def run_simulation(
    port: int = 5020,
    unit_id: int = DEFAULT_UNIT_ID,
    scenario: str = "normal",
) -> None:
    device = VirtualNeptunSmart(unit_id=unit_id)
    apply_scenario(device, scenario)

    server = SimulatorServer(device, port=port)
    await server.run()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run a virtual Neptun Smart controller for testing"
    )
    parser.add_argument(
        "--port", type=int, default=5020,
        help="Modbus TCP port (default: 5020)"
    )
    parser.add_argument(
        "--unit", type=int, default=DEFAULT_UNIT_ID,
        help=f"Modbus unit id (default: {DEFAULT_UNIT_ID})"
    )
    parser.add_argument(
        "--scenario", choices=SCENARIOS, default="normal",
        help="Initial device state"
    )

    args = parser.parse_args(argv)

    try:
        asyncio.run(run_simulation(
            port=args.port,
            unit_id=args.unit,
            scenario=args.scenario,
        ))
    except KeyboardInterrupt:
        logger.info("Simulation stopped by user")


if __name__ == "__main__":
    main()

"""
Neptun Smart CLI

Command-line tool for one-shot device operations and long-running
polling.

Usage:
    # Snapshot of config and sensors
    neptun-smart status --host 192.168.1.50

    # Read one holding register
    neptun-smart read --host 192.168.1.50 --address 0

    # Close valve group 1
    neptun-smart valve --host 192.168.1.50 --group 1 --state close

    # Poll every configured device until Ctrl+C
    neptun-smart watch --config devices.yaml

    # Virtual device on port 5020
    neptun-smart simulate --port 5020

Output of the one-shot commands is JSON for easy parsing.
"""

import argparse
import asyncio
import dataclasses
import json
import signal
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from neptun_smart.common.config import (
    DEFAULT_PORT,
    DEFAULT_UNIT_ID,
    DeviceConfig,
    load_config_file,
)
from neptun_smart.common.exceptions import DisconnectedError, NeptunError
from neptun_smart.device.client import NeptunSmartModbus
from neptun_smart.device.service import DeviceService


async def _with_client(
    config: DeviceConfig,
    operation: Callable[[NeptunSmartModbus], Awaitable[dict]],
) -> dict:
    """Connect, run one operation, always disconnect"""
    result = {"success": False, "device": config.device_id, "error": None}

    client = NeptunSmartModbus.from_config(config)
    try:
        if not await client.start():
            raise DisconnectedError(host=config.host, port=config.port)
        result.update(await operation(client))
        result["success"] = True
    except NeptunError as e:
        result["error"] = str(e)
    finally:
        await client.stop()

    return result


async def read_status(config: DeviceConfig) -> dict:
    async def operation(client: NeptunSmartModbus) -> dict:
        device_config = await client.fetch_config()
        wired = await client.fetch_wired_sensors_status()
        wireless = await client.fetch_wireless_sensor_statuses()
        return {
            "config": dataclasses.asdict(device_config),
            "wired_sensors": list(wired.lines[:config.wired_sensors_count or None]),
            "wireless_sensors": [
                {**dataclasses.asdict(s), "battery_low": s.battery_low}
                for s in wireless
            ],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return await _with_client(config, operation)


async def read_register(config: DeviceConfig, address: int) -> dict:
    async def operation(client: NeptunSmartModbus) -> dict:
        return {
            "address": address,
            "raw_value": await client.read_register(address),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return await _with_client(config, operation)


async def set_valve(config: DeviceConfig, group: int, is_open: bool) -> dict:
    """Valve command through the DeviceService so group rules apply"""
    result = {"success": False, "device": config.device_id, "error": None}

    service = DeviceService(config)
    try:
        if not await service.client.start():
            raise DisconnectedError(host=config.host, port=config.port)
        written = await service.set_valve_group_open(group, is_open)
        result.update({
            "success": True,
            "group": group,
            "open": is_open,
            "config": dataclasses.asdict(written),
        })
    except NeptunError as e:
        result["error"] = str(e)
    finally:
        await service.client.stop()

    return result


async def watch(configs: list[DeviceConfig]) -> None:
    def print_snapshot(snapshot) -> None:
        print(json.dumps(snapshot.to_dict()), flush=True)

    services = [DeviceService(c, on_update=print_snapshot) for c in configs]
    if len(services) == 1:
        await services[0].run()
        return

    # One shutdown event for all devices; signal handlers are per loop
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    for service in services:
        await service.start()
    try:
        await shutdown.wait()
    finally:
        for service in services:
            await service.stop()


def _device_config(args: argparse.Namespace) -> DeviceConfig:
    return DeviceConfig(
        host=args.host,
        port=args.port,
        unit_id=args.unit,
        groups_enabled=getattr(args, "groups_enabled", False),
    )


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", required=True, help="Device IP or hostname")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT,
                        help=f"Modbus TCP port (default: {DEFAULT_PORT})")
    parser.add_argument("--unit", type=int, default=DEFAULT_UNIT_ID,
                        help=f"Modbus unit id (default: {DEFAULT_UNIT_ID})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="neptun-smart",
        description="Neptun Smart Modbus-TCP tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    status_parser = subparsers.add_parser("status", help="Read config and sensors")
    _add_connection_args(status_parser)

    read_parser = subparsers.add_parser("read", help="Read one holding register")
    _add_connection_args(read_parser)
    read_parser.add_argument("--address", type=int, required=True,
                             help="Register address")

    valve_parser = subparsers.add_parser("valve", help="Open or close a valve group")
    _add_connection_args(valve_parser)
    valve_parser.add_argument("--group", type=int, choices=(1, 2), required=True)
    valve_parser.add_argument("--state", choices=("open", "close"), required=True)
    valve_parser.add_argument("--groups-enabled", action="store_true",
                              help="Only move the selected group")

    watch_parser = subparsers.add_parser("watch", help="Poll configured devices")
    watch_parser.add_argument("--config", required=True, help="YAML device file")

    sim_parser = subparsers.add_parser("simulate", help="Run a virtual device")
    sim_parser.add_argument("--port", type=int, default=5020,
                            help="Modbus TCP port (default: 5020)")
    sim_parser.add_argument("--unit", type=int, default=DEFAULT_UNIT_ID)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "status":
        result = asyncio.run(read_status(_device_config(args)))

    elif args.command == "read":
        result = asyncio.run(read_register(_device_config(args), args.address))

    elif args.command == "valve":
        result = asyncio.run(set_valve(
            _device_config(args),
            args.group,
            args.state == "open",
        ))

    elif args.command == "watch":
        try:
            configs = load_config_file(args.config)
        except NeptunError as e:
            print(json.dumps({"success": False, "error": str(e)}))
            return 1
        if not configs:
            print(json.dumps({"success": False, "error": "No devices configured"}))
            return 1
        asyncio.run(watch(configs))
        return 0

    else:
        from neptun_smart.simulator.run_simulation import main as run_simulator
        run_simulator(["--port", str(args.port), "--unit", str(args.unit)])
        return 0

    print(json.dumps(result))
    return 0 if result["success"] else 1


if __name__ == "__main__":
    sys.exit(main())

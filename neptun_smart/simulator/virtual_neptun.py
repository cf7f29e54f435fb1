"""
Virtual Neptun Smart controller

Simulates the controller's holding registers for testing the device
layer without physical hardware.

Register Map:
- 0: Configuration (13 flag bits, valve state in bits 8-9)
- 3: Wired leak sensor lines (4 bits)
- 6: Number of paired wireless sensors
- 57+i: Wireless sensor i (alarm bit 0, lost bit 2, battery high byte)
"""

from dataclasses import dataclass, replace

from neptun_smart.common.config import DEFAULT_UNIT_ID, MAX_WIRED_LINES
from neptun_smart.common.logging_setup import get_service_logger
from neptun_smart.device.codec import (
    CONFIG_MASK,
    WORD_MASK,
    decode_config,
    encode_config,
    encode_wired_sensors_status,
    encode_wireless_sensor_status,
)
from neptun_smart.device.registers import (
    Config,
    Register,
    WiredSensorsStatus,
    WirelessSensorStatus,
    wireless_sensor_register,
)

logger = get_service_logger("simulator.device")


@dataclass
class WirelessSensor:
    """One paired wireless leak sensor"""
    battery_level: int = 100
    alarm_detected: bool = False
    connection_lost: bool = False

    def to_status(self) -> WirelessSensorStatus:
        return WirelessSensorStatus(
            alarm_detected=self.alarm_detected,
            connection_lost=self.connection_lost,
            battery_level=self.battery_level,
        )


class VirtualNeptunSmart:
    """
    Simulates a Neptun Smart controller.

    Wired lines 1-2 belong to the first valve group and lines 3-4 to the
    second one. With groups disabled every alarm is reported on the
    first group.
    """

    def __init__(
        self,
        unit_id: int = DEFAULT_UNIT_ID,
        name: str = "Virtual Neptun Smart",
        close_valves_on_alarm: bool = True,
        config: Config | None = None,
    ):
        self.unit_id = unit_id
        self.name = name
        self.close_valves_on_alarm = close_valves_on_alarm

        self.config = config or Config(
            valve_open_first_group=True,
            valve_open_second_group=True,
        )
        self.wired_alarms = [False] * MAX_WIRED_LINES
        self.wireless_sensors: list[WirelessSensor] = []

        logger.info(f"Virtual device '{name}' initialized (unit id: {unit_id})")

    # ------------------------------------------------------------------
    # Modbus view
    # ------------------------------------------------------------------

    @property
    def registers(self) -> dict[int, int]:
        """Current holding register image"""
        regs = {
            Register.CONFIG.value: encode_config(self.config),
            Register.WIRED_SENSORS_STATUS.value: encode_wired_sensors_status(
                WiredSensorsStatus(*self.wired_alarms)
            ),
            Register.WIRELESS_SENSORS_COUNT.value: len(self.wireless_sensors),
        }
        for index, sensor in enumerate(self.wireless_sensors):
            regs[wireless_sensor_register(index)] = encode_wireless_sensor_status(
                sensor.to_status()
            )
        return regs

    def read_register(self, address: int) -> int:
        """Unmapped addresses read as 0"""
        return self.registers.get(int(address), 0)

    def write_register(self, address: int, value: int) -> int:
        """
        Handle a write request.

        Only the configuration register is writable; its unused high bits
        are dropped.

        Returns:
            The value the device now holds (the write echo)
        """
        address = int(address)
        if address != Register.CONFIG:
            raise ValueError(f"Register {address} is read-only")

        self.config = decode_config(value & WORD_MASK & CONFIG_MASK)
        logger.info(f"{self.name}: config set to {encode_config(self.config):#06x}")
        return encode_config(self.config)

    # ------------------------------------------------------------------
    # Scenario controls
    # ------------------------------------------------------------------

    def _line_index(self, line: int) -> int:
        if not 1 <= line <= MAX_WIRED_LINES:
            raise ValueError(f"Wired line must be 1..{MAX_WIRED_LINES}, got {line}")
        return line - 1

    def _group_for_line(self, line: int) -> int:
        if not self.config.groups_enabled:
            return 1
        return 1 if line <= 2 else 2

    def _raise_alarm(self, group: int) -> None:
        if group == 1:
            changes = {"alarm_first_group": True}
        else:
            changes = {"alarm_second_group": True}

        if self.close_valves_on_alarm:
            changes["valve_open_first_group"] = False
            changes["valve_open_second_group"] = False

        self.config = replace(self.config, **changes)
        logger.warning(f"{self.name}: leak alarm on group {group}")

    def trigger_wired_alarm(self, line: int) -> None:
        """Report a leak on wired line ``line`` (1-based)"""
        self.wired_alarms[self._line_index(line)] = True
        self._raise_alarm(self._group_for_line(line))

    def clear_wired_alarm(self, line: int) -> None:
        """Clear a wired line; group alarms clear once no line reports a leak"""
        self.wired_alarms[self._line_index(line)] = False

        if not any(self.wired_alarms) and not any(
            s.alarm_detected for s in self.wireless_sensors
        ):
            self.config = replace(
                self.config, alarm_first_group=False, alarm_second_group=False
            )

    def add_wireless_sensor(self, battery_level: int = 100) -> int:
        """
        Pair a new wireless sensor.

        Returns:
            The sensor's index
        """
        if not 0 <= battery_level <= 0xFF:
            raise ValueError(f"Battery level must fit one byte, got {battery_level}")
        self.wireless_sensors.append(WirelessSensor(battery_level=battery_level))
        self._update_sensor_flags()
        return len(self.wireless_sensors) - 1

    def set_wireless_sensor(
        self,
        index: int,
        alarm_detected: bool | None = None,
        connection_lost: bool | None = None,
        battery_level: int | None = None,
    ) -> None:
        sensor = self.wireless_sensors[index]

        if battery_level is not None:
            if not 0 <= battery_level <= 0xFF:
                raise ValueError(f"Battery level must fit one byte, got {battery_level}")
            sensor.battery_level = battery_level
        if connection_lost is not None:
            sensor.connection_lost = connection_lost
        if alarm_detected is not None:
            sensor.alarm_detected = alarm_detected
            if alarm_detected:
                self._raise_alarm(1)

        self._update_sensor_flags()

    def _update_sensor_flags(self) -> None:
        self.config = replace(
            self.config,
            wireless_sensors_low_battery=any(
                s.to_status().battery_low for s in self.wireless_sensors
            ),
            wireless_sensors_connection_lost=any(
                s.connection_lost for s in self.wireless_sensors
            ),
        )

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "unit_id": self.unit_id,
            "config": f"{encode_config(self.config):#06x}",
            "valves_open": [
                self.config.valve_open_first_group,
                self.config.valve_open_second_group,
            ],
            "wired_alarms": list(self.wired_alarms),
            "wireless_sensors": len(self.wireless_sensors),
        }

"""Simulator datastore: write filtering and device mirroring"""

import pytest

from neptun_smart.device.registers import Register
from neptun_smart.simulator import VirtualNeptunSmart
from neptun_smart.simulator.run_simulation import FC_HOLDING, SimulatorServer


@pytest.fixture
def server():
    server = SimulatorServer(VirtualNeptunSmart())
    server.sync()
    return server


@pytest.mark.parametrize("fc", [6, 16])
def test_config_register_is_writable(server, fc):
    assert server._device_context.validate(fc, Register.CONFIG, 1)


@pytest.mark.parametrize("fc, address, count", [
    (6, Register.WIRED_SENSORS_STATUS, 1),
    (6, Register.WIRELESS_SENSORS_COUNT, 1),
    (6, Register.WIRELESS_SENSOR_STATUS, 1),
    (16, Register.CONFIG, 2),
    (22, Register.WIRED_SENSORS_STATUS, 1),
])
def test_status_registers_reject_writes(server, fc, address, count):
    assert not server._device_context.validate(fc, address, count)


def test_status_registers_stay_readable(server):
    assert server._device_context.validate(FC_HOLDING, Register.WIRED_SENSORS_STATUS, 1)
    assert server._device_context.validate(FC_HOLDING, Register.WIRELESS_SENSOR_STATUS, 4)


def test_config_write_reaches_device(server):
    server._device_context.setValues(FC_HOLDING, Register.CONFIG, [0x0100])

    server.sync()

    assert server.device.read_register(Register.CONFIG) == 0x0100
    assert server.device.config.valve_open_first_group
    assert not server.device.config.valve_open_second_group


def test_device_state_is_mirrored(server):
    server.device.trigger_wired_alarm(1)

    server.sync()

    stored = server._device_context.getValues(FC_HOLDING, Register.WIRED_SENSORS_STATUS, 1)
    assert stored == [server.device.read_register(Register.WIRED_SENSORS_STATUS)]
    assert server._device_context.getValues(FC_HOLDING, Register.CONFIG, 1) == [
        server.device.read_register(Register.CONFIG)
    ]

"""
Shared fixtures: in-memory Modbus sessions and a manual clock.

No test touches the network.
"""

import asyncio

import pytest

from neptun_smart.common.exceptions import CommunicationError, FailureKind
from neptun_smart.device.client import NeptunSmartModbus
from neptun_smart.device.connection import ConnectionManager


async def settle(rounds: int = 20) -> None:
    """Let ready tasks run until they block"""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """Injectable ``sleep`` that only wakes up when the test advances time"""

    def __init__(self):
        self.now = 0.0
        self._waiters: list[tuple[float, asyncio.Future]] = []

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((self.now + delay, future))
        await future

    @property
    def sleepers(self) -> int:
        return sum(1 for _, f in self._waiters if not f.done())

    async def advance(self, seconds: float) -> None:
        await settle()
        self.now += seconds

        due = [(d, f) for d, f in self._waiters if d <= self.now]
        self._waiters = [(d, f) for d, f in self._waiters if d > self.now]
        for _, future in due:
            if not future.done():
                future.set_result(None)

        await settle()


class FakeSession:
    """Stands in for ModbusSession; registers are shared device memory"""

    def __init__(self, host: str, port: int, unit_id: int, registers: dict[int, int]):
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self.registers = registers
        self.closed = False

        # Failure injection
        self.read_error: Exception | None = None
        self.write_error: Exception | None = None
        self.empty_reads: set[int] = set()
        self.write_echo: int | None = None
        # Reads wait here when set; lets a test close the session mid-request
        self.read_gate: asyncio.Event | None = None

        self.reads: list[int] = []
        self.writes: list[tuple[int, int]] = []

    @property
    def connected(self) -> bool:
        return not self.closed

    async def read_holding_registers(self, address: int, count: int = 1) -> list[int]:
        self.reads.append(address)
        if self.read_gate is not None:
            await self.read_gate.wait()
        self._check_open()
        if self.read_error is not None:
            raise self.read_error
        if address in self.empty_reads:
            return []
        return [self.registers.get(a, 0) for a in range(address, address + count)]

    async def write_register(self, address: int, value: int) -> int | None:
        self.writes.append((address, value))
        self._check_open()
        if self.write_error is not None:
            raise self.write_error
        if self.write_echo is not None:
            return self.write_echo
        self.registers[address] = value
        return value

    def _check_open(self) -> None:
        if self.closed:
            raise CommunicationError(
                f"Not connected to {self.host}:{self.port}",
                kind=FailureKind.NOT_CONNECTED,
                host=self.host,
                port=self.port,
            )

    def close(self) -> None:
        self.closed = True


class FakeSessionFactory:
    """Session factory with scripted connect failures"""

    def __init__(self, registers: dict[int, int] | None = None):
        self.registers = registers if registers is not None else {}
        self.sessions: list[FakeSession] = []
        self.calls = 0
        self.failures = 0
        self.gate: asyncio.Event | None = None

    @property
    def session(self) -> FakeSession:
        return self.sessions[-1]

    async def __call__(self, host: str, port: int, unit_id: int, timeout: float) -> FakeSession:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise CommunicationError(
                f"Connection refused by {host}:{port}",
                kind=FailureKind.CONNECTION_REFUSED,
                host=host,
                port=port,
            )

        session = FakeSession(host, port, unit_id, self.registers)
        self.sessions.append(session)
        return session


def transient_error() -> CommunicationError:
    return CommunicationError("Timed out", kind=FailureKind.TIMEOUT)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
async def connection(clock, factory):
    manager = ConnectionManager(
        host="10.0.0.5",
        session_factory=factory,
        sleep=clock.sleep,
    )
    yield manager
    await manager.disconnect()


@pytest.fixture
async def client(clock, factory):
    neptun = NeptunSmartModbus(
        host="10.0.0.5",
        session_factory=factory,
        sleep=clock.sleep,
    )
    yield neptun
    await neptun.stop()

"""Transport failure classification"""

import asyncio
import errno

import pytest
from pymodbus.exceptions import ConnectionException, ModbusException, ModbusIOException

from neptun_smart.common.exceptions import CommunicationError, FailureKind
from neptun_smart.device.error_classifier import (
    TRANSIENT_FAILURES,
    ErrorClass,
    classify,
    failure_kind_from_exception,
    is_transient,
)


@pytest.mark.parametrize(
    "code, kind",
    [
        (errno.ETIMEDOUT, FailureKind.TIMEOUT),
        (errno.ECONNRESET, FailureKind.CONNECTION_RESET),
        (errno.ECONNREFUSED, FailureKind.CONNECTION_REFUSED),
        (errno.EHOSTUNREACH, FailureKind.HOST_UNREACHABLE),
        (errno.ENETUNREACH, FailureKind.NETWORK_UNREACHABLE),
        (errno.ENOTCONN, FailureKind.NOT_CONNECTED),
    ],
)
def test_os_errors_by_errno(code, kind):
    exc = OSError(code, "boom")

    assert failure_kind_from_exception(exc) is kind
    assert classify(exc) is ErrorClass.TRANSIENT


def test_os_error_subclass_without_errno():
    assert failure_kind_from_exception(ConnectionResetError()) is FailureKind.CONNECTION_RESET
    assert failure_kind_from_exception(ConnectionRefusedError()) is FailureKind.CONNECTION_REFUSED


def test_unrelated_os_error_is_other():
    exc = OSError(errno.ENOENT, "No such file")

    assert failure_kind_from_exception(exc) is FailureKind.UNKNOWN
    assert classify(exc) is ErrorClass.OTHER


def test_timeouts_are_transient():
    assert is_transient(asyncio.TimeoutError())
    assert is_transient(TimeoutError())


def test_pymodbus_exceptions():
    assert failure_kind_from_exception(ConnectionException("gone")) is FailureKind.NOT_CONNECTED
    assert failure_kind_from_exception(ModbusIOException("no response")) is FailureKind.TIMEOUT
    assert failure_kind_from_exception(ModbusException("bad frame")) is FailureKind.PROTOCOL
    assert not is_transient(ModbusException("bad frame"))


def test_communication_error_keeps_its_kind():
    assert is_transient(CommunicationError("x", kind=FailureKind.NETWORK_DOWN))
    assert not is_transient(CommunicationError("x", kind=FailureKind.PROTOCOL))
    assert not is_transient(CommunicationError("x"))


def test_application_errors_are_other():
    assert classify(ValueError("Setting value failed.")) is ErrorClass.OTHER


def test_transient_set_is_closed():
    assert FailureKind.PROTOCOL not in TRANSIENT_FAILURES
    assert FailureKind.UNKNOWN not in TRANSIENT_FAILURES
    assert len(TRANSIENT_FAILURES) == len(FailureKind) - 2

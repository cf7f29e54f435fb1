"""
Error Classifier

Maps transport failures to a FailureKind and decides which of them are
transient network conditions worth a reconnect.
"""

import asyncio
import errno
from enum import Enum

from pymodbus.exceptions import ConnectionException, ModbusException, ModbusIOException

from neptun_smart.common.exceptions import CommunicationError, FailureKind


class ErrorClass(str, Enum):
    """Outcome of classifying a failure"""
    TRANSIENT = "transient"
    OTHER = "other"


TRANSIENT_FAILURES: frozenset[FailureKind] = frozenset({
    FailureKind.TIMEOUT,
    FailureKind.CONNECTION_RESET,
    FailureKind.CONNECTION_REFUSED,
    FailureKind.CONNECTION_ABORTED,
    FailureKind.HOST_UNREACHABLE,
    FailureKind.HOST_DOWN,
    FailureKind.NETWORK_UNREACHABLE,
    FailureKind.NETWORK_DOWN,
    FailureKind.NETWORK_RESET,
    FailureKind.NOT_CONNECTED,
    FailureKind.SHUTDOWN,
    FailureKind.WOULD_BLOCK,
})


def _build_errno_map() -> dict[int, FailureKind]:
    names = (
        ("ETIMEDOUT", FailureKind.TIMEOUT),
        ("ECONNRESET", FailureKind.CONNECTION_RESET),
        ("ECONNREFUSED", FailureKind.CONNECTION_REFUSED),
        ("ECONNABORTED", FailureKind.CONNECTION_ABORTED),
        ("EHOSTUNREACH", FailureKind.HOST_UNREACHABLE),
        ("EHOSTDOWN", FailureKind.HOST_DOWN),
        ("ENETUNREACH", FailureKind.NETWORK_UNREACHABLE),
        ("ENETDOWN", FailureKind.NETWORK_DOWN),
        ("ENETRESET", FailureKind.NETWORK_RESET),
        ("ENOTCONN", FailureKind.NOT_CONNECTED),
        ("ESHUTDOWN", FailureKind.SHUTDOWN),
        ("EWOULDBLOCK", FailureKind.WOULD_BLOCK),
        ("EAGAIN", FailureKind.WOULD_BLOCK),
    )
    # Not every platform defines every code (e.g. ESHUTDOWN on Windows)
    return {
        getattr(errno, name): kind
        for name, kind in names
        if hasattr(errno, name)
    }


ERRNO_FAILURE_KINDS: dict[int, FailureKind] = _build_errno_map()

_OS_ERROR_FAILURE_KINDS: tuple[tuple[type[OSError], FailureKind], ...] = (
    (ConnectionResetError, FailureKind.CONNECTION_RESET),
    (ConnectionRefusedError, FailureKind.CONNECTION_REFUSED),
    (ConnectionAbortedError, FailureKind.CONNECTION_ABORTED),
    (BlockingIOError, FailureKind.WOULD_BLOCK),
)


def failure_kind_from_exception(exc: BaseException) -> FailureKind:
    """Translate a raw exception (OS, asyncio or pymodbus) into a FailureKind"""
    if isinstance(exc, CommunicationError):
        return exc.kind

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return FailureKind.TIMEOUT

    if isinstance(exc, OSError):
        if exc.errno in ERRNO_FAILURE_KINDS:
            return ERRNO_FAILURE_KINDS[exc.errno]
        for exc_type, kind in _OS_ERROR_FAILURE_KINDS:
            if isinstance(exc, exc_type):
                return kind
        return FailureKind.UNKNOWN

    # ConnectionException and ModbusIOException subclass ModbusException
    if isinstance(exc, ConnectionException):
        return FailureKind.NOT_CONNECTED
    if isinstance(exc, ModbusIOException):
        return FailureKind.TIMEOUT
    if isinstance(exc, ModbusException):
        return FailureKind.PROTOCOL

    return FailureKind.UNKNOWN


def classify(exc: BaseException) -> ErrorClass:
    """TRANSIENT for network-level failures, OTHER for everything else"""
    if failure_kind_from_exception(exc) in TRANSIENT_FAILURES:
        return ErrorClass.TRANSIENT
    return ErrorClass.OTHER


def is_transient(exc: BaseException) -> bool:
    return classify(exc) is ErrorClass.TRANSIENT

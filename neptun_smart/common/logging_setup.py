"""
Structured Logging Setup

Consistent logging configuration across the device layer.
Uses JSON format for structured logs in production.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "service",
    "message", "taskName",
))


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via extra={...}
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Set up structured logging for a service.

    Args:
        service_name: Name of the service (e.g., "device.client")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"neptun.{service_name}")
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Level and format come from NEPTUN_LOG_LEVEL / NEPTUN_LOG_FORMAT.
    """
    log_level = os.environ.get("NEPTUN_LOG_LEVEL", "INFO")
    json_format = os.environ.get("NEPTUN_LOG_FORMAT", "json").lower() == "json"

    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def log_device_read(
    logger: logging.Logger,
    device_name: str,
    address: int,
    value: int | None,
    success: bool = True,
) -> None:
    """Holding register read; DEBUG on success, WARNING on failure"""
    extra = {"device": device_name, "address": address}
    if success:
        logger.debug(f"{device_name} HR[{address}] -> 0x{value:04X}", extra={**extra, "value": value})
    else:
        logger.warning(f"{device_name} HR[{address}] read failed", extra=extra)


def log_device_write(
    logger: logging.Logger,
    device_name: str,
    address: int,
    value: int,
    success: bool = True,
) -> None:
    """Holding register write; INFO on success, ERROR on failure"""
    extra = {"device": device_name, "address": address, "value": value}
    if success:
        logger.info(f"{device_name} HR[{address}] <- 0x{value:04X}", extra=extra)
    else:
        logger.error(f"{device_name} HR[{address}] write of 0x{value:04X} failed", extra=extra)

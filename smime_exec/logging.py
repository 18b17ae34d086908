"""Structured logging with per-operation correlation.

Provides:
- JSON structured output for log aggregation
- Human-readable colored output for interactive use
- Operation correlation IDs shared by every line of one tool run
- Sensitive data masking (credentials never reach a log line)
- Operation timing

Usage:
    from smime_exec.logging import get_logger, operation_context

    logger = get_logger(__name__)

    with operation_context("sign"):
        logger.info("Tool started", program=program)
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Iterator

# Context variables for operation-scoped data
operation_id_var: ContextVar[str | None] = ContextVar("operation_id", default=None)
operation_name_var: ContextVar[str | None] = ContextVar("operation_name", default=None)

# Sensitive fields to mask in logs
SENSITIVE_FIELDS = {
    "password", "passphrase", "secret", "token", "key", "credential", "pin",
}

REDACTED = "[REDACTED]"


def mask_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Mask sensitive values in a dictionary."""
    masked = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(s in key_lower for s in SENSITIVE_FIELDS):
            masked[key] = REDACTED
        elif isinstance(value, dict):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked


def redact_arguments(arguments: list, secret_flags: set[str]) -> list[str]:
    """Return a printable copy of an argument list with flag values hidden.

    The value following any flag in ``secret_flags`` is replaced by
    ``[REDACTED]``; bytes arguments are never decoded.
    """
    redacted = []
    hide_next = False
    for arg in arguments:
        if hide_next:
            redacted.append(REDACTED)
            hide_next = False
            continue
        if isinstance(arg, (bytes, bytearray)):
            redacted.append(REDACTED)
            continue
        redacted.append(str(arg))
        hide_next = arg in secret_flags
    return redacted


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if operation_id := operation_id_var.get():
            log_entry["operation_id"] = operation_id
        if operation_name := operation_name_var.get():
            log_entry["operation"] = operation_name

        if hasattr(record, "extra_fields"):
            log_entry.update(mask_sensitive(record.extra_fields))

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.WARNING:
            log_entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_entry, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable log formatter for terminals."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")

        prefix_parts = []
        if operation_name := operation_name_var.get():
            prefix_parts.append(f"op={operation_name}")
        if operation_id := operation_id_var.get():
            prefix_parts.append(f"id={operation_id[:8]}")

        prefix = f"[{' '.join(prefix_parts)}] " if prefix_parts else ""

        extra_str = ""
        if hasattr(record, "extra_fields") and record.extra_fields:
            masked = mask_sensitive(record.extra_fields)
            extra_str = " | " + " ".join(f"{k}={v}" for k, v in masked.items())

        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        level = record.levelname[:4]

        message = (
            f"{color}{timestamp} {level}{self.RESET} "
            f"[{record.name}] {prefix}{record.getMessage()}{extra_str}"
        )

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


class StructuredLogger(logging.Logger):
    """Logger with structured logging support."""

    def _log_with_extra(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        **kwargs,
    ):
        extra = {"extra_fields": kwargs} if kwargs else {}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args, **kwargs):
        if self.isEnabledFor(logging.DEBUG):
            self._log_with_extra(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        if self.isEnabledFor(logging.INFO):
            self._log_with_extra(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        if self.isEnabledFor(logging.WARNING):
            self._log_with_extra(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args, exc_info: Any = None, **kwargs):
        if self.isEnabledFor(logging.ERROR):
            self._log_with_extra(logging.ERROR, msg, args, exc_info=exc_info, **kwargs)

    def critical(self, msg: str, *args, exc_info: Any = None, **kwargs):
        if self.isEnabledFor(logging.CRITICAL):
            self._log_with_extra(logging.CRITICAL, msg, args, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module."""
    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logging.setLoggerClass(logging.Logger)
    return logger


def setup_logging(json_output: bool = False, level: str = "INFO"):
    """Configure logging for command-line use.

    Args:
        json_output: Use JSON format (for log aggregation)
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stdout carries tool output, so logs go to stderr
    handler = logging.StreamHandler(sys.stderr)

    if json_output:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanFormatter())

    root_logger.addHandler(handler)


@contextmanager
def operation_context(name: str, operation_id: str | None = None) -> Iterator[str]:
    """Tag every log line emitted inside the block with an operation id."""
    operation_id = operation_id or str(uuid.uuid4())
    id_token = operation_id_var.set(operation_id)
    name_token = operation_name_var.set(name)
    try:
        yield operation_id
    finally:
        operation_name_var.reset(name_token)
        operation_id_var.reset(id_token)


def log_operation(operation: str):
    """Decorator to log function execution with timing."""
    def decorator(func: Callable):
        logger = get_logger(func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            with operation_context(operation):
                start = time.monotonic()
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    duration_ms = (time.monotonic() - start) * 1000
                    logger.error(
                        f"{operation} failed",
                        operation=operation,
                        error=str(e),
                        duration_ms=round(duration_ms, 2),
                    )
                    raise
                duration_ms = (time.monotonic() - start) * 1000
                logger.info(
                    f"{operation} completed",
                    operation=operation,
                    duration_ms=round(duration_ms, 2),
                )
                return result

        return wrapper

    return decorator

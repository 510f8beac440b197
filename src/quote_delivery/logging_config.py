"""Structured logging with per-send context.

Every log line emitted while a quote send is in flight carries the send ID
and the quote ID, so one send can be followed across the payment provider,
the document generator and each transport attempt.
"""
from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

send_id_var: ContextVar[Optional[str]] = ContextVar("send_id", default=None)
quote_id_var: ContextVar[Optional[str]] = ContextVar("quote_id", default=None)

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "send_id",
        "quote_id",
    }
)


class SendContextFilter(logging.Filter):
    """Adds the current send/quote IDs to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.send_id = send_id_var.get()
        record.quote_id = quote_id_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if getattr(record, "send_id", None):
            log_data["send_id"] = record.send_id
        if getattr(record, "quote_id", None):
            log_data["quote_id"] = record.quote_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure root logging for the service.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Emit JSON lines (True) or a human-readable format (False)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(send_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SendContextFilter())
    root_logger.addHandler(console_handler)


def generate_send_id() -> str:
    return f"send_{uuid.uuid4().hex[:16]}"


def mask_email(address: str) -> str:
    """Mask the local part of an address for logs: jane@x.com -> j***@x.com."""
    if not address or "@" not in address:
        return "***"
    local, _, domain = address.partition("@")
    return f"{local[:1]}***@{domain}"


class SendLogContext:
    """Context manager that binds a send ID and quote ID to log records."""

    def __init__(self, quote_id: str, send_id: Optional[str] = None):
        self.quote_id = quote_id
        self.send_id = send_id or generate_send_id()
        self._tokens: tuple = ()

    def __enter__(self) -> "SendLogContext":
        self._tokens = (
            send_id_var.set(self.send_id),
            quote_id_var.set(self.quote_id),
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        send_token, quote_token = self._tokens
        send_id_var.reset(send_token)
        quote_id_var.reset(quote_token)

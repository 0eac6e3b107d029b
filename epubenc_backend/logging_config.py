"""Console logging for the gateway.

Each request gets a short context id (held in a ContextVar) that the
formatter prefixes to every line, so interleaved concurrent requests stay
readable.
"""
from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class SimpleFormatter(logging.Formatter):
    """Human-readable formatter: TIME LEVEL [req:id] logger: message."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = record.levelname.ljust(5)
        request_id = request_id_var.get()
        context_str = f"[req:{request_id}] " if request_id else ""
        logger_name = record.name.split(".")[-1]
        line = f"{timestamp} {level} {context_str}{logger_name}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Idempotent: the app factory may run more than once per process (tests, reload).
    for handler in list(root_logger.handlers):
        if getattr(handler, "_epubenc_handler", False):
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(SimpleFormatter())
    console_handler._epubenc_handler = True  # type: ignore[attr-defined]
    root_logger.addHandler(console_handler)


def generate_request_id() -> str:
    return str(uuid.uuid4())[:8]


def set_request_id(request_id: Optional[str] = None) -> str:
    request_id = request_id or generate_request_id()
    request_id_var.set(request_id)
    return request_id

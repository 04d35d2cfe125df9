"""Logging context for logical platform API calls."""

from __future__ import annotations

import contextlib
import contextvars
import logging
import uuid
from typing import Iterator, Optional, Union

_LOG_FORMAT = "%(asctime)s %(levelname)s [call_id=%(call_id)s] %(name)s %(message)s"

_call_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "platform_call_id", default=None
)

_call_id_filter_attached = False


def generate_call_id() -> str:
    """Generate a unique, log-friendly logical call identifier."""

    return f"call-{uuid.uuid4().hex[:12]}"


def get_current_call_id() -> Optional[str]:
    return _call_id_var.get()


@contextlib.contextmanager
def bind_call_id(call_id: Optional[str] = None) -> Iterator[str]:
    """Bind ``call_id`` (or a fresh one) to the current task for the block."""

    resolved = call_id or generate_call_id()
    token = _call_id_var.set(resolved)
    try:
        yield resolved
    finally:
        _call_id_var.reset(token)


class CallIdFilter(logging.Filter):
    """Ensure every log record carries the current logical call identifier."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.call_id = get_current_call_id() or "-"
        return True


_call_id_filter = CallIdFilter()


def init_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure structured logging once per process."""

    global _call_id_filter_attached

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root_logger.addHandler(handler)
    else:
        for handler in root_logger.handlers:
            formatter = handler.formatter
            if formatter is None or "%(call_id)" not in getattr(formatter, "_fmt", ""):
                handler.setFormatter(logging.Formatter(_LOG_FORMAT))

    if not _call_id_filter_attached:
        root_logger.addFilter(_call_id_filter)
        for handler in root_logger.handlers:
            handler.addFilter(_call_id_filter)
        _call_id_filter_attached = True

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root_logger.setLevel(level)


__all__ = [
    "CallIdFilter",
    "bind_call_id",
    "generate_call_id",
    "get_current_call_id",
    "init_logging",
]

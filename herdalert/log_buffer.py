"""
In-memory log buffer backing the dashboard's /logs endpoint.

A logging.Handler keeps the most recent records in a bounded deque so
connection trouble (handshake rejections, retries, give-ups) can be inspected
without shell access to the client host.
"""
import logging
import threading
from collections import deque
from typing import Optional


LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"
_formatter = logging.Formatter(LOG_FORMAT)

_buffer: Optional[deque] = None
_lock = threading.Lock()
_handler: Optional["LogBufferHandler"] = None


class LogBufferHandler(logging.Handler):
    """Appends log records to a bounded, thread-safe deque as structured dicts."""

    def __init__(self, buffer: deque):
        super().__init__()
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "ts": record.created,
                "name": record.name,
                "level": record.levelname,
                "levelno": record.levelno,
                "message": self.format(record),
            }
            with _lock:
                self._buffer.append(entry)
        except Exception:
            self.handleError(record)


def install_log_handler(capacity: int = 1000) -> None:
    """Create the buffer and handler and attach them to the root logger. Idempotent."""
    global _buffer, _handler
    with _lock:
        if _handler is not None:
            return
        _buffer = deque(maxlen=capacity)
        _handler = LogBufferHandler(_buffer)
        _handler.setFormatter(_formatter)
    logging.getLogger().addHandler(_handler)


def uninstall_log_handler() -> None:
    global _buffer, _handler
    with _lock:
        handler = _handler
        _handler = None
        _buffer = None
    if handler is not None:
        logging.getLogger().removeHandler(handler)


def get_recent_logs(limit: int = 200, min_level: int = logging.NOTSET,
                    logger_prefix: str = "") -> list[dict]:
    """
    Return up to `limit` of the newest entries, oldest first, keeping only
    records at or above `min_level` whose logger name starts with
    `logger_prefix`.
    """
    with _lock:
        if _buffer is None:
            return []
        entries = list(_buffer)
    if min_level or logger_prefix:
        entries = [e for e in entries
                   if e["levelno"] >= min_level and e["name"].startswith(logger_prefix)]
    if limit <= 0:
        return []
    return entries[-limit:]

# Overview: Bounded in-memory log of recent warnings/errors, attached to the app logger.

from __future__ import annotations

import json
import logging
import threading
from collections import deque

from .time_utils import to_utc_z, utcnow


class EventLog(logging.Handler):
    """
    Ring buffer of the most recent log records (newest first).

    One instance per app, created in create_app() and stored in
    app.extensions["lounge.event_log"]. Oldest entries fall off once
    `capacity` is reached.
    """

    def __init__(self, capacity: int = 1000, level: int = logging.WARNING):
        super().__init__(level=level)
        self.capacity = capacity
        self._entries: deque[dict] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        entry = {
            "timestamp": to_utc_z(utcnow()),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "component": getattr(record, "component", None),
            "details": getattr(record, "details", None),
        }
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["error"] = f"{type(exc).__name__}: {exc}"
        with self._lock:
            self._entries.appendleft(entry)

    def entries(self, limit: int | None = None) -> list[dict]:
        with self._lock:
            items = list(self._entries)
        return items[:limit] if limit else items

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def export(self) -> str:
        return json.dumps(self.entries(), indent=2, default=str)

    def __len__(self) -> int:
        return len(self._entries)

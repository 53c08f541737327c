"""
Transient user-facing messages.

The sync layer never talks to a UI directly; it posts short localized
messages here and whatever front end is attached shows them as toasts that
dismiss themselves after `duration` milliseconds.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable

from . import config

log = logging.getLogger("agency.notify")

# Localized messages shown to the user
MSG_SAVE_FAILED = "שגיאה בשמירת הנתונים. נסה שוב."
MSG_DELETE_FAILED = "שגיאה במחיקה. נסה שוב."
MSG_LOAD_FAILED = "שגיאה בטעינת הנתונים."
MSG_CONVERT_FAILED = "שגיאה בהמרת הליד ללקוח. השינויים בוטלו."
MSG_INCONSISTENT = "שגיאה חמורה: הנתונים אינם מסונכרנים. פנה לתמיכה."
MSG_UPLOAD_FAILED = "שגיאה בהעלאת הקובץ."


class Notifier:
    """Fan-out for toast messages, with a short in-memory history."""

    LEVELS = ("info", "success", "warning", "error")

    def __init__(self, duration: int = None):
        self.duration = duration or config.NOTIFY_DURATION_MS
        self.history: deque = deque(maxlen=50)
        self._handlers: list[Callable] = []
        self._lock = threading.Lock()

    def add_handler(self, handler: Callable[[str, str, int], None]):
        """handler(message, level, duration_ms)"""
        self._handlers.append(handler)

    def show(self, message: str, level: str = "info"):
        if level not in self.LEVELS:
            level = "info"
        with self._lock:
            self.history.append({"message": message, "level": level, "at": time.time()})
        log.log(logging.ERROR if level == "error" else logging.INFO,
                "[toast:%s] %s", level, message)
        for handler in list(self._handlers):
            try:
                handler(message, level, self.duration)
            except Exception as e:
                log.warning("Toast handler failed: %s", e)

    def error(self, message: str):
        self.show(message, "error")

    def success(self, message: str):
        self.show(message, "success")

    def active(self) -> list[dict]:
        """Messages that have not yet been auto-dismissed."""
        cutoff = time.time() - self.duration / 1000.0
        with self._lock:
            return [m for m in self.history if m["at"] >= cutoff]

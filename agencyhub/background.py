"""
Best-effort background work for the sync layer.

Side effects that must never block or fail the primary operation (activity
log persistence, derived audit records, intelligence re-parenting) are
queued here and run on a single worker thread with retry and exponential
backoff. Failures are counted and logged as warnings, never raised.
"""

import logging
import queue
import threading
import time
from collections import deque
from typing import Callable, Optional

from . import config

log = logging.getLogger("agency.background")


class BackgroundQueue:
    """
    Single-worker task queue.

    inline=True runs every task immediately in the caller's thread (used by
    the CLI and the tests); the retry and swallow-on-failure rules still apply
    but there is no sleep between attempts. Otherwise the worker starts on the
    first submit, so a task never runs in the caller's thread.
    """

    def __init__(self, retries: int = None, backoff: float = None, inline: bool = False):
        self.retries = config.TASK_RETRIES if retries is None else retries
        self.backoff = config.TASK_BACKOFF_SECONDS if backoff is None else backoff
        self.inline = inline
        self.stats = {"submitted": 0, "succeeded": 0, "retried": 0, "failed": 0}
        self.failures: deque = deque(maxlen=50)      # (label, error message)
        self._queue: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stats_lock = threading.Lock()
        self._start_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------
    def start(self):
        """Start the worker thread (no-op when inline)."""
        with self._start_lock:
            if self.inline or self._running:
                return
            self._running = True
            self._thread = threading.Thread(target=self._run_loop, daemon=True,
                                            name="AgencyBackground")
            self._thread.start()
        log.info("Background queue started")

    def stop(self, timeout: float = 5):
        """Finish queued tasks, then stop the worker."""
        if not self._running:
            return
        self._queue.put(None)
        if self._thread:
            self._thread.join(timeout=timeout)
        self._running = False
        log.info("Background queue stopped (%s)", self.stats)

    def submit(self, label: str, task: Callable[[], object]):
        """Queue task. It runs at most 1 + retries times."""
        self._count("submitted")
        if self.inline:
            self._execute(label, task)
            return
        if not self._running:
            self.start()
        self._queue.put((label, task))

    def flush(self):
        """Block until every queued task has been processed."""
        if self._running:
            self._queue.join()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _run_loop(self):
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                label, task = item
                self._execute(label, task)
            finally:
                self._queue.task_done()

    def _execute(self, label: str, task: Callable[[], object]):
        attempts = 1 + max(0, self.retries)
        for attempt in range(attempts):
            try:
                task()
                self._count("succeeded")
                return
            except Exception as e:
                if attempt < attempts - 1:
                    self._count("retried")
                    log.debug("%s failed (attempt %d/%d): %s", label, attempt + 1, attempts, e)
                    if self.backoff and not self.inline:
                        time.sleep(self.backoff * (2 ** attempt))
                    continue
                self._count("failed")
                self.failures.append((label, str(e)))
                log.warning("Background task %s failed after %d attempts: %s",
                            label, attempts, e)

    def _count(self, key: str):
        with self._stats_lock:
            self.stats[key] += 1

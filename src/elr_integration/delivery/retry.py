"""Background retry driver for the delivery queue."""

from __future__ import annotations

import logging
import sqlite3
import threading

from .forwarder import Forwarder

logger = logging.getLogger(__name__)

DEFAULT_STARTUP_DELAY = 20.0
DEFAULT_INTERVAL = 10.0


class RetryDriver:
    """Drain one queued document per tick on a daemon thread.

    The first tick runs ``startup_delay`` seconds after ``start()``, later
    ticks every ``interval`` seconds until ``stop()``.
    """

    def __init__(
        self,
        forwarder: Forwarder,
        startup_delay: float = DEFAULT_STARTUP_DELAY,
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        self.forwarder = forwarder
        self.startup_delay = startup_delay
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name="elr-retry", daemon=True)
            self._thread.start()
        logger.info(
            "Retry driver started (first drain in %.1fs, then every %.1fs)",
            self.startup_delay, self.interval,
        )

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout)

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def tick(self) -> int | None:
        """Run one drain; returns the remaining queue size, None if it failed."""
        try:
            return self.forwarder.drain()
        except sqlite3.Error:
            logger.exception("Delivery queue unavailable; will retry next tick")
            return None

    def _run(self) -> None:
        if self._stop_event.wait(self.startup_delay):
            return
        while True:
            try:
                self.tick()
            except Exception:
                logger.exception("Retry drain failed; will retry next tick")
            if self._stop_event.wait(self.interval):
                return

"""Periodic drivers: run a tick callable on a background thread every N seconds."""

from __future__ import annotations
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("futures_agent.runtime.drivers")


class PeriodicDriver:
    """
    Calls `tick` every `interval_seconds` until stop() is called.
    The tick is responsible for its own error handling; an exception escaping
    it is logged and the driver keeps running.
    """

    def __init__(self, name: str, interval_seconds: float, tick: Callable[[], object], run_immediately: bool = True):
        self.name = name
        self.interval_seconds = interval_seconds
        self._tick = tick
        self._run_immediately = run_immediately
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=f"driver-{self.name}", daemon=True)
        self._thread.start()
        logger.info("Driver %s started (every %.0fs)", self.name, self.interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info("Driver %s stopped", self.name)

    def _run(self) -> None:
        if self._run_immediately:
            self._safe_tick()
        while not self._stop_event.wait(self.interval_seconds):
            self._safe_tick()

    def _safe_tick(self) -> None:
        try:
            self._tick()
        except Exception:
            logger.exception("Driver %s tick raised", self.name)

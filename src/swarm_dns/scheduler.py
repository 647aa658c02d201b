"""Periodic trigger used to drive queue passes and rescans."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Ticker:
    """Call ``func`` every ``interval`` seconds on a background thread.

    The first call happens one interval after ``start()``.
    """

    def __init__(self, interval: float, func: Callable[[], object], *, name: str = "ticker"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.name = name
        self._func = func
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop_event,), name=self.name, daemon=True
        )
        self._thread.start()
        logger.debug(f"Started {self.name} (every {self.interval}s)")

    def stop(self) -> None:
        """Prevent further runs. A run already in progress is left to finish."""
        self._stop_event.set()
        self._thread = None
        logger.debug(f"Stopped {self.name}")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                self._func()
            except Exception as e:
                logger.error(f"{self.name} run failed: {e}", exc_info=True)

"""Background timer that drives periodic session ticks."""

from __future__ import annotations

import logging
import threading
from typing import Callable

_LOG = logging.getLogger(__name__)


class Ticker:
    """Invoke ``callback`` every ``interval_s`` seconds on a daemon thread."""

    def __init__(self, interval_s: float, callback: Callable[[], None]) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be greater than zero")
        self._interval_s = interval_s
        self._callback = callback
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        # Each worker owns its event so a cancelled one cannot be revived.
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(self._stop_event,),
            name="trail-tracker-ticker",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> threading.Thread | None:
        """Signal the worker to exit and return it without waiting."""

        self._stop_event.set()
        thread = self._thread
        self._thread = None
        return thread

    def stop(self, timeout: float | None = 2.0) -> None:
        join_worker(self.cancel(), timeout)

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval_s):
            try:
                self._callback()
            except Exception:
                _LOG.exception("Tick callback failed")


def join_worker(thread: threading.Thread | None, timeout: float | None = 2.0) -> None:
    # A callback may stop its own ticker; joining the current thread would hang.
    if thread is not None and thread is not threading.current_thread():
        thread.join(timeout)

"""Main-context scheduler for response handlers.

Handlers for builders with ResponseThread.MAIN are posted here instead of
running on the sender's worker thread. The embedding application drains the
queue from its main loop (run_pending) or blocks until work arrives
(run_until_idle). Ordering is FIFO per scheduler.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class MainThreadScheduler:
    """A FIFO queue of callbacks executed by whichever thread drains it.

    Usage:
        scheduler = MainThreadScheduler()
        builder.get_response(Item, on_item)   # posts on_item when done
        scheduler.run_until_idle(timeout=5.0) # on the main thread
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[Callable[[], None]] = queue.Queue()
        self._pending = 0
        self._lock = threading.Lock()

    def post(self, callback: Callable[[], None]) -> None:
        """Schedule a callback for the draining thread."""
        with self._lock:
            self._pending += 1
        self._queue.put(callback)

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def run_pending(self) -> int:
        """Run every callback queued so far without blocking.

        Returns:
            Number of callbacks executed.
        """
        executed = 0
        while True:
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                return executed
            self._run(callback)
            executed += 1

    def run_until_idle(self, timeout: float = 30.0, expected: int = 1) -> int:
        """Block until at least `expected` callbacks ran, then drain the rest.

        Returns:
            Number of callbacks executed.

        Raises:
            TimeoutError: If fewer than `expected` callbacks arrived in time.
        """
        deadline = time.monotonic() + timeout
        executed = 0
        while executed < expected:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(
                    f"Only {executed} of {expected} main-thread callbacks ran within {timeout}s"
                )
            try:
                callback = self._queue.get(timeout=remaining)
            except queue.Empty:
                continue
            self._run(callback)
            executed += 1
        return executed + self.run_pending()

    def _run(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._pending -= 1
        callback()

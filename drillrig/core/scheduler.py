"""
Command source and tick scheduler.

The controller runs one short step per tick. The scheduler drives those
ticks on a fixed cadence from a background thread and feeds at most one
queued command into each.
"""

import time
import queue
import logging
import threading
from typing import Optional, Callable


class CommandQueue:
    """Thread-safe FIFO of command tokens, drained one per tick."""

    def __init__(self, maxsize: int = 64):
        self._queue: "queue.Queue[str]" = queue.Queue(maxsize=maxsize)

    def put(self, command: str) -> bool:
        """
        Queue a command token.

        Returns:
            True if queued, False if the queue is full.
        """
        try:
            self._queue.put_nowait(command)
            return True
        except queue.Full:
            return False

    def poll(self) -> Optional[str]:
        """Take the next command, or None when there is none."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def __len__(self) -> int:
        return self._queue.qsize()


class TickScheduler:
    """
    Fixed-cadence tick driver.

    Calls ``tick(command)`` every interval with the next command from the
    source. Runs in a daemon thread between start() and stop().
    """

    def __init__(self, tick: Callable[[Optional[str]], None],
                 source: CommandQueue,
                 interval_s: float = 1.6):
        """
        Initialize scheduler.

        Args:
            tick: Tick entry point
            source: Command source polled once per tick
            interval_s: Tick period in seconds
        """
        self._tick = tick
        self._source = source
        self._interval = interval_s
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._tick_count = 0
        self._logger = logging.getLogger('rig.scheduler')

    def run_once(self) -> None:
        """Run a single tick."""
        self._tick(self._source.poll())
        self._tick_count += 1

    def start(self) -> None:
        """Start ticking in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()
        self._logger.info(f"Tick scheduler started ({self._interval}s period)")

    def stop(self) -> None:
        """Stop the background thread."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval + 1.0)
            self._thread = None

    def _loop(self) -> None:
        next_tick = time.monotonic()
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                self._logger.exception("Tick failed")

            next_tick += self._interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Overran the period, do not try to catch up
                next_tick = time.monotonic()
                delay = 0
            self._stop.wait(delay)

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

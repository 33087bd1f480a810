"""
Scrolling status log for the rig LCD panel.

A fixed header block (phase, step) followed by the most recent log
lines. Oldest lines scroll off first.
"""

import logging
import threading
from collections import deque
from typing import Optional, Callable, List

from .devices import Display


# Message that clears the log instead of being appended
RESET_DIRECTIVE = "reset"


class StatusDisplay:
    """
    Bounded status log rendered to a text panel.

    Supports:
    - Header fields refreshed on every render
    - FIFO eviction once the visible line bound is reached
    - Reset directive that keeps the header
    - Mirroring every line to the 'rig.status' logger
    """

    DEFAULT_MAX_LINES = 23

    def __init__(self, display: Optional[Display] = None,
                 max_lines: int = DEFAULT_MAX_LINES,
                 header: Optional[Callable[[], List[str]]] = None):
        """
        Initialize status display.

        Args:
            display: Text panel to mirror to (None keeps text in memory only)
            max_lines: Visible line bound, header included
            header: Returns the header field lines
        """
        self._display = display
        self._header = header or (lambda: [])
        self._max_lines = max_lines
        self._lock = threading.Lock()
        self._logger = logging.getLogger('rig.status')

        capacity = max_lines - self.header_size
        if capacity < 1:
            raise ValueError(f"max_lines {max_lines} leaves no room below the header")
        self._lines: deque = deque(maxlen=capacity)
        self._text = ""
        self._warned_no_display = False

    @property
    def header_size(self) -> int:
        """Header field lines plus the blank separator."""
        return len(self._header()) + 1

    @property
    def capacity(self) -> int:
        """Number of log lines kept below the header."""
        return self._lines.maxlen

    @property
    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    @property
    def text(self) -> str:
        return self._text

    def bind(self, display: Optional[Display]) -> None:
        """Attach the text panel once it has been resolved."""
        self._display = display
        self._warned_no_display = False

    def write(self, message: str) -> None:
        """Append a line, or reset when given the reset directive."""
        if message == RESET_DIRECTIVE:
            self.reset()
            return

        if message:
            self._logger.info(message)
            with self._lock:
                self._lines.append(message)
        self.render()

    def reset(self) -> None:
        """Clear the log, keeping the header."""
        with self._lock:
            self._lines.clear()
        self.render()

    def render(self) -> str:
        """Compose header and log and push them to the panel."""
        with self._lock:
            body = list(self._lines)
        self._text = "\n".join(self._header() + [""] + body)

        if self._display is not None:
            self._display.write_text(self._text)
        elif not self._warned_no_display:
            self._logger.warning("LCD Screen is not initialized.")
            self._warned_no_display = True

        return self._text

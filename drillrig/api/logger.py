"""
System log for the drilling rig.

Every entry is stamped with the rig phase and step it was written in, so
the history of one run can be pulled back per phase. Entries stay in a
ring buffer for the API and, once configure_files() is called, are also
written to rotating drillrig.log and drillrig.jsonl files.
"""

import itertools
import json
import logging
import threading
import traceback
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partialmethod
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Dict, Any, List, Callable, Tuple

from ..core.sequencer import Phase


class LogCategory(str, Enum):
    SYSTEM = "SYSTEM"       # Startup, configuration, buffer maintenance
    SEQUENCE = "SEQUENCE"   # Controller narration: step lines, phase changes
    DEVICE = "DEVICE"       # Bench value writes
    COMMAND = "COMMAND"     # Command tokens queued
    ERROR = "ERROR"         # Exceptions with traceback


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def levelno(self) -> int:
        return logging.getLevelName(self.value)


# (phase name, step) of the rig at the moment an entry is written
RigContext = Tuple[Optional[str], Optional[int]]

_entry_ids = itertools.count(1)


@dataclass
class LogEntry:
    """One system log line."""
    level: LogLevel
    category: LogCategory
    message: str
    source: str = ""
    phase: Optional[str] = None
    step: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    id: int = field(default_factory=lambda: next(_entry_ids))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "category": self.category.value,
            "phase": self.phase,
            "step": self.step,
            "message": self.message,
            "source": self.source,
            "details": self.details,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def __str__(self) -> str:
        ts = self.timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        where = f" [{self.phase}:{self.step}]" if self.phase else ""
        src = f" [{self.source}]" if self.source else ""
        return f"{ts} [{self.level.value}] [{self.category.value}]{where}{src} {self.message}"


@dataclass
class LogQuery:
    """Filter for reading entries back."""
    level: Optional[LogLevel] = None
    category: Optional[LogCategory] = None
    phase: Optional[str] = None
    since_id: Optional[int] = None
    search: Optional[str] = None

    def matches(self, entry: LogEntry) -> bool:
        if self.since_id is not None and entry.id <= self.since_id:
            return False
        # This level and higher
        if self.level is not None and entry.level.levelno < self.level.levelno:
            return False
        if self.category is not None and entry.category != self.category:
            return False
        if self.phase is not None and entry.phase != self.phase:
            return False
        if self.search:
            needle = self.search.lower()
            return needle in entry.message.lower() or needle in entry.source.lower()
        return True


class LogBuffer:
    """Thread-safe ring of the most recent entries."""

    def __init__(self, max_size: int = 2000):
        self._entries: "deque[LogEntry]" = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def add(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def query(self, query: LogQuery, limit: int = 500) -> List[LogEntry]:
        """Matching entries, oldest first, at most ``limit`` of the newest."""
        if limit <= 0:
            return []
        with self._lock:
            matched = [entry for entry in self._entries if query.matches(entry)]
        return matched[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class _TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return str(record.entry)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return record.entry.to_json()


class RigLogger:
    """System log with optional rotating file output."""

    def __init__(self, max_entries: int = 2000):
        self.buffer = LogBuffer(max_size=max_entries)
        self._handlers: List[RotatingFileHandler] = []
        self._context: Callable[[], RigContext] = lambda: (None, None)

    def configure_files(self, log_dir: str,
                        max_bytes: int = 10 * 1024 * 1024,
                        backup_count: int = 5) -> None:
        """Write entries to rotating drillrig.log and drillrig.jsonl in log_dir."""
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        self.close()

        for filename, formatter in (("drillrig.log", _TextFormatter()),
                                    ("drillrig.jsonl", _JsonFormatter())):
            handler = RotatingFileHandler(path / filename, maxBytes=max_bytes,
                                          backupCount=backup_count, encoding='utf-8')
            handler.setFormatter(formatter)
            self._handlers.append(handler)

    def close(self) -> None:
        """Close the log files, if any."""
        for handler in self._handlers:
            handler.close()
        self._handlers = []

    def bind_context(self, context: Callable[[], RigContext]) -> None:
        """Set the callable that reports the rig phase and step."""
        self._context = context

    def log(self, message: str, category: LogCategory,
            level: LogLevel = LogLevel.INFO,
            source: str = "",
            details: Optional[Dict[str, Any]] = None) -> LogEntry:
        phase, step = self._context()
        entry = LogEntry(level, category, message, source, phase, step, details or {})
        self.buffer.add(entry)

        if self._handlers:
            # handle() goes through emit(), which is where rollover happens
            record = logging.makeLogRecord({
                'name': 'rig.syslog',
                'levelno': level.levelno,
                'levelname': level.value,
                'msg': message,
                'entry': entry,
            })
            for handler in self._handlers:
                handler.handle(record)

        return entry

    system = partialmethod(log, category=LogCategory.SYSTEM)
    sequence = partialmethod(log, category=LogCategory.SEQUENCE)
    device = partialmethod(log, category=LogCategory.DEVICE)
    command = partialmethod(log, category=LogCategory.COMMAND)

    def get_logs(self,
                 level: Optional[str] = None,
                 category: Optional[str] = None,
                 since_id: Optional[int] = None,
                 search: Optional[str] = None,
                 limit: int = 500,
                 phase: Optional[str] = None) -> List[Dict[str, Any]]:
        """Entries as dicts (raises ValueError on unknown level, category or phase)."""
        if phase is not None and phase not in Phase.__members__:
            raise ValueError(f"Unknown phase '{phase}'")
        query = LogQuery(
            level=LogLevel(level) if level else None,
            category=LogCategory(category) if category else None,
            phase=phase,
            since_id=since_id,
            search=search,
        )
        return [entry.to_dict() for entry in self.buffer.query(query, limit)]

    def clear(self) -> None:
        """Clear the ring buffer. Files are kept."""
        self.buffer.clear()


logger = RigLogger()


def get_logger() -> RigLogger:
    return logger


def log_exception(message: str, exception: Exception, source: str = "") -> LogEntry:
    """Log an exception and its traceback under ERROR."""
    return logger.log(f"{message}: {exception}", LogCategory.ERROR,
                      level=LogLevel.ERROR, source=source,
                      details={
                          "exception_type": type(exception).__name__,
                          "traceback": traceback.format_exc(),
                      })


def attach_controller(controller, syslog: Optional[RigLogger] = None) -> None:
    """
    Feed a RigController into the system log.

    Entries written from then on carry the controller's phase and step,
    and the controller's own lines are logged under SEQUENCE.
    """
    syslog = syslog or logger

    def _context() -> RigContext:
        state = controller.sequencer_state
        return state.phase.name, state.step

    def _on_log(level: str, message: str) -> None:
        try:
            lvl = LogLevel(level.upper())
        except ValueError:
            lvl = LogLevel.INFO
        syslog.sequence(message, level=lvl, source="rig")

    syslog.bind_context(_context)
    controller.on_log(_on_log)

"""Kernel logging — structured entries fanned out to several sinks.

The logger records structured log entries for simulation events: every
admission, page fault, eviction and termination, plus the final
statistics.  One call reaches every configured backend, so the console
and the log file always see the same events.

- **LogLevel** — severity levels ordered for filtering (DEBUG < ERROR).
- **LogEntry** — a single structured record (level, message, source).
- **LogSink** — a backend that receives entries (console, file).
- **Logger** — a bounded in-memory buffer plus its sinks.

Design choices:
    - **IntEnum for levels** so they compare naturally with ``<``.
    - **Frozen dataclass for entries** — log records should be immutable.
    - **Ring buffer** — a run can produce hundreds of thousands of
      entries; only the most recent ``capacity`` are kept in memory.
      Sinks see everything.
"""

from __future__ import annotations

import sys
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TextIO

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_CAPACITY = 10_000


class LogLevel(IntEnum):
    """Severity levels for log entries."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single structured log record.

    Attributes:
        level: The severity of this event.
        message: A human-readable description of what happened.
        source: The subsystem that generated the event (e.g. "paging").

    """

    level: LogLevel
    message: str
    source: str

    def __str__(self) -> str:
        """Format as ``[LEVEL] source: message``."""
        return f"[{self.level.name}] {self.source}: {self.message}"


class LogSink(Protocol):
    """A destination for log entries."""

    def emit(self, entry: LogEntry) -> None:
        """Deliver one entry."""
        ...  # pragma: no cover

    def close(self) -> None:
        """Release any underlying resource."""
        ...  # pragma: no cover


class StreamSink:
    """Write entries at or above a minimum level to a text stream."""

    def __init__(self, stream: TextIO | None = None, *, min_level: LogLevel = LogLevel.INFO) -> None:
        """Create a sink writing to ``stream`` (stdout by default)."""
        self._stream = stream if stream is not None else sys.stdout
        self._min_level = min_level

    def emit(self, entry: LogEntry) -> None:
        """Write the entry if it meets the minimum level."""
        if entry.level >= self._min_level:
            self._stream.write(f"{entry}\n")

    def close(self) -> None:
        """Flush the stream; the stream itself is not ours to close."""
        self._stream.flush()


class FileSink:
    """Append every entry at or above a minimum level to a log file.

    The file is truncated when the sink is created, matching one log
    file per simulation run.
    """

    def __init__(self, path: str | Path, *, min_level: LogLevel = LogLevel.DEBUG) -> None:
        """Open (and truncate) the log file.

        Raises:
            OSError: If the file cannot be opened.

        """
        self._path = Path(path)
        self._min_level = min_level
        self._file: TextIO | None = self._path.open("w", encoding="utf-8")

    @property
    def path(self) -> Path:
        """Return the log file path."""
        return self._path

    def emit(self, entry: LogEntry) -> None:
        """Write the entry if the file is open and the level qualifies."""
        if self._file is not None and entry.level >= self._min_level:
            self._file.write(f"{entry}\n")

    def close(self) -> None:
        """Close the file (idempotent)."""
        if self._file is not None:
            self._file.close()
            self._file = None


class Logger:
    """Bounded log buffer with filtering and pluggable sinks."""

    def __init__(
        self,
        *,
        sinks: Iterable[LogSink] = (),
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        """Create an empty logger.

        Args:
            sinks: Backends that receive every logged entry.
            capacity: Maximum number of entries kept in memory.

        """
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._sinks: list[LogSink] = list(sinks)

    @property
    def entries(self) -> list[LogEntry]:
        """Return buffered entries in chronological order."""
        return list(self._entries)

    def add_sink(self, sink: LogSink) -> None:
        """Attach another backend."""
        self._sinks.append(sink)

    def log(self, level: LogLevel, message: str, *, source: str) -> None:
        """Record an entry and forward it to every sink.

        Args:
            level: Severity of the event.
            message: Human-readable event description.
            source: Subsystem that generated the event.

        """
        entry = LogEntry(level=level, message=message, source=source)
        self._entries.append(entry)
        for sink in self._sinks:
            sink.emit(entry)

    def debug(self, message: str, *, source: str) -> None:
        """Log at DEBUG level."""
        self.log(LogLevel.DEBUG, message, source=source)

    def info(self, message: str, *, source: str) -> None:
        """Log at INFO level."""
        self.log(LogLevel.INFO, message, source=source)

    def warning(self, message: str, *, source: str) -> None:
        """Log at WARNING level."""
        self.log(LogLevel.WARNING, message, source=source)

    def error(self, message: str, *, source: str) -> None:
        """Log at ERROR level."""
        self.log(LogLevel.ERROR, message, source=source)

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
    ) -> list[LogEntry]:
        """Return buffered entries matching the given criteria.

        Args:
            min_level: If set, only return entries at or above this level.
            source: If set, only return entries from this source.

        Returns:
            A filtered list of log entries.

        """
        result = list(self._entries)
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        return result

    def clear(self) -> None:
        """Remove all buffered entries."""
        self._entries.clear()

    def close(self) -> None:
        """Close every sink."""
        for sink in self._sinks:
            sink.close()

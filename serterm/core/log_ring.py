"""Bounded record of bytes sent to and received from the device."""

from __future__ import annotations

import itertools
import logging
import time
from collections import deque
from collections.abc import Callable, Iterator

from serterm.core.codec import bytes_to_text, format_log_line
from serterm.core.model import DataFormat, Direction, LogEntry

MAX_ENTRIES = 1000
LOGGER = logging.getLogger(__name__)

LogListener = Callable[[LogEntry], None]


class LogRing:
    """Append-only log keeping the most recent `capacity` entries.

    Appends are the only mutation besides `clear`; the oldest entry is evicted
    once the ring is full.
    """

    def __init__(self, capacity: int = MAX_ENTRIES, *, clock: Callable[[], float] = time.time) -> None:
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._ids = itertools.count(1)
        self._clock = clock
        self._listeners: list[LogListener] = []

    def add(self, direction: Direction, data: bytes) -> LogEntry:
        payload = bytes(data)
        entry = LogEntry(
            id=next(self._ids),
            timestamp=self._clock(),
            direction=direction,
            data=payload,
            text=bytes_to_text(payload),
        )
        self._entries.append(entry)
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                LOGGER.exception("Log listener failed for entry %d", entry.id)
        return entry

    def subscribe(self, listener: LogListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def export_text(self, display: DataFormat = "text") -> str:
        return "\n".join(format_log_line(entry, display) for entry in self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._entries)

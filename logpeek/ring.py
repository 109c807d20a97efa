"""Bounded, thread-safe ring buffer of log entries with monotonic IDs."""

import collections
import dataclasses
import threading

from logpeek.filters import build_predicate
from logpeek.models import LogEntry, LogFilter, QueryResult

DEFAULT_QUERY_LIMIT = 1000


class RingBuffer:
    """In-memory history backed by a bounded deque.

    Appending to a full deque drops the oldest entry in the same step, so
    the buffer never holds more than ``capacity`` entries. The ID counter
    lives outside the deque and survives ``clear()``.
    """

    def __init__(self, capacity: int = 10000):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._entries: collections.deque[LogEntry] = collections.deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._total_received = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def add(self, entry: LogEntry) -> LogEntry:
        """Store a copy of ``entry`` under the next ID and return it."""
        with self._lock:
            self._total_received += 1
            stored = dataclasses.replace(entry, id=self._total_received)
            self._entries.append(stored)
        return stored

    def snapshot(self) -> list[LogEntry]:
        """Return all held entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def query(self, log_filter: LogFilter) -> QueryResult:
        """Return entries matching ``log_filter`` in chronological order.

        ``total`` counts every match; the result is cut to ``limit``
        (DEFAULT_QUERY_LIMIT when the filter's limit is zero or negative).
        """
        entries = self.snapshot()
        predicate = build_predicate(log_filter)
        matched = [entry for entry in entries if predicate(entry)]

        limit = log_filter.limit if log_filter.limit > 0 else DEFAULT_QUERY_LIMIT
        total = len(matched)
        has_more = total > limit
        if has_more:
            matched = matched[:limit]

        return QueryResult(entries=matched, total=total, has_more=has_more)

    def clear(self):
        """Drop every held entry. IDs keep counting from where they were."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                "capacity": self._capacity,
                "used": len(self._entries),
                "total_received": self._total_received,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

"""Parse-quality counters for the ingestion thread.

Tracks how lines were understood rather than just how many arrived:
how many decoded as JSON objects versus fell back to the text heuristics,
how many carried a recognizable time or level, and how many were cut at
the line-length cap. The status endpoint reports the snapshot as-is.
"""

import threading
import time
from collections import Counter

from logpeek.models import LogEntry

UNLEVELED = "NONE"


class IngestMetrics:
    def __init__(self):
        self._lock = threading.Lock()
        self._formats: Counter[str] = Counter()
        self._levels: Counter[str] = Counter()
        self._with_time = 0
        self._truncated = 0
        self._started = time.monotonic()

    def record(self, entry: LogEntry):
        parsed = entry.parsed
        with self._lock:
            if parsed is None:
                self._formats["text"] += 1
                self._levels[UNLEVELED] += 1
                return
            self._formats[parsed.format] += 1
            self._levels[parsed.level or UNLEVELED] += 1
            if parsed.time is not None:
                self._with_time += 1

    def record_truncated(self):
        with self._lock:
            self._truncated += 1

    def snapshot(self) -> dict:
        with self._lock:
            lines = sum(self._formats.values())
            formats = dict(self._formats)
            levels = dict(self._levels)
            with_time = self._with_time
            truncated = self._truncated
            elapsed = time.monotonic() - self._started

        return {
            "lines": lines,
            "structured": formats.get("json", 0),
            "text": formats.get("text", 0),
            "withTime": with_time,
            "truncated": truncated,
            "levels": levels,
            "linesPerSecond": round(lines / elapsed, 2) if elapsed > 0 else 0.0,
        }

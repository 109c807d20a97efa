import pytest
from datetime import datetime, timezone

from logpeek.hub import Hub
from logpeek.metrics import IngestMetrics
from logpeek.models import LogEntry, ParsedRecord
from logpeek.parser import parse_line
from logpeek.ring import RingBuffer


def make_entry(raw="test line", level="", entry_id=0) -> LogEntry:
    """Build an unparsed-by-heuristics entry with an explicit level."""
    return LogEntry(
        timestamp=datetime(2025, 5, 15, 14, 30, tzinfo=timezone.utc),
        raw=raw,
        parsed=ParsedRecord(level=level, message=raw),
        id=entry_id,
    )


@pytest.fixture
def buffer():
    return RingBuffer(capacity=5)


@pytest.fixture
def hub():
    h = Hub(intake_size=64, subscriber_queue_size=4)
    h.start()
    yield h
    h.stop()


@pytest.fixture
def metrics():
    return IngestMetrics()


@pytest.fixture
def sample_lines():
    return [
        "2024-01-15T10:30:00Z INFO server started",
        "2024-01-15T10:30:01Z DEBUG loading config",
        '{"level":"warn","msg":"disk almost full","ts":1700000000}',
        "2024-01-15T10:30:03Z ERROR connection refused",
        "just some text",
    ]


@pytest.fixture
def filled_buffer(sample_lines):
    buf = RingBuffer(capacity=100)
    for line in sample_lines:
        buf.add(parse_line(line))
    return buf

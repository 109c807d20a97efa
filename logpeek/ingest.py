"""Ingestion loop: read lines, parse, store, broadcast."""

import io
import logging
import sys
import threading
from typing import Callable, Iterator, TextIO

from logpeek.hub import Hub
from logpeek.metrics import IngestMetrics
from logpeek.parser import parse_line
from logpeek.ring import RingBuffer

logger = logging.getLogger(__name__)

MAX_LINE_CHARS = 1024 * 1024


def read_lines(stream: TextIO, max_line_chars: int = MAX_LINE_CHARS,
               on_truncated: Callable[[], None] | None = None) -> Iterator[str]:
    """Yield lines without their terminators, never holding more than
    ``max_line_chars`` of a single line in memory.

    A longer line is cut at the cap and the remainder, up to the next
    newline, is read and discarded.
    """
    while True:
        chunk = stream.readline(max_line_chars)
        if not chunk:
            return
        if len(chunk) >= max_line_chars and not chunk.endswith("\n") \
                and _discard_rest_of_line(stream, max_line_chars):
            logger.warning("Line longer than %d characters truncated", max_line_chars)
            if on_truncated is not None:
                on_truncated()
        yield chunk.rstrip("\r\n")


def _discard_rest_of_line(stream: TextIO, chunk_size: int) -> bool:
    """Read through the next newline; True when any content was dropped."""
    dropped = False
    while True:
        rest = stream.readline(chunk_size)
        if rest.rstrip("\r\n"):
            dropped = True
        if not rest or rest.endswith("\n"):
            return dropped


def ingest_stream(stream: TextIO, buffer: RingBuffer, hub: Hub,
                  metrics: IngestMetrics | None = None,
                  max_line_chars: int = MAX_LINE_CHARS) -> int:
    """Consume ``stream`` until EOF and return the number of lines ingested.

    Runs on a single thread; the only place it waits is the stream itself.
    Only a failing read ends ingestion early. When the stream ends (or
    fails) subscribers get an upstream-closed notice.
    """
    on_truncated = metrics.record_truncated if metrics is not None else None
    lines = read_lines(stream, max_line_chars, on_truncated)
    count = 0
    while True:
        try:
            line = next(lines)
        except StopIteration:
            break
        except (OSError, ValueError) as e:
            logger.warning("Input read error: %s", e)
            break

        entry = buffer.add(parse_line(line))
        hub.broadcast(entry)
        if metrics is not None:
            metrics.record(entry)
        count += 1

    hub.notify_upstream_closed()
    logger.info("Input closed after %d line(s)", count)
    return count


def open_stdin() -> TextIO:
    """Standard input as UTF-8 text; undecodable bytes become U+FFFD."""
    if isinstance(sys.stdin, io.TextIOWrapper):
        sys.stdin.reconfigure(encoding="utf-8", errors="replace")
    return sys.stdin


def start_ingestion(stream: TextIO, buffer: RingBuffer, hub: Hub,
                    metrics: IngestMetrics | None = None) -> threading.Thread:
    thread = threading.Thread(
        target=ingest_stream,
        args=(stream, buffer, hub, metrics),
        name="logpeek-ingest",
        daemon=True,
    )
    thread.start()
    return thread

"""Broadcast hub: fans stored entries out to live, individually filtered subscribers.

Delivery is best-effort. A subscriber whose queue is full misses the entry
(only that subscriber), and the hub drops new entries outright when its own
intake queue is full, so ingestion never waits on a slow consumer.
"""

import json
import logging
import queue
import threading
import time
from typing import Any

from logpeek.filters import Predicate, build_predicate
from logpeek.models import LogEntry, LogFilter

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 256
DEFAULT_INTAKE_QUEUE_SIZE = 256

_CLOSED = object()


def log_message(entry: LogEntry) -> dict:
    return {"type": "log", "data": entry.to_dict()}


def status_message(upstream_open: bool) -> dict:
    return {"type": "status", "data": {"stdinOpen": upstream_open}}


def pong_message() -> dict:
    return {"type": "pong"}


class Subscriber:
    """One live consumer: a bounded outbound queue plus its current filter."""

    def __init__(self, queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE):
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._lock = threading.Lock()
        self._filter = LogFilter()
        self._predicate: Predicate = build_predicate(self._filter, use_cursor=False)
        self._closed = threading.Event()
        self._dropped = 0

    @property
    def filter(self) -> LogFilter:
        with self._lock:
            return self._filter

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped

    def set_filter(self, log_filter: LogFilter):
        """Swap filter and compiled predicate together."""
        predicate = build_predicate(log_filter, use_cursor=False)
        with self._lock:
            self._filter = log_filter
            self._predicate = predicate

    def matches(self, entry: LogEntry) -> bool:
        with self._lock:
            predicate = self._predicate
        return predicate(entry)

    def offer(self, message: dict) -> bool:
        """Enqueue without blocking. Returns False if closed or full."""
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            return False
        return True

    def receive(self, timeout: float | None = None) -> dict | None:
        """Return the next message, or None once closed and drained.

        Raises queue.Empty if ``timeout`` elapses first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self._closed.is_set():
                try:
                    item = self._queue.get_nowait()
                except queue.Empty:
                    return None
            else:
                wait = 0.5
                if deadline is not None:
                    wait = min(wait, deadline - time.monotonic())
                    if wait <= 0:
                        raise queue.Empty
                try:
                    item = self._queue.get(timeout=wait)
                except queue.Empty:
                    continue
            if item is _CLOSED:
                return None
            return item

    def close(self):
        """Mark closed; safe to call more than once."""
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            pass  # receive() checks the flag once the queue drains


class Hub(threading.Thread):
    """Single serialized fan-out point.

    Broadcasts and status notices go through one intake queue and are
    handled one at a time by this thread, so every subscriber sees entries
    in insertion order. Subscriber-set changes take ``_lock`` and so never
    interleave with a fan-out pass.
    """

    def __init__(self, intake_size: int = DEFAULT_INTAKE_QUEUE_SIZE,
                 subscriber_queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE):
        super().__init__(name="logpeek-hub", daemon=True)
        self._intake: queue.Queue = queue.Queue(maxsize=intake_size)
        self._subscriber_queue_size = subscriber_queue_size
        self._subscribers: set[Subscriber] = set()
        self._lock = threading.Lock()
        self._running = True
        self._upstream_open = True
        self._dropped_intake = 0
        self._delivered = 0
        self._dropped_slow = 0

    # -- registration ------------------------------------------------------

    def register(self) -> Subscriber:
        """Add a subscriber with a match-all filter."""
        subscriber = Subscriber(self._subscriber_queue_size)
        with self._lock:
            self._subscribers.add(subscriber)
            count = len(self._subscribers)
        logger.info("Subscriber registered (%d active)", count)
        return subscriber

    def unregister(self, subscriber: Subscriber) -> bool:
        """Remove and close a subscriber.

        Returns False when it was already gone, so only one of several
        racing callers sees True.
        """
        with self._lock:
            if subscriber not in self._subscribers:
                return False
            self._subscribers.discard(subscriber)
            subscriber.close()
            count = len(self._subscribers)
        logger.info("Subscriber unregistered (%d active)", count)
        return True

    def set_filter(self, subscriber: Subscriber, log_filter: LogFilter):
        subscriber.set_filter(log_filter)

    def clear_filter(self, subscriber: Subscriber):
        subscriber.set_filter(LogFilter())

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    # -- producer side -----------------------------------------------------

    def broadcast(self, entry: LogEntry) -> bool:
        """Queue an entry for fan-out. Returns False if the intake was full."""
        try:
            self._intake.put_nowait(("log", entry))
        except queue.Full:
            with self._lock:
                self._dropped_intake += 1
            logger.debug("Hub intake full, dropped entry %d", entry.id)
            return False
        return True

    def notify_upstream_closed(self, timeout: float = 5.0):
        """Mark the ingestion source closed and tell every subscriber.

        The notice rides the intake queue so it lands after entries that
        were already broadcast.
        """
        with self._lock:
            self._upstream_open = False
        try:
            self._intake.put(("status", status_message(False)), timeout=timeout)
        except queue.Full:
            logger.warning("Hub intake still full after %.1fs, sending status directly", timeout)
            self._send_status(status_message(False))

    def is_upstream_open(self) -> bool:
        with self._lock:
            return self._upstream_open

    # -- actor loop --------------------------------------------------------

    def run(self):
        while self._running:
            try:
                kind, payload = self._intake.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                if kind == "log":
                    self._fan_out(payload)
                else:
                    self._send_status(payload)
            finally:
                self._intake.task_done()

    def _fan_out(self, entry: LogEntry):
        message = None
        delivered = dropped = 0
        with self._lock:
            for subscriber in self._subscribers:
                if not subscriber.matches(entry):
                    continue
                if message is None:
                    message = log_message(entry)
                if subscriber.offer(message):
                    delivered += 1
                else:
                    dropped += 1
            self._delivered += delivered
            self._dropped_slow += dropped
        if dropped:
            logger.debug("Entry %d dropped for %d slow subscriber(s)", entry.id, dropped)

    def _send_status(self, message: dict):
        with self._lock:
            for subscriber in self._subscribers:
                subscriber.offer(message)

    def wait_until_idle(self):
        """Block until every queued broadcast has been fanned out."""
        self._intake.join()

    def stop(self, timeout: float = 5.0):
        self._running = False
        if self.is_alive():
            self.join(timeout=timeout)
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()

    def stats(self) -> dict:
        with self._lock:
            return {
                "subscribers": len(self._subscribers),
                "delivered": self._delivered,
                "dropped_slow_subscriber": self._dropped_slow,
                "dropped_intake_full": self._dropped_intake,
                "upstream_open": self._upstream_open,
            }


def handle_client_message(hub: Hub, subscriber: Subscriber, payload: str | bytes) -> str | None:
    """Apply one client message. Returns the message type, or None if ignored.

    ``subscribe`` replaces the filter, ``unsubscribe`` clears it and
    ``ping`` queues a pong straight to this subscriber.
    """
    try:
        msg: Any = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        logger.debug("Ignoring malformed client message")
        return None
    if not isinstance(msg, dict):
        return None

    msg_type = msg.get("type")
    if msg_type == "subscribe":
        hub.set_filter(subscriber, LogFilter.from_dict(msg.get("filter")))
    elif msg_type == "unsubscribe":
        hub.clear_filter(subscriber)
    elif msg_type == "ping":
        subscriber.offer(pong_message())
    else:
        return None
    return msg_type

"""Flask HTTP API and WebSocket live feed over the ring buffer and hub."""

import json
import logging
import threading
import time

from flask import Flask, jsonify, request
from flask_sock import Sock
from simple_websocket import ConnectionClosed

from logpeek.hub import Hub, Subscriber, handle_client_message
from logpeek.metrics import IngestMetrics
from logpeek.models import LogFilter
from logpeek.ring import RingBuffer

logger = logging.getLogger(__name__)

WS_PING_INTERVAL_SEC = 30
WS_MAX_MESSAGE_BYTES = 512 * 1024

_PLACEHOLDER_PAGE = """<!DOCTYPE html>
<html>
<head><title>logpeek</title></head>
<body>
<h1>logpeek</h1>
<p>API is up. Query <code>/api/logs</code> or connect to <code>/ws/logs</code>.</p>
</body>
</html>"""


def format_uptime(seconds: float) -> str:
    """Render whole seconds as e.g. '1h2m3s', '4m0s' or '7s'."""
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def filter_from_args(args) -> LogFilter:
    """Build a LogFilter from query-string args; bad numbers are ignored."""
    levels = args.get("levels", "")
    after_id = args.get("afterId", 0, type=int) or 0
    return LogFilter(
        search=args.get("search", ""),
        levels=tuple(lvl.strip() for lvl in levels.split(",") if lvl.strip()),
        regex=args.get("regex") == "true",
        after_id=max(after_id, 0),
        limit=args.get("limit", 0, type=int) or 0,
    )


def _pump_outbound(ws, subscriber: Subscriber, hub: Hub):
    """Writer side: forward subscriber messages until either end closes."""
    try:
        while True:
            message = subscriber.receive()
            if message is None:
                break
            ws.send(json.dumps(message))
    except ConnectionClosed:
        pass
    finally:
        hub.unregister(subscriber)
        try:
            ws.close()
        except ConnectionClosed:
            pass


def serve_subscriber(ws, hub: Hub):
    """Run one WebSocket client to completion.

    The calling thread reads client messages while a writer thread drains
    the subscriber queue. Either side ending tears down both.
    """
    subscriber = hub.register()
    writer = threading.Thread(
        target=_pump_outbound, args=(ws, subscriber, hub), daemon=True,
    )
    writer.start()
    try:
        while not subscriber.closed:
            payload = ws.receive(timeout=1)
            if payload is None:
                continue
            handle_client_message(hub, subscriber, payload)
    except ConnectionClosed:
        pass
    finally:
        hub.unregister(subscriber)
        writer.join(timeout=5)


def create_app(buffer: RingBuffer, hub: Hub, metrics: IngestMetrics | None = None,
               started_at: float | None = None) -> Flask:
    app = Flask(__name__)
    app.config["SOCK_SERVER_OPTIONS"] = {
        "ping_interval": WS_PING_INTERVAL_SEC,
        "max_message_size": WS_MAX_MESSAGE_BYTES,
    }
    sock = Sock(app)
    started = started_at if started_at is not None else time.monotonic()

    @app.route("/")
    def index():
        return _PLACEHOLDER_PAGE, 200, {"Content-Type": "text/html"}

    @app.route("/api/health")
    def health():
        return jsonify(status="ok")

    @app.route("/api/status")
    def status():
        stats = buffer.stats()
        hub_stats = hub.stats()
        return jsonify({
            "bufferSize": stats["capacity"],
            "bufferUsed": stats["used"],
            "totalReceived": stats["total_received"],
            "uptime": format_uptime(time.monotonic() - started),
            "stdinOpen": hub.is_upstream_open(),
            "subscribers": hub_stats["subscribers"],
            "dropped": {
                "slowSubscriber": hub_stats["dropped_slow_subscriber"],
                "intakeFull": hub_stats["dropped_intake_full"],
            },
            "ingest": metrics.snapshot() if metrics is not None else None,
        })

    @app.route("/api/logs", methods=["GET"])
    def get_logs():
        result = buffer.query(filter_from_args(request.args))
        return jsonify(result.to_dict())

    @app.route("/api/logs", methods=["DELETE"])
    def clear_logs():
        buffer.clear()
        logger.info("Buffer cleared via API")
        return jsonify(status="cleared")

    @sock.route("/ws/logs")
    def ws_logs(ws):
        serve_subscriber(ws, hub)

    return app

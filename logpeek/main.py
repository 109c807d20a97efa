#!/usr/bin/env python3
"""logpeek: pipe logs in, browse and stream them over HTTP/WebSocket."""

import argparse
import logging
import signal
import sys
import threading
import time
import webbrowser

from logpeek import __version__
from logpeek.config import load_config, load_yaml_config
from logpeek.hub import Hub
from logpeek.ingest import open_stdin, start_ingestion
from logpeek.metrics import IngestMetrics
from logpeek.ring import RingBuffer
from logpeek.web import create_app

logger = logging.getLogger(__name__)


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logpeek",
        description="Tail logs from stdin and inspect them in the browser",
    )
    parser.add_argument("--host", default=None, help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="HTTP server port (default: 8080)")
    parser.add_argument(
        "--buffer", dest="buffer_size", type=int, default=None,
        help="Max log lines to keep in memory (default: 10000)",
    )
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("--log-level", dest="log_level", default=None, help="Logging level (default: INFO)")
    parser.add_argument("--no-open", action="store_true", help="Don't auto-open the browser")
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    return parser


def open_browser(url: str):
    try:
        if not webbrowser.open(url):
            logger.info("No browser available, open %s manually", url)
    except webbrowser.Error as e:
        logger.warning("Failed to open browser: %s", e)


def run_server(app, host: str, port: int):
    """Run the Flask app (intended for use in a daemon thread)."""
    app.run(host=host, port=port, threaded=True, use_reloader=False)


def main(argv=None):
    args = build_cli_parser().parse_args(argv)
    if args.version:
        print(f"logpeek {__version__}")
        return

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [logpeek] %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    config = load_config(args, load_yaml_config(args.config))
    logging.getLogger().setLevel(config.log_level)
    logger.info("Config: buffer=%d, subscriber_queue=%d, intake_queue=%d",
                config.buffer_size, config.subscriber_queue_size, config.intake_queue_size)

    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    buffer = RingBuffer(config.buffer_size)
    hub = Hub(config.intake_queue_size, config.subscriber_queue_size)
    metrics = IngestMetrics()
    hub.start()

    start_ingestion(open_stdin(), buffer, hub, metrics)

    app = create_app(buffer, hub, metrics, started_at=time.monotonic())
    server_thread = threading.Thread(
        target=run_server, args=(app, config.host, config.port), daemon=True,
    )
    server_thread.start()
    url = f"http://localhost:{config.port}"
    logger.info("Server starting on %s", url)

    if config.open_browser:
        threading.Thread(target=open_browser, args=(url,), daemon=True).start()

    try:
        while not shutdown_event.is_set():
            shutdown_event.wait(timeout=1.0)
    except KeyboardInterrupt:
        pass

    logger.info("Shutting down...")
    hub.stop()
    logger.info("Stats: %s", buffer.stats())


if __name__ == "__main__":
    main()

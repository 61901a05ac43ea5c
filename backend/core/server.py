"""
Core Service — Server Lifecycle & Entry Point
===============================================

What:  Runs the HTTP listener without blocking the main thread and shuts it
       down gracefully on SIGINT/SIGTERM.
How:   uvicorn serves the app on a background thread (so uvicorn installs no
       signal handlers of its own). The main thread waits for a signal, then
       asks uvicorn to exit: it stops accepting connections at once and waits
       for in-flight requests. If they are still running when the grace
       period ends, the shutdown is forced and logged as ShutdownTimeoutError.

Timeouts:
    idle (keep-alive)     CORE_IDLE_TIMEOUT, default 60s
    grace period          CORE_SHUTDOWN_GRACE_PERIOD, default 15s,
                          overridden by --graceful-timeout

Exit status:
    0  clean shutdown
    1  startup failure (configuration, connectivity) or shutdown timeout
"""

import argparse
import asyncio
import logging
import math
import signal
import threading
import time
from typing import Iterable, Optional, Sequence

import uvicorn

from core.config import Settings
from core.context import build_context
from core.exceptions import ConfigurationError, ConnectivityError, ShutdownTimeoutError
from core.main import create_app, setup_logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "core"
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
# Extra time for uvicorn to unwind after a forced exit
FORCE_EXIT_JOIN_SECONDS = 2.0
SIGNAL_POLL_SECONDS = 0.5


class ServerLifecycle:
    """
    Owns one uvicorn server and the thread it runs on.

    Usage:
        lifecycle = ServerLifecycle(app, host="0.0.0.0", port=8080)
        exit_code = lifecycle.run()    # blocks until a shutdown signal
    """

    def __init__(
        self,
        app,
        host: str,
        port: int,
        grace_period: float = 15.0,
        idle_timeout: float = 60.0,
    ):
        self.grace_period = grace_period
        self.config = uvicorn.Config(
            app,
            host=host,
            port=port,
            timeout_keep_alive=max(1, int(idle_timeout)),
            log_config=None,
            lifespan="on",
        )
        self.server = uvicorn.Server(self.config)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Listener ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Starts the listener thread and returns immediately."""
        self._thread = threading.Thread(target=self._serve, name="http-listener", daemon=True)
        self._thread.start()
        logger.info("core service running on %s:%s", self.config.host, self.config.port)

    def _serve(self) -> None:
        try:
            self.server.run()
        except SystemExit as e:
            # uvicorn calls sys.exit(1) when it cannot bind
            logger.error("unexpected server error: listener exited with status %s", e.code)
        except Exception:
            logger.exception("unexpected server error")

    @property
    def started(self) -> bool:
        return self.server.started

    @property
    def bound_port(self) -> Optional[int]:
        for server in getattr(self.server, "servers", []):
            for sock in server.sockets:
                return sock.getsockname()[1]
        return None

    def wait_started(self, timeout: float = 10.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.server.started:
                return True
            if self._thread is not None and not self._thread.is_alive():
                return False
            time.sleep(0.02)
        return self.server.started

    # ── Shutdown ──────────────────────────────────────────────────────────

    def request_stop(self, *_args) -> None:
        """Signal handler target; also callable directly."""
        self._stop.set()

    def wait_for_stop(self, signals: Iterable[signal.Signals] = SHUTDOWN_SIGNALS) -> None:
        """
        Blocks the calling (main) thread until a shutdown signal arrives.

        Previous signal handlers are restored before returning.
        """
        previous = {}
        for sig in signals:
            previous[sig] = signal.signal(sig, self.request_stop)
        try:
            while not self._stop.wait(SIGNAL_POLL_SECONDS):
                pass
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def shutdown(self, grace_period: Optional[float] = None) -> None:
        """
        Stops accepting connections and waits for in-flight requests.

        Raises ShutdownTimeoutError when requests outlive the grace period; the
        listener is then forced to exit.
        """
        grace = self.grace_period if grace_period is None else grace_period
        self.server.should_exit = True
        if self._thread is None:
            return
        self._thread.join(timeout=grace)
        if self._thread.is_alive():
            self.server.force_exit = True
            self._thread.join(timeout=FORCE_EXIT_JOIN_SECONDS)
            raise ShutdownTimeoutError(grace)

    def run(self) -> int:
        """start → wait for signal → bounded shutdown. Returns the process exit status."""
        self.start()
        self.wait_for_stop()
        logger.info("received shutdown signal, shutting down core service gracefully")
        try:
            self.shutdown()
        except ShutdownTimeoutError as e:
            logger.error("error during server shutdown: %s", e.message)
            return 1
        logger.info("core service successfully shutdown")
        return 0


# ══════════════════════════════════════════════════════════════════════════
# Command Line
# ══════════════════════════════════════════════════════════════════════════

def non_negative_seconds(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {raw!r}") from None
    if not math.isfinite(value) or value < 0:
        raise argparse.ArgumentTypeError(f"must be a non-negative number of seconds: {raw!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=SERVICE_NAME, description="all things core")
    commands = parser.add_subparsers(dest="command", required=True)
    httpd = commands.add_parser("httpd", help="http service: handles all http requests")
    httpd.add_argument(
        "--graceful-timeout",
        type=non_negative_seconds,
        default=None,
        metavar="SECONDS",
        help="how long shutdown waits for in-flight requests (default: CORE_SHUTDOWN_GRACE_PERIOD)",
    )
    return parser


def run_http_server(settings: Settings, graceful_timeout: Optional[float] = None) -> int:
    try:
        settings.validate_required()
        context = asyncio.run(build_context(settings))
    except (ConfigurationError, ConnectivityError) as e:
        logger.critical("core service failed to start: %s", e.message)
        return 1

    app = create_app(context)
    logger.info("core handler initialized")

    lifecycle = ServerLifecycle(
        app,
        host=settings.server_host,
        port=settings.listen_port,
        grace_period=(
            graceful_timeout if graceful_timeout is not None else settings.shutdown_grace_period
        ),
        idle_timeout=settings.idle_timeout,
    )
    return lifecycle.run()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings()
    except ValueError as e:
        # pydantic's ValidationError subclasses ValueError
        setup_logging()
        logger.critical("invalid configuration: %s", e)
        return 1
    setup_logging(settings.log_level)

    if args.command == "httpd":
        return run_http_server(settings, args.graceful_timeout)
    return 1

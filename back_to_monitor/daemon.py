"""Main daemon entry point.

Connects to Sway, enables the extension and runs until SIGTERM/SIGINT.
Logs go to the systemd journal when systemd-python is available, to stderr
otherwise.
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from i3ipc import aio

try:
    from systemd import journal
    SYSTEMD_AVAILABLE = True
except ImportError:
    SYSTEMD_AVAILABLE = False

from .extension import BackToMonitorExtension
from .screen_watcher import DEFAULT_UNLOAD_DELAY
from .settings import SETTINGS_PATH

logger = logging.getLogger(__name__)

SYSLOG_IDENTIFIER = "back-to-monitor"


class BackToMonitorDaemon:
    """Owns the Sway connection and the extension lifecycle."""

    def __init__(self, settings_path: Path, unload_delay: float) -> None:
        self.settings_path = settings_path
        self.unload_delay = unload_delay
        self.conn: Optional[aio.Connection] = None
        self.extension: Optional[BackToMonitorExtension] = None
        self.shutdown_event = asyncio.Event()

    async def initialize(self) -> None:
        self.conn = await aio.Connection(auto_reconnect=True).connect()
        version = await self.conn.get_version()
        logger.info(f"Connected to {version.human_readable}")

        self.extension = BackToMonitorExtension(
            self.conn,
            settings_path=self.settings_path,
            unload_delay=self.unload_delay,
        )
        await self.extension.enable()

    async def run(self) -> None:
        """Dispatch Sway events until the connection closes."""
        await self.conn.main()

    async def shutdown(self) -> None:
        logger.info("Shutting down daemon...")

        if self.extension:
            try:
                await asyncio.wait_for(self.extension.disable(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Extension disable timed out after 5s (continuing)")
            except Exception as e:
                logger.error(f"Error disabling extension: {e}")

        if self.conn:
            try:
                self.conn.main_quit()
            except Exception as e:
                logger.error(f"Error closing Sway connection: {e}")

        logger.info("Daemon shutdown complete")

    def log_snapshot(self) -> None:
        """Log the tracker state (SIGUSR1)."""
        if not self.extension or not self.extension.tracker:
            logger.info("Extension not enabled")
            return
        logger.info(f"Tracker state: {json.dumps(self.extension.tracker.snapshot())}")

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def shutdown_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown...")
            loop.call_soon_threadsafe(self.shutdown_event.set)

        def debug_handler(signum, frame):
            loop.call_soon_threadsafe(self.log_snapshot)

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)
        signal.signal(signal.SIGUSR1, debug_handler)


def setup_logging(log_level: Optional[str] = None) -> None:
    """Setup logging to systemd journal or stderr."""
    level = (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if SYSTEMD_AVAILABLE:
        handler = journal.JournalHandler(SYSLOG_IDENTIFIER=SYSLOG_IDENTIFIER)
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(logging.Formatter("%(levelname)s [%(name)s] %(message)s"))
    root_logger.addHandler(handler)

    logger.info(f"Logging configured: level={level}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="back-to-monitor",
        description="Minimize windows of unplugged monitors and restore them when the monitor comes back",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=SETTINGS_PATH,
        help=f"Settings file (default: {SETTINGS_PATH})",
    )
    parser.add_argument(
        "--unload-delay",
        type=float,
        default=DEFAULT_UNLOAD_DELAY,
        help="Seconds a disconnected monitor has to come back before its windows are minimized "
             f"(default: {DEFAULT_UNLOAD_DELAY})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
        help="Log level (default: $LOG_LEVEL or INFO)",
    )
    args = parser.parse_args(argv)
    if args.unload_delay < 0:
        parser.error("--unload-delay must not be negative")
    return args


async def main_async(args: argparse.Namespace) -> int:
    """Async main function.

    Returns:
        Exit code (0 = success, non-zero = error)
    """
    daemon = BackToMonitorDaemon(args.settings, args.unload_delay)

    try:
        daemon.setup_signal_handlers()
        await daemon.initialize()

        run_task = asyncio.create_task(daemon.run())
        shutdown_task = asyncio.create_task(daemon.shutdown_event.wait())

        done, pending = await asyncio.wait(
            [run_task, shutdown_task], return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()

        if run_task in done and run_task.exception() is not None:
            error = run_task.exception()
            logger.error(f"Sway connection failed: {error}", exc_info=error)
            await daemon.shutdown()
            return 1

        await daemon.shutdown()
        return 0

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        await daemon.shutdown()
        return 1


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    logger.info("back-to-monitor starting...")
    logger.info(f"PID: {os.getpid()}")
    logger.info(f"Settings file: {args.settings}")

    try:
        sys.exit(asyncio.run(main_async(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()

"""
Command-line watcher.

Runs one ``WatchSession`` outside the server process and posts its
alerts to a running PageWatch server over HTTP::

    python -m pagewatch.watch https://example.com --seconds 120
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence

import dotenv

from pagewatch import config
from pagewatch.browser.session import WatchSession
from pagewatch.collector.transport import HttpMessageSender
from pagewatch.utils import logger

log = logger.create_logger("Watch")


def build_parser() -> argparse.ArgumentParser:
    server = config.ServerSettings()
    parser = argparse.ArgumentParser(
        prog="pagewatch-watch",
        description="Watch a page for suspicious DOM changes and report alerts to a PageWatch server.",
    )
    parser.add_argument("url", help="Page to watch (http or https)")
    parser.add_argument("--seconds", type=float, default=60.0, help="How long to watch (default: 60)")
    parser.add_argument(
        "--server",
        default=f"http://localhost:{server.port}",
        help="PageWatch server base URL (default: http://localhost:<UVICORN_PORT>)",
    )
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument(
        "--extension",
        action="append",
        default=[],
        metavar="PATH",
        help="Unpacked extension directory to load (repeatable)",
    )
    return parser


async def run_watch(args: argparse.Namespace) -> int:
    sender = HttpMessageSender(args.server.rstrip("/") + "/api/messages")
    session = WatchSession(
        args.url,
        sender=sender,
        headless=not args.headed,
        extension_paths=args.extension,
    )
    try:
        status = await session.run(args.seconds)
    finally:
        await sender.close()
    log.info("Watch finished", {"state": status.state, "batches": status.batches})
    return 0 if status.state == "finished" else 1


def main(argv: Sequence[str] | None = None) -> int:
    dotenv.load_dotenv()
    args = build_parser().parse_args(argv)
    return asyncio.run(run_watch(args))


if __name__ == "__main__":
    sys.exit(main())

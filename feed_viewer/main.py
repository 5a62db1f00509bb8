#!/usr/bin/env python3
"""
Feed Viewer - live ticker, order book and trades from the Coinbase Exchange feed.

Usage:
    python -m feed_viewer.main BTC-USD --depth 15 --trades 100

Controls:
    c - Connect
    d - Disconnect
    n / p - Next / previous product
    q - Quit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import DEFAULT_PRODUCTS, WS_FEED_URL, FeedConfig
from .errors import ConfigError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str, log_file: str | None) -> None:
    """Log to a file by default: the TUI owns the terminal."""
    if log_file:
        logging.basicConfig(filename=log_file, level=level, format=LOG_FORMAT, encoding="utf-8")
    else:
        logging.basicConfig(stream=sys.stderr, level=level, format=LOG_FORMAT)


def build_config(args: argparse.Namespace) -> FeedConfig:
    return FeedConfig(
        url=args.url,
        book_depth=args.depth,
        trade_capacity=args.trades,
        ping_interval_sec=args.ping_interval,
        max_reconnect_attempts=args.max_reconnects,
    ).validate()


async def main(config: FeedConfig, product_id: str) -> None:
    """Main entry point - runs data feed and UI on one event loop."""

    # Import here to avoid slow startup for --help
    import aiohttp

    from .datafeed.coinbase_client import FeedClient
    from .ui.feed_view import run_ui

    logger = logging.getLogger(__name__)
    logger.info(f"Starting Feed Viewer for {product_id} ({config.url})")

    async with aiohttp.ClientSession() as session:
        client = FeedClient(config, product_id, session=session)
        await client.connect()
        try:
            # Run UI (blocks until quit)
            await run_ui(client)
        finally:
            await client.disconnect()


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Feed Viewer - live order book and trades for Coinbase Exchange",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m feed_viewer.main BTC-USD
    python -m feed_viewer.main ETH-USD --depth 10 --trades 50
    python -m feed_viewer.main SOL-USD --log-level DEBUG --log-file feed.log
        """
    )

    parser.add_argument(
        "product",
        nargs="?",
        default=DEFAULT_PRODUCTS[0],
        choices=DEFAULT_PRODUCTS,
        help=f"Product to track (default: {DEFAULT_PRODUCTS[0]})"
    )

    parser.add_argument(
        "--depth",
        type=int,
        default=15,
        help="Order book levels per side (default: 15)"
    )

    parser.add_argument(
        "--trades",
        type=int,
        default=100,
        help="Number of recent trades kept (default: 100)"
    )

    parser.add_argument(
        "--url",
        default=WS_FEED_URL,
        help=f"Feed endpoint (default: {WS_FEED_URL})"
    )

    parser.add_argument(
        "--ping-interval",
        type=float,
        default=30.0,
        help="Seconds between latency probes (default: 30)"
    )

    parser.add_argument(
        "--max-reconnects",
        type=int,
        default=10,
        help="Reconnection attempts before giving up (default: 10)"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        default="feed_viewer.log",
        help="Log file; empty string logs to stderr (default: feed_viewer.log)"
    )

    args = parser.parse_args()
    setup_logging(args.log_level, args.log_file or None)

    try:
        config = build_config(args)
    except ConfigError as e:
        parser.error(e.message)

    # Run
    try:
        asyncio.run(main(config, args.product))
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()

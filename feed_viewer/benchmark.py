#!/usr/bin/env python3
"""
Micro-benchmark for Feed Viewer hot paths.

Tests:
1. Order book diff throughput (apply + snapshot rebuild)
2. Frame decode throughput
3. Trade log insert throughput

Usage:
    python -m feed_viewer.benchmark
"""

from __future__ import annotations

import json
import random
import time
from datetime import datetime, timezone
from decimal import Decimal
from statistics import mean, stdev

from .datafeed.codec import decode
from .datafeed.orderbook import OrderBookReplica
from .engine.trades import TradeLog
from .types import Trade

PRODUCT = "BTC-USD"


def generate_mock_snapshot(base_price: float = 60000.0, levels: int = 200) -> dict:
    """Generate a mock level2 snapshot message."""
    tick_size = 0.01

    bids = []
    asks = []
    for i in range(levels):
        bids.append([f"{base_price - (i + 1) * tick_size:.2f}", f"{random.uniform(0.01, 5):.8f}"])
        asks.append([f"{base_price + (i + 1) * tick_size:.2f}", f"{random.uniform(0.01, 5):.8f}"])

    return {"type": "snapshot", "product_id": PRODUCT, "bids": bids, "asks": asks}


def generate_mock_update(base_price: float = 60000.0, changes: int = 10) -> dict:
    """Generate a mock l2update message."""
    tick_size = 0.01

    rows = []
    for _ in range(changes):
        offset = random.randint(1, 300)
        if random.random() > 0.5:
            price = base_price - offset * tick_size
            side = "buy"
        else:
            price = base_price + offset * tick_size
            side = "sell"

        # Random size (0 = remove level)
        size = random.uniform(0.01, 5) if random.random() > 0.2 else 0
        rows.append([side, f"{price:.2f}", f"{size:.8f}"])

    return {
        "type": "l2update",
        "product_id": PRODUCT,
        "changes": rows,
        "time": "2024-01-01T00:00:00.000000Z",
    }


def _report(name: str, times_us: list[float]) -> dict:
    avg = mean(times_us)
    spread = stdev(times_us) if len(times_us) > 1 else 0.0
    ordered = sorted(times_us)
    p99 = ordered[min(len(ordered) - 1, int(len(ordered) * 0.99))]
    print(f"  {name}: mean {avg:.1f}us  stdev {spread:.1f}us  p99 {p99:.1f}us")
    return {"mean_us": avg, "stdev_us": spread, "p99_us": p99}


def benchmark_orderbook_updates(iterations: int = 10000) -> dict:
    """Benchmark l2update apply + snapshot rebuild."""
    print("\n=== Order Book Update Benchmark ===")

    book = OrderBookReplica(PRODUCT, depth=15)
    snapshot = generate_mock_snapshot()
    book.load_snapshot(snapshot["bids"], snapshot["asks"])

    updates = [generate_mock_update()["changes"] for _ in range(iterations)]

    times_us = []
    for changes in updates:
        start = time.perf_counter()
        book.apply_changes(changes)
        times_us.append((time.perf_counter() - start) * 1e6)

    print(f"  Book levels after run: {len(book)}")
    return _report("apply_changes", times_us)


def benchmark_decode(iterations: int = 10000) -> dict:
    """Benchmark frame decode of l2update messages."""
    print("\n=== Decode Benchmark ===")

    frames = [json.dumps(generate_mock_update()) for _ in range(iterations)]

    times_us = []
    for frame in frames:
        start = time.perf_counter()
        decode(frame)
        times_us.append((time.perf_counter() - start) * 1e6)

    return _report("decode", times_us)


def benchmark_trade_log(iterations: int = 10000, capacity: int = 100) -> dict:
    """Benchmark newest-first trade insert at capacity."""
    print("\n=== Trade Log Benchmark ===")

    log = TradeLog(capacity)
    now = datetime.now(timezone.utc)
    trades = [
        Trade(PRODUCT, i, random.choice(("buy", "sell")),
              Decimal("60000.00"), Decimal("0.01"), now)
        for i in range(iterations)
    ]

    times_us = []
    for trade in trades:
        start = time.perf_counter()
        log.add(trade)
        times_us.append((time.perf_counter() - start) * 1e6)

    print(f"  Trades kept: {len(log)}")
    return _report("add", times_us)


def run_benchmarks(iterations: int = 10000) -> dict[str, dict]:
    return {
        "orderbook": benchmark_orderbook_updates(iterations),
        "decode": benchmark_decode(iterations),
        "trade_log": benchmark_trade_log(iterations),
    }


if __name__ == "__main__":
    run_benchmarks()

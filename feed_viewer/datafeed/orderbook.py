"""
Local order book replica for the Coinbase level2 channel.

HOT PATH: apply_changes() is called for every l2update (10s per second on active products).

Strategy:
1. dict[Decimal, Decimal] per side for O(1) lookup/update of individual prices
2. Full re-sort after every batch; books are tens to low hundreds of levels
3. Truncate to depth only after sorting the whole side

Malformed levels (unparseable, non-finite or negative numbers, unknown side)
are dropped individually; the rest of the batch still applies.
"""

from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation
from typing import Iterable, Sequence

from ..types import OrderBookSnapshot, PriceLevel, Side

# Wire side -> book side
WIRE_SIDES = {"buy": Side.BID, "sell": Side.ASK}


def parse_decimal(value: object) -> Decimal | None:
    """Parse a wire number. None if unparseable, non-finite or negative."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number < 0:
        return None
    return number


class OrderBookReplica:
    """
    Local order book built from level2 snapshot + incremental diffs.

    Thread-safety: NOT thread-safe. Owned by FeedClient on a single event loop.
    """

    __slots__ = (
        'product_id', 'depth', 'bids', 'asks',
        '_snapshot', '_update_count', '_update_start_time', '_dropped_levels',
    )

    def __init__(self, product_id: str, depth: int = 15) -> None:
        self.product_id = product_id
        self.depth = depth

        # Core data: price -> size, never holds a zero size
        self.bids: dict[Decimal, Decimal] = {}
        self.asks: dict[Decimal, Decimal] = {}

        self._snapshot = OrderBookSnapshot.empty(product_id)

        # Performance tracking
        self._update_count: int = 0
        self._update_start_time: float = time.perf_counter()
        self._dropped_levels: int = 0

    def _side_map(self, side: Side) -> dict[Decimal, Decimal]:
        return self.bids if side is Side.BID else self.asks

    def _apply_level(self, side: Side, price_raw: object, size_raw: object) -> bool:
        """Apply one level. Returns False if the level was malformed and dropped."""
        price = parse_decimal(price_raw)
        size = parse_decimal(size_raw)
        if price is None or size is None:
            self._dropped_levels += 1
            return False

        levels = self._side_map(side)
        if size == 0:
            levels.pop(price, None)
        else:
            levels[price] = size
        return True

    def load_snapshot(
        self,
        bids: Iterable[Sequence[object]],
        asks: Iterable[Sequence[object]],
    ) -> None:
        """
        Replace the whole book from a level2 snapshot.

        Expected format: [[price, size], ...] per side.
        """
        self.bids.clear()
        self.asks.clear()

        for side, levels in ((Side.BID, bids), (Side.ASK, asks)):
            for level in levels:
                if len(level) < 2:
                    self._dropped_levels += 1
                    continue
                self._apply_level(side, level[0], level[1])

        self._rebuild_snapshot()

    def apply_changes(self, changes: Iterable[Sequence[object]]) -> int:
        """
        Apply one l2update batch, then recompute the snapshot.

        HOT PATH.

        Expected format: [[side, price, size], ...] with side "buy" or "sell".
        Size "0" removes the level (no-op if absent).

        Returns the number of levels applied.
        """
        applied = 0
        for change in changes:
            if len(change) < 3:
                self._dropped_levels += 1
                continue
            wire_side = change[0]
            side = WIRE_SIDES.get(wire_side) if isinstance(wire_side, str) else None
            if side is None:
                self._dropped_levels += 1
                continue
            if self._apply_level(side, change[1], change[2]):
                applied += 1

        self._update_count += 1
        self._rebuild_snapshot()
        return applied

    def _rebuild_snapshot(self) -> None:
        """Full re-sort of both sides, then truncate to depth."""
        bid_prices = sorted(self.bids, reverse=True)[:self.depth]
        ask_prices = sorted(self.asks)[:self.depth]

        self._snapshot = OrderBookSnapshot(
            product_id=self.product_id,
            bids=[PriceLevel(p, self.bids[p], Side.BID) for p in bid_prices],
            asks=[PriceLevel(p, self.asks[p], Side.ASK) for p in ask_prices],
        )

    @property
    def snapshot(self) -> OrderBookSnapshot:
        """Latest depth-bounded sorted view. Rebuilt after every batch."""
        return self._snapshot

    @property
    def best_bid(self) -> Decimal | None:
        bids = self._snapshot.bids
        return bids[0].price if bids else None

    @property
    def best_ask(self) -> Decimal | None:
        asks = self._snapshot.asks
        return asks[0].price if asks else None

    @property
    def mid_price(self) -> Decimal | None:
        bb, ba = self.best_bid, self.best_ask
        if bb is not None and ba is not None:
            return (bb + ba) / 2
        return bb if bb is not None else ba

    @property
    def spread(self) -> Decimal | None:
        bb, ba = self.best_bid, self.best_ask
        if bb is None or ba is None:
            return None
        return ba - bb

    @property
    def dropped_levels(self) -> int:
        """Malformed levels dropped since the last clear()."""
        return self._dropped_levels

    def clear(self, product_id: str | None = None) -> None:
        """Empty the book, optionally re-targeting it at another product."""
        if product_id is not None:
            self.product_id = product_id
        self.bids.clear()
        self.asks.clear()
        self._dropped_levels = 0
        self._snapshot = OrderBookSnapshot.empty(self.product_id)
        self.reset_perf_counters()

    def __len__(self) -> int:
        return len(self.bids) + len(self.asks)

    def get_updates_per_sec(self) -> float:
        """Return update rate for performance monitoring."""
        elapsed = time.perf_counter() - self._update_start_time
        if elapsed < 0.001:
            return 0.0
        return self._update_count / elapsed

    def reset_perf_counters(self) -> None:
        """Reset performance counters."""
        self._update_count = 0
        self._update_start_time = time.perf_counter()

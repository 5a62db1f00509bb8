"""
Recent trades tape.

Newest-first, fixed capacity. Order is arrival order, not exchange timestamp:
the feed's delivery order is authoritative for recency.
"""

from __future__ import annotations

from collections import deque
from typing import Iterator

from ..types import Trade

DEFAULT_CAPACITY = 100


class TradeLog:
    """
    Bounded newest-first trade history.

    appendleft on a maxlen deque evicts from the right, i.e. the oldest trade.

    Thread-safety: NOT thread-safe. Owned by FeedClient on a single event loop.
    """

    __slots__ = ('capacity', '_trades')

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = capacity
        self._trades: deque[Trade] = deque(maxlen=capacity)

    def add(self, trade: Trade) -> None:
        """Insert at the front; drops the oldest once over capacity."""
        self._trades.appendleft(trade)

    def recent(self, n: int | None = None) -> list[Trade]:
        """Up to n most recent trades (all if n is None), newest first."""
        if n is None:
            return list(self._trades)
        return list(self._trades)[:n]

    @property
    def latest(self) -> Trade | None:
        return self._trades[0] if self._trades else None

    def clear(self) -> None:
        self._trades.clear()

    def __len__(self) -> int:
        return len(self._trades)

    def __iter__(self) -> Iterator[Trade]:
        return iter(self._trades)

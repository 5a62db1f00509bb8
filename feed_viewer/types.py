"""
Data types for Feed Viewer.

Notes:
- Using NamedTuple for immutable, memory-efficient structures
- Prices and sizes are Decimal: the feed sends them as strings and exact keys matter for the book
- These are the UI-facing data structures; the order book keeps raw dicts internally
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple


class Side(str, Enum):
    """Book side of a price level."""
    BID = "bid"
    ASK = "ask"


class PriceLevel(NamedTuple):
    """Single price level from the order book. Size is never zero."""
    price: Decimal
    size: Decimal
    side: Side


class OrderBookSnapshot(NamedTuple):
    """
    Depth-bounded sorted view of the replica.

    bids: best (highest) first, asks: best (lowest) first.
    """
    product_id: str
    bids: list[PriceLevel]
    asks: list[PriceLevel]

    @property
    def levels(self) -> list[PriceLevel]:
        """Bids then asks as one ordered sequence."""
        return self.bids + self.asks

    @classmethod
    def empty(cls, product_id: str) -> OrderBookSnapshot:
        return cls(product_id, [], [])


class Trade(NamedTuple):
    """Single trade from the matches channel."""
    product_id: str
    trade_id: int
    side: str             # Maker order side as sent by the feed: "buy" or "sell"
    price: Decimal
    size: Decimal
    time: datetime        # Exchange timestamp (arrival time if the feed's was unreadable)


class TickerSnapshot(NamedTuple):
    """Last ticker for the active product. Replaced wholesale on every ticker message."""
    product_id: str
    price: Decimal
    open_24h: Decimal
    volume_24h: Decimal
    best_bid: Decimal
    best_ask: Decimal
    low_24h: Decimal | None = None
    high_24h: Decimal | None = None
    time: datetime | None = None

    @property
    def change_24h_pct(self) -> Decimal:
        """Percent change against the 24h open. 0 when the open is unknown (0)."""
        if self.open_24h == 0:
            return Decimal(0)
        return (self.price - self.open_24h) / self.open_24h * 100


class ConnectionStatus(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class ConnectionState(NamedTuple):
    """
    Connection state of the feed client.

    Only FAILED carries a message (the human-readable reason), and failed() is
    the only constructor that sets one. The other states are the module
    constants below; build them with the status alone. __str__ and the UI read
    the message for FAILED only.
    """
    status: ConnectionStatus
    message: str | None = None

    @classmethod
    def failed(cls, message: str) -> ConnectionState:
        return cls(ConnectionStatus.FAILED, message)

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    def __str__(self) -> str:
        if self.status is ConnectionStatus.FAILED:
            return f"failed: {self.message}"
        return self.status.value


DISCONNECTED = ConnectionState(ConnectionStatus.DISCONNECTED)
CONNECTING = ConnectionState(ConnectionStatus.CONNECTING)
CONNECTED = ConnectionState(ConnectionStatus.CONNECTED)
RECONNECTING = ConnectionState(ConnectionStatus.RECONNECTING)


class ConnectionQuality(Enum):
    """Classification of the latest ping round-trip."""
    EXCELLENT = "excellent"   # < 50ms
    GOOD = "good"             # 50-200ms
    FAIR = "fair"             # 200-500ms
    POOR = "poor"             # >= 500ms
    UNKNOWN = "unknown"


class FeedView(NamedTuple):
    """
    Complete feed state for UI rendering.

    Pushed to the UI queue at most every snapshot_interval_ms, and on every state change.
    """
    product_id: str
    state: ConnectionState
    quality: ConnectionQuality
    latency_ms: float | None
    ticker: TickerSnapshot | None
    book: OrderBookSnapshot
    trades: list[Trade]       # Newest first
    last_heartbeat: datetime | None
    updates_per_sec: float
    timestamp_ms: int

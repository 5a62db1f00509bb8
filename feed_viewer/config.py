"""
Feed client configuration.

Defaults target the public Coinbase Exchange feed. Everything the client needs
is carried by FeedConfig; the CLI maps its flags onto it.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from .errors import ConfigError

# Coinbase Exchange public endpoint
WS_FEED_URL = "wss://ws-feed.exchange.coinbase.com"

DEFAULT_PRODUCTS = (
    "BTC-USD", "ETH-USD", "ADA-USD", "SOL-USD",
    "DOGE-USD", "LTC-USD", "LINK-USD", "DOT-USD",
)

# ticker, book diffs, trades, liveness
CHANNELS = ("ticker", "level2", "matches", "heartbeat")

# Accepted feed URL schemes
WS_SCHEMES = frozenset({"ws", "wss"})

# Close codes that end a session without reconnecting
NORMAL_CLOSE_CODES = frozenset({1000, 1001})

# Service restart / try again later
RECONNECT_HINT_CLOSE_CODES = frozenset({1012, 1013})


@dataclass(frozen=True)
class FeedConfig:
    """Static settings for one FeedClient."""

    url: str = WS_FEED_URL
    products: tuple[str, ...] = DEFAULT_PRODUCTS
    channels: tuple[str, ...] = CHANNELS
    book_depth: int = 15
    trade_capacity: int = 100
    connect_timeout_sec: float = 20.0
    subscribe_delay_sec: float = 1.0       # Settle time after the handshake before subscribing
    ping_interval_sec: float = 30.0
    max_reconnect_attempts: int = 10
    max_backoff: int = 60                  # In backoff time units
    backoff_unit_sec: float = 1.0
    subscription_error_pattern: str = "Failed to subscribe"
    snapshot_interval_ms: int = 100        # Push to UI at most every 100ms

    @property
    def default_product(self) -> str:
        return self.products[0]

    def validate(self) -> FeedConfig:
        """Raise ConfigError on unusable settings. Returns self for chaining."""
        try:
            url = urlsplit(self.url)
        except ValueError:
            raise ConfigError(f"Unparseable feed URL: {self.url!r}")
        if url.scheme not in WS_SCHEMES or not url.netloc:
            raise ConfigError(f"Feed URL must be an absolute ws:// or wss:// URL, got {self.url!r}")
        if not self.products:
            raise ConfigError("Product catalog is empty")
        if len(set(self.products)) != len(self.products):
            raise ConfigError(f"Duplicate products in catalog: {self.products}")
        if not self.channels:
            raise ConfigError("No channels configured")
        if self.book_depth <= 0:
            raise ConfigError(f"book_depth must be positive, got {self.book_depth}")
        if self.trade_capacity <= 0:
            raise ConfigError(f"trade_capacity must be positive, got {self.trade_capacity}")
        if self.max_reconnect_attempts < 0:
            raise ConfigError(
                f"max_reconnect_attempts must be >= 0, got {self.max_reconnect_attempts}"
            )
        for name in ("connect_timeout_sec", "ping_interval_sec", "backoff_unit_sec"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.subscribe_delay_sec < 0:
            raise ConfigError(f"subscribe_delay_sec must be >= 0, got {self.subscribe_delay_sec}")
        if self.max_backoff <= 0:
            raise ConfigError(f"max_backoff must be positive, got {self.max_backoff}")
        return self

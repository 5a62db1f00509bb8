"""
Coinbase feed message codec.

decode() turns one text frame into a typed payload, or None:
1. Parse JSON (orjson); malformed frames are dropped
2. Look up the "type" discriminator; unknown types are dropped
3. Strict structural decode; a missing or mistyped field drops the whole message

Nothing in here raises to the caller, so a garbled frame can never touch client state.
Product filtering is the client's job (it knows the active product).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, NamedTuple, Union

import orjson

from ..errors import DecodeError
from ..types import TickerSnapshot, Trade
from .orderbook import parse_decimal

logger = logging.getLogger(__name__)


def json_loads(data: bytes | str) -> Any:
    return orjson.loads(data)


def json_dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode()


class BookSnapshotMessage(NamedTuple):
    """level2 initial book: [[price, size], ...] per side."""
    product_id: str
    bids: list[list[str]]
    asks: list[list[str]]


class BookUpdate(NamedTuple):
    """level2 diff batch: [[side, price, size], ...]."""
    product_id: str
    changes: list[list[str]]
    time: datetime | None


class Heartbeat(NamedTuple):
    product_id: str
    sequence: int | None
    last_trade_id: int | None
    time: datetime | None


class SubscriptionAck(NamedTuple):
    channels: list[dict[str, Any]]

    def summary(self) -> str:
        """'ticker: BTC-USD; level2: BTC-USD' style description."""
        parts = []
        for channel in self.channels:
            name = channel.get("name")
            product_ids = channel.get("product_ids")
            if isinstance(name, str) and isinstance(product_ids, list):
                parts.append(f"{name}: {', '.join(str(p) for p in product_ids)}")
        return "; ".join(parts)


class ServerError(NamedTuple):
    message: str
    reason: str | None

    def is_subscription_only(self, pattern: str) -> bool:
        """Subscription failures are non-fatal; the socket itself is fine."""
        return bool(pattern) and pattern in self.message


Payload = Union[
    TickerSnapshot, BookSnapshotMessage, BookUpdate, Trade,
    Heartbeat, SubscriptionAck, ServerError,
]


# ----------------------------------------------------------------------
# Field helpers
# ----------------------------------------------------------------------

def _require(doc: dict, key: str, kind: type | tuple[type, ...]) -> Any:
    value = doc.get(key)
    if value is None or isinstance(value, bool) or not isinstance(value, kind):
        raise DecodeError(f"field {key!r} missing or not {kind}")
    return value


def _require_decimal(doc: dict, key: str) -> Decimal:
    value = parse_decimal(doc.get(key))
    if value is None:
        raise DecodeError(f"field {key!r} missing or not a number")
    return value


def _optional_decimal(doc: dict, key: str) -> Decimal | None:
    return parse_decimal(doc.get(key))


def _optional_int(doc: dict, key: str) -> int | None:
    value = doc.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def parse_time(value: Any) -> datetime | None:
    """ISO-8601 with optional trailing Z. None if unreadable."""
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_rows(doc: dict, key: str, width: int) -> list[list[str]]:
    rows = _require(doc, key, list)
    for row in rows:
        if not isinstance(row, list) or len(row) < width:
            raise DecodeError(f"field {key!r} has a row shorter than {width}")
        if not all(isinstance(item, str) for item in row[:width]):
            raise DecodeError(f"field {key!r} has a non-string entry")
    return rows


# ----------------------------------------------------------------------
# Decoders, one per message type
# ----------------------------------------------------------------------

def decode_ticker(doc: dict) -> TickerSnapshot:
    return TickerSnapshot(
        product_id=_require(doc, "product_id", str),
        price=_require_decimal(doc, "price"),
        open_24h=_require_decimal(doc, "open_24h"),
        volume_24h=_require_decimal(doc, "volume_24h"),
        best_bid=_require_decimal(doc, "best_bid"),
        best_ask=_require_decimal(doc, "best_ask"),
        low_24h=_optional_decimal(doc, "low_24h"),
        high_24h=_optional_decimal(doc, "high_24h"),
        time=parse_time(doc.get("time")),
    )


def decode_book_snapshot(doc: dict) -> BookSnapshotMessage:
    return BookSnapshotMessage(
        product_id=_require(doc, "product_id", str),
        bids=_require_rows(doc, "bids", 2),
        asks=_require_rows(doc, "asks", 2),
    )


def decode_l2update(doc: dict) -> BookUpdate:
    return BookUpdate(
        product_id=_require(doc, "product_id", str),
        changes=_require_rows(doc, "changes", 3),
        time=parse_time(doc.get("time")),
    )


def decode_match(doc: dict) -> Trade:
    side = _require(doc, "side", str)
    if side not in ("buy", "sell"):
        raise DecodeError(f"unknown trade side {side!r}")

    # Unreadable exchange time: stamp with arrival time
    when = parse_time(doc.get("time"))
    if when is None:
        _require(doc, "time", str)
        when = datetime.now(timezone.utc)

    return Trade(
        product_id=_require(doc, "product_id", str),
        trade_id=_require(doc, "trade_id", int),
        side=side,
        price=_require_decimal(doc, "price"),
        size=_require_decimal(doc, "size"),
        time=when,
    )


def decode_heartbeat(doc: dict) -> Heartbeat:
    return Heartbeat(
        product_id=_require(doc, "product_id", str),
        sequence=_optional_int(doc, "sequence"),
        last_trade_id=_optional_int(doc, "last_trade_id"),
        time=parse_time(doc.get("time")),
    )


def decode_subscriptions(doc: dict) -> SubscriptionAck:
    channels = _require(doc, "channels", list)
    return SubscriptionAck([c for c in channels if isinstance(c, dict)])


def decode_error(doc: dict) -> ServerError:
    reason = doc.get("reason")
    return ServerError(
        message=_require(doc, "message", str),
        reason=reason if isinstance(reason, str) else None,
    )


DECODERS: dict[str, Callable[[dict], Payload]] = {
    "ticker": decode_ticker,
    "snapshot": decode_book_snapshot,
    "l2update": decode_l2update,
    "match": decode_match,
    "last_match": decode_match,
    "heartbeat": decode_heartbeat,
    "subscriptions": decode_subscriptions,
    "error": decode_error,
}


def decode(raw: bytes | str) -> Payload | None:
    """
    Decode one frame.

    HOT PATH - called for every message.

    Returns None for malformed JSON, unknown types and structural failures.
    """
    try:
        doc = json_loads(raw)
    except orjson.JSONDecodeError:
        logger.debug(f"Dropping malformed frame: {raw!r:.120}")
        return None

    if not isinstance(doc, dict):
        logger.debug(f"Dropping non-object frame: {raw!r:.120}")
        return None

    kind = doc.get("type")
    decoder = DECODERS.get(kind) if isinstance(kind, str) else None
    if decoder is None:
        logger.debug(f"Dropping unknown message type: {kind!r}")
        return None

    try:
        return decoder(doc)
    except DecodeError as e:
        logger.debug(f"Dropping {kind} message: {e.message}")
        return None

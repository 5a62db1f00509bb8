"""
Trade log tests: newest-first order and capacity eviction.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from feed_viewer.engine.trades import TradeLog
from feed_viewer.types import Trade

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def make_trade(trade_id, seconds=0):
    return Trade("BTC-USD", trade_id, "buy", Decimal("100"), Decimal("1"), T0 + timedelta(seconds=seconds))


def test_newest_first():
    log = TradeLog(capacity=5)
    for i in range(3):
        log.add(make_trade(i))

    assert [t.trade_id for t in log.recent()] == [2, 1, 0]
    assert log.latest.trade_id == 2


def test_capacity_evicts_oldest():
    capacity = 50
    log = TradeLog(capacity)
    for i in range(capacity + 1):
        log.add(make_trade(i))

    ids = [t.trade_id for t in log]
    assert len(log) == capacity
    assert 0 not in ids
    assert ids == list(range(capacity, 0, -1))


def test_never_exceeds_capacity():
    log = TradeLog(capacity=3)
    for i in range(100):
        log.add(make_trade(i))
        assert len(log) <= 3


def test_arrival_order_beats_exchange_timestamp():
    log = TradeLog(capacity=5)
    log.add(make_trade(1, seconds=10))
    log.add(make_trade(2, seconds=5))   # Older exchange time, arrived later

    assert [t.trade_id for t in log.recent()] == [2, 1]


def test_recent_n_and_clear():
    log = TradeLog(capacity=10)
    for i in range(6):
        log.add(make_trade(i))

    assert [t.trade_id for t in log.recent(2)] == [5, 4]

    log.clear()
    assert len(log) == 0
    assert log.latest is None
    assert log.recent() == []

"""
Order book replica tests: diff application, sorting, depth and malformed levels.
"""

import random
from decimal import Decimal

from feed_viewer.datafeed.orderbook import OrderBookReplica, parse_decimal
from feed_viewer.types import PriceLevel, Side


def D(value):
    return Decimal(value)


class TestApplyChanges:

    def test_end_to_end_removal(self):
        book = OrderBookReplica("BTC-USD", depth=10)
        book.apply_changes([["buy", "100.00", "2.5"], ["sell", "101.00", "1.0"]])
        book.apply_changes([["buy", "100.00", "0"]])

        snap = book.snapshot
        assert snap.bids == []
        assert snap.asks == [PriceLevel(D("101.00"), D("1.0"), Side.ASK)]

    def test_zero_size_for_absent_price_is_noop(self):
        book = OrderBookReplica("BTC-USD")
        book.apply_changes([["buy", "100.00", "1"]])
        before = book.snapshot

        book.apply_changes([["buy", "99.00", "0"], ["sell", "105.00", "0.000"]])

        assert book.snapshot == before
        assert len(book) == 1

    def test_reapplying_same_diff_is_idempotent(self):
        diff = [["buy", "100.00", "2"], ["buy", "99.50", "1"], ["sell", "101.00", "3"]]
        once = OrderBookReplica("BTC-USD")
        once.apply_changes(diff)
        twice = OrderBookReplica("BTC-USD")
        twice.apply_changes(diff)
        twice.apply_changes(diff)

        assert once.snapshot == twice.snapshot

    def test_last_write_wins_per_level(self):
        book = OrderBookReplica("BTC-USD")
        book.apply_changes([["sell", "101.00", "1"]])
        book.apply_changes([["sell", "101.00", "4.2"]])

        assert book.snapshot.asks == [PriceLevel(D("101.00"), D("4.2"), Side.ASK)]

    def test_equal_prices_with_different_text_share_a_level(self):
        book = OrderBookReplica("BTC-USD")
        book.apply_changes([["buy", "100.00", "1"]])
        book.apply_changes([["buy", "100.0", "0"]])

        assert book.snapshot.bids == []

    def test_malformed_levels_are_dropped_individually(self):
        book = OrderBookReplica("BTC-USD")
        applied = book.apply_changes([
            ["buy", "abc", "1"],
            ["buy", "100.00", "NaN"],
            ["sell", "Infinity", "1"],
            ["buy", "99.00", "-1"],
            ["hold", "98.00", "1"],
            ["buy", "97.00"],
            ["buy", "96.00", "1"],
        ])

        assert applied == 1
        assert book.snapshot.bids == [PriceLevel(D("96.00"), D("1"), Side.BID)]
        assert book.snapshot.asks == []
        assert book.dropped_levels == 6


class TestSnapshot:

    def test_sides_sorted_and_bounded(self):
        rng = random.Random(1337)
        book = OrderBookReplica("BTC-USD", depth=10)

        for _ in range(200):
            changes = []
            for _ in range(rng.randint(1, 8)):
                side = rng.choice(["buy", "sell"])
                price = f"{rng.randint(9000, 11000) / 100:.2f}"
                size = "0" if rng.random() < 0.3 else f"{rng.uniform(0.01, 5):.4f}"
                changes.append([side, price, size])
            book.apply_changes(changes)

            snap = book.snapshot
            bid_prices = [level.price for level in snap.bids]
            ask_prices = [level.price for level in snap.asks]
            assert all(a > b for a, b in zip(bid_prices, bid_prices[1:]))
            assert all(a < b for a, b in zip(ask_prices, ask_prices[1:]))
            assert len(snap.bids) <= 10 and len(snap.asks) <= 10
            assert all(level.size > 0 for level in snap.levels)

    def test_truncation_happens_after_full_sort(self):
        book = OrderBookReplica("BTC-USD", depth=2)
        # Insertion order deliberately scrambled
        book.apply_changes([
            ["buy", "95", "1"], ["buy", "99", "1"], ["buy", "90", "1"], ["buy", "98", "1"],
            ["sell", "110", "1"], ["sell", "101", "1"], ["sell", "120", "1"], ["sell", "102", "1"],
        ])

        snap = book.snapshot
        assert [level.price for level in snap.bids] == [D("99"), D("98")]
        assert [level.price for level in snap.asks] == [D("101"), D("102")]
        assert [level.side for level in snap.levels] == [Side.BID, Side.BID, Side.ASK, Side.ASK]

    def test_numeric_not_lexicographic_ordering(self):
        book = OrderBookReplica("BTC-USD")
        book.apply_changes([["buy", "9.5", "1"], ["buy", "10.25", "1"], ["buy", "100", "1"]])

        assert [level.price for level in book.snapshot.bids] == [D("100"), D("10.25"), D("9.5")]

    def test_best_prices_mid_and_spread(self):
        book = OrderBookReplica("BTC-USD")
        assert book.best_bid is None and book.mid_price is None and book.spread is None

        book.apply_changes([["buy", "100", "1"], ["sell", "102", "1"]])

        assert book.best_bid == D("100")
        assert book.best_ask == D("102")
        assert book.mid_price == D("101")
        assert book.spread == D("2")


class TestLoadSnapshotAndClear:

    def test_load_snapshot_replaces_book(self):
        book = OrderBookReplica("BTC-USD")
        book.apply_changes([["buy", "50", "1"]])

        book.load_snapshot(
            bids=[["100", "1"], ["99", "0"], ["bad", "1"]],
            asks=[["101", "2"], ["102"]],
        )

        assert [level.price for level in book.snapshot.bids] == [D("100")]
        assert [level.price for level in book.snapshot.asks] == [D("101")]

    def test_clear_retargets_product(self):
        book = OrderBookReplica("BTC-USD")
        book.apply_changes([["buy", "100", "1"]])

        book.clear("ETH-USD")

        assert len(book) == 0
        assert book.snapshot.product_id == "ETH-USD"
        assert book.snapshot.levels == []


def test_parse_decimal():
    assert parse_decimal("1.50") == D("1.50")
    assert parse_decimal(3) == D("3")
    assert parse_decimal("0") == D("0")
    assert parse_decimal("-1") is None
    assert parse_decimal("nan") is None
    assert parse_decimal(True) is None
    assert parse_decimal(None) is None
    assert parse_decimal(["1"]) is None

"""
Benchmark smoke test with tiny iteration counts.
"""

from feed_viewer.benchmark import generate_mock_update, run_benchmarks


def test_mock_update_shape():
    update = generate_mock_update(changes=4)

    assert update["type"] == "l2update"
    assert len(update["changes"]) == 4
    assert all(side in ("buy", "sell") for side, _, _ in update["changes"])


def test_run_benchmarks(capsys):
    results = run_benchmarks(iterations=20)

    assert set(results) == {"orderbook", "decode", "trade_log"}
    assert all(r["mean_us"] >= 0 for r in results.values())
    assert "Order Book Update Benchmark" in capsys.readouterr().out

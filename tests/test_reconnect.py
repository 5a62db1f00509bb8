"""
Reconnection policy tests: backoff sequence and attempt ceiling.
"""

import pytest

from feed_viewer.engine.reconnect import ReconnectPolicy, backoff_delay


@pytest.mark.parametrize("attempt, delay", [
    (1, 2), (2, 4), (3, 8), (4, 16), (5, 32), (6, 60), (7, 60), (50, 60),
])
def test_backoff_delay(attempt, delay):
    assert backoff_delay(attempt) == delay


def test_delay_sequence():
    policy = ReconnectPolicy(max_attempts=10)

    assert [policy.next_delay() for _ in range(5)] == [2, 4, 8, 16, 32]


def test_ceiling():
    policy = ReconnectPolicy(max_attempts=3)

    assert [policy.next_delay() for _ in range(3)] == [2, 4, 8]
    assert not policy.exhausted
    assert policy.next_delay() is None
    assert policy.exhausted
    assert policy.next_delay() is None


def test_reset_restarts_sequence():
    policy = ReconnectPolicy(max_attempts=2)
    policy.next_delay()
    policy.next_delay()
    policy.next_delay()

    policy.reset()

    assert policy.attempts == 0
    assert policy.next_delay() == 2


def test_custom_cap():
    policy = ReconnectPolicy(max_attempts=10, max_backoff=5)

    assert [policy.next_delay() for _ in range(4)] == [2, 4, 5, 5]

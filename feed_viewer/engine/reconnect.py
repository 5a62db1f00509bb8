"""
Reconnection policy: exponential backoff with an attempt ceiling.

Delays are in time units (seconds in production, see FeedConfig.backoff_unit_sec).
"""

from __future__ import annotations

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_MAX_BACKOFF = 60


def backoff_delay(attempt: int, max_backoff: int = DEFAULT_MAX_BACKOFF) -> int:
    """min(2^attempt, max_backoff): 2, 4, 8, 16, 32, 60, 60, ..."""
    return min(2 ** attempt, max_backoff)


class ReconnectPolicy:
    """
    Attempt counter + backoff.

    Every trigger increments the counter; once it exceeds max_attempts the
    policy is exhausted until reset() (a successful connect or a manual connect).
    """

    __slots__ = ('max_attempts', 'max_backoff', 'attempts')

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        max_backoff: int = DEFAULT_MAX_BACKOFF,
    ) -> None:
        self.max_attempts = max_attempts
        self.max_backoff = max_backoff
        self.attempts = 0

    def next_delay(self) -> int | None:
        """
        Register a trigger.

        Returns the delay before the next attempt, or None once the ceiling is exceeded.
        """
        self.attempts += 1
        if self.attempts > self.max_attempts:
            return None
        return backoff_delay(self.attempts, self.max_backoff)

    @property
    def exhausted(self) -> bool:
        return self.attempts > self.max_attempts

    def reset(self) -> None:
        self.attempts = 0

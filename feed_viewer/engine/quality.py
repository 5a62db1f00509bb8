"""
Connection quality from ping round-trips.

Quality is derived from the latest sample only; there is no smoothing.
The periodic probe loop itself lives in FeedClient, which owns the socket.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable

from ..types import ConnectionQuality

# Upper bounds (exclusive) in milliseconds
EXCELLENT_MS = 50.0
GOOD_MS = 200.0
FAIR_MS = 500.0


def classify_latency(latency_ms: float) -> ConnectionQuality:
    """[0,50) excellent, [50,200) good, [200,500) fair, >= 500 poor."""
    if latency_ms < EXCELLENT_MS:
        return ConnectionQuality.EXCELLENT
    if latency_ms < GOOD_MS:
        return ConnectionQuality.GOOD
    if latency_ms < FAIR_MS:
        return ConnectionQuality.FAIR
    return ConnectionQuality.POOR


class QualityMonitor:
    """Tracks the outstanding probe, the last latency and the last heartbeat."""

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._probe_sent_at: float | None = None
        self.quality = ConnectionQuality.UNKNOWN
        self.latency_ms: float | None = None
        self.last_heartbeat: datetime | None = None

    @property
    def probe_in_flight(self) -> bool:
        return self._probe_sent_at is not None

    def probe_sent(self) -> None:
        """Mark a ping as sent. A newer probe replaces an unanswered one."""
        self._probe_sent_at = self._clock()

    def pong_received(self) -> ConnectionQuality | None:
        """
        Close the outstanding probe and reclassify.

        Returns the new quality, or None for an unsolicited pong.
        """
        if self._probe_sent_at is None:
            return None
        self.latency_ms = (self._clock() - self._probe_sent_at) * 1000.0
        self._probe_sent_at = None
        self.quality = classify_latency(self.latency_ms)
        return self.quality

    def probe_failed(self) -> None:
        """Forget the outstanding probe. Quality is left as-is."""
        self._probe_sent_at = None

    def record_heartbeat(self, when: datetime) -> None:
        self.last_heartbeat = when

    def reset(self) -> None:
        self._probe_sent_at = None
        self.quality = ConnectionQuality.UNKNOWN
        self.latency_ms = None
        self.last_heartbeat = None

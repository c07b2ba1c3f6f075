"""Process-local sliding window counter.

Each bucket keeps the exact timestamps (ms) of its admitted events, so the
admission boundary is precise: an event at ``t`` counts until ``t + window``
and stops counting at ``now > t + window``.
"""

import time
from collections import deque
from typing import Deque, Dict, Optional

from edugate.app.middleware.rate_limit.models import RateLimitResult


def now_ms() -> int:
    """Wall clock in milliseconds since the epoch."""
    return int(time.time() * 1000)


class SlidingWindowCounter:
    """True sliding window over per-key event timestamps.

    Timestamps are appended in non-decreasing order, so pruning only ever
    pops from the left and the oldest retained event is ``events[0]``.
    All operations are synchronous; on the event loop no two checks for the
    same key can interleave.
    """

    def __init__(self, window_ms: int, max_requests: int):
        if window_ms < 1:
            raise ValueError("window_ms must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be positive")
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._buckets: Dict[str, Deque[int]] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    def _prune(self, events: Deque[int], now: int) -> None:
        cutoff = now - self.window_ms
        while events and events[0] <= cutoff:
            events.popleft()

    def check(self, key: str, now: Optional[int] = None) -> RateLimitResult:
        """Admit or deny one event for ``key`` at ``now``.

        Args:
            key: Bucket key
            now: Timestamp in ms; defaults to the wall clock

        Returns:
            RateLimitResult. On denial ``reset_time`` is when the oldest
            retained event leaves the window; on admission it is
            ``now + window_ms``.
        """
        if now is None:
            now = now_ms()

        events = self._buckets.get(key)
        if events is None:
            events = deque()
        else:
            self._prune(events, now)

        if len(events) >= self.max_requests:
            self._buckets[key] = events
            return RateLimitResult(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                reset_time=events[0] + self.window_ms,
                timestamp=now,
            )

        events.append(now)
        self._buckets[key] = events
        return RateLimitResult(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - len(events),
            reset_time=now + self.window_ms,
            timestamp=now,
        )

    def refund(self, key: str, timestamp: int) -> bool:
        """Remove one recorded event at ``timestamp`` from ``key``.

        Returns:
            True if an event was removed
        """
        events = self._buckets.get(key)
        if not events:
            return False
        try:
            events.remove(timestamp)
        except ValueError:
            return False
        if not events:
            del self._buckets[key]
        return True

    def count(self, key: str, now: Optional[int] = None) -> int:
        """Number of events for ``key`` still inside the window (read-only)."""
        events = self._buckets.get(key)
        if not events:
            return 0
        cutoff = (now_ms() if now is None else now) - self.window_ms
        return sum(1 for t in events if t > cutoff)

    def cleanup(self, now: Optional[int] = None) -> int:
        """Prune every bucket and drop the ones left empty.

        Returns:
            Number of buckets removed
        """
        if now is None:
            now = now_ms()
        expired = []
        for key, events in self._buckets.items():
            self._prune(events, now)
            if not events:
                expired.append(key)
        for key in expired:
            del self._buckets[key]
        return len(expired)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one bucket, or every bucket when ``key`` is None."""
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)

"""Tests for the sliding window counter."""

import pytest

from edugate.app.middleware.rate_limit.counter import SlidingWindowCounter


class TestSlidingWindowCounter:
    """Admission decisions for a single process-local counter."""

    @pytest.fixture
    def counter(self):
        return SlidingWindowCounter(window_ms=60000, max_requests=3)

    def test_walkthrough_three_per_minute(self, counter):
        remaining = [counter.check("1.2.3.4", now=t).remaining for t in (0, 10, 20)]
        assert remaining == [2, 1, 0]

        denied = counter.check("1.2.3.4", now=30)
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.reset_time == 60000

        admitted = counter.check("1.2.3.4", now=60001)
        assert admitted.allowed is True
        assert admitted.remaining == 2

    def test_denied_through_end_of_window(self, counter):
        for t in (100, 200, 300):
            assert counter.check("k", now=t).allowed is True

        # Events count while timestamp > now - window
        assert counter.check("k", now=60099).allowed is False
        assert counter.check("k", now=60100).allowed is True

    def test_remaining_counts_down(self):
        counter = SlidingWindowCounter(window_ms=1000, max_requests=10)
        for n in range(1, 8):
            result = counter.check("fresh", now=n)
            assert result.remaining == 10 - n
            assert result.limit == 10

    def test_admitted_reset_time_is_now_plus_window(self, counter):
        result = counter.check("k", now=5000)
        assert result.reset_time == 65000

    def test_denied_reset_time_uses_oldest_retained_event(self, counter):
        for t in (1000, 2000, 3000):
            counter.check("k", now=t)
        # First event expired; window now holds 2000, 3000, 61001
        counter.check("k", now=61001)
        denied = counter.check("k", now=61500)
        assert denied.allowed is False
        assert denied.reset_time == 2000 + 60000
        assert denied.reset_time > 61500

    def test_denial_does_not_record_event(self, counter):
        for t in (0, 1, 2):
            counter.check("k", now=t)
        for t in range(3, 50):
            counter.check("k", now=t)
        assert counter.count("k", now=50) == 3

    def test_buckets_are_independent(self, counter):
        for t in (0, 1, 2):
            counter.check("k1", now=t)
        assert counter.check("k1", now=3).allowed is False

        result = counter.check("k2", now=3)
        assert result.allowed is True
        assert result.remaining == 2

    def test_refund_returns_slot(self, counter):
        results = [counter.check("k", now=t) for t in (0, 1, 2)]
        assert counter.refund("k", results[1].timestamp) is True
        assert counter.check("k", now=3).allowed is True

    def test_refund_unknown_event(self, counter):
        counter.check("k", now=0)
        assert counter.refund("k", 999) is False
        assert counter.refund("missing", 0) is False

    def test_refund_last_event_drops_bucket(self, counter):
        result = counter.check("k", now=0)
        counter.refund("k", result.timestamp)
        assert len(counter) == 0

    def test_cleanup_evicts_only_idle_buckets(self, counter):
        counter.check("old", now=0)
        counter.check("recent", now=50000)

        removed = counter.cleanup(now=70000)

        assert removed == 1
        assert len(counter) == 1
        assert counter.count("recent", now=70000) == 1

    def test_reset(self, counter):
        counter.check("a", now=0)
        counter.check("b", now=0)
        counter.reset("a")
        assert len(counter) == 1
        counter.reset()
        assert len(counter) == 0

    def test_uses_wall_clock_by_default(self, counter):
        result = counter.check("k")
        assert result.allowed is True
        assert result.reset_time > result.timestamp

    @pytest.mark.parametrize(("window_ms", "max_requests"), [(0, 1), (1000, 0)])
    def test_rejects_non_positive_quota(self, window_ms, max_requests):
        with pytest.raises(ValueError):
            SlidingWindowCounter(window_ms=window_ms, max_requests=max_requests)

"""Tests for readiness.lib.ratelimit and readiness.lib.cache."""

import threading

import pytest

from readiness.lib.cache import TTLCache
from readiness.lib.ratelimit import TokenBucket


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestTokenBucket:
    """Test TokenBucket class."""

    def test_burst_then_empty(self, clock):
        bucket = TokenBucket(capacity=2, refill_per_second=1, clock=clock, sleep=clock.sleep)
        assert bucket.try_acquire()
        assert bucket.try_acquire()
        assert not bucket.try_acquire()

    def test_refill_over_time(self, clock):
        bucket = TokenBucket(capacity=2, refill_per_second=1, clock=clock, sleep=clock.sleep)
        bucket.try_acquire()
        bucket.try_acquire()
        clock.now += 1.0
        assert bucket.try_acquire()

    def test_refill_capped_at_capacity(self, clock):
        bucket = TokenBucket(capacity=3, refill_per_second=10, clock=clock, sleep=clock.sleep)
        clock.now += 100
        assert bucket.available == 3

    def test_acquire_waits_within_budget(self, clock):
        bucket = TokenBucket(capacity=1, refill_per_second=0.5, clock=clock, sleep=clock.sleep)
        assert bucket.acquire()
        assert bucket.acquire(timeout=5)
        assert clock.sleeps == [pytest.approx(2.0)]

    def test_acquire_gives_up_past_budget(self, clock):
        bucket = TokenBucket(capacity=1, refill_per_second=0.1, clock=clock, sleep=clock.sleep)
        bucket.acquire()
        assert not bucket.acquire(timeout=1)
        assert clock.sleeps == []

    def test_no_refill_never_waits(self, clock):
        bucket = TokenBucket(capacity=1, refill_per_second=0, clock=clock, sleep=clock.sleep)
        bucket.acquire()
        assert not bucket.acquire(timeout=10)

    def test_per_hour(self):
        bucket = TokenBucket.per_hour(3600, burst=10)
        assert bucket.capacity == 10
        assert bucket.refill_per_second == pytest.approx(1.0)

    def test_rejects_empty_capacity(self):
        with pytest.raises(ValueError):
            TokenBucket(capacity=0, refill_per_second=1)

    def test_concurrent_callers_never_overdraw(self):
        bucket = TokenBucket(capacity=50, refill_per_second=0)
        granted = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                if bucket.try_acquire():
                    with lock:
                        granted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(granted) == 50


class TestTTLCache:
    """Test TTLCache class."""

    def test_hit_before_expiry(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v")
        clock.now += 9.9
        assert cache.get("k") == "v"

    def test_expired_entry_dropped(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v")
        clock.now += 10
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_missing_and_clear(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        assert cache.get("nope") is None
        cache.set(("repo", "sha"), [1])
        cache.clear()
        assert len(cache) == 0

    def test_write_sweeps_expired_keys(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        for i in range(100):
            cache.set(("https://github.com/acme/app", f"sha-{i}"), ["src/app.py"])
            clock.now += 11
        assert len(cache) == 1

    def test_write_keeps_live_keys(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("old", 1)
        clock.now += 5
        cache.set("new", 2)
        assert len(cache) == 2
        clock.now += 6
        cache.set("newest", 3)
        assert cache.get("old") is None
        assert cache.get("new") == 2

"""Tests for scan rate limiting."""

from iurl.api.rate_limiter import RateLimiter, RateLimiterRegistry


class TestRateLimiter:
    def test_burst_then_blocked(self):
        """Burst capacity is spent first, then callers must wait."""
        limiter = RateLimiter(requests_per_minute=60, burst_size=2)
        assert limiter.try_acquire()
        assert limiter.try_acquire()
        assert not limiter.try_acquire()
        assert 0 < limiter.wait_time() <= 1.0

    def test_refill(self, monkeypatch):
        """Tokens come back at requests_per_minute / 60 per second."""
        now = [1000.0]
        monkeypatch.setattr("iurl.api.rate_limiter.time.monotonic", lambda: now[0])
        limiter = RateLimiter(requests_per_minute=60, burst_size=1)

        assert limiter.try_acquire()
        assert not limiter.try_acquire()
        now[0] += 1.0
        assert limiter.try_acquire()

    def test_full_after_idle(self, monkeypatch):
        """A bucket left alone long enough reports itself full again."""
        now = [1000.0]
        monkeypatch.setattr("iurl.api.rate_limiter.time.monotonic", lambda: now[0])
        limiter = RateLimiter(requests_per_minute=60, burst_size=2)

        limiter.try_acquire()
        assert not limiter.is_full()
        now[0] += 1.0
        assert limiter.is_full()


class TestRateLimiterRegistry:
    def test_clients_are_independent(self):
        """Each client key gets its own bucket."""
        registry = RateLimiterRegistry(requests_per_minute=10, burst_size=1)
        assert registry.get("10.0.0.1").try_acquire()
        assert not registry.get("10.0.0.1").try_acquire()
        assert registry.get("10.0.0.2").try_acquire()
        assert len(registry) == 2

    def test_prune_forgets_idle_clients(self):
        """Pruning drops only buckets that have fully refilled."""
        registry = RateLimiterRegistry(requests_per_minute=10, burst_size=2)
        registry.get("idle")
        registry.get("busy").try_acquire()
        registry.prune()
        assert len(registry) == 1

    def test_full_registry_prunes_before_adding(self):
        """Idle buckets make room for a new client first."""
        registry = RateLimiterRegistry(burst_size=1, max_clients=2)
        registry.get("a")
        registry.get("b").try_acquire()
        registry.get("c")
        assert len(registry) == 2

    def test_registry_never_exceeds_max_clients(self):
        """When every bucket is active the oldest one is evicted."""
        registry = RateLimiterRegistry(requests_per_minute=1, burst_size=1, max_clients=3)
        for i in range(10):
            assert registry.get(f"10.0.0.{i}").try_acquire()
            assert len(registry) <= 3

        assert len(registry) == 3
        # The newest client keeps its spent bucket.
        assert not registry.get("10.0.0.9").try_acquire()

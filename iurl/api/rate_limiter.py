"""Per-client rate limiting for the scan endpoint."""

import time
from dataclasses import dataclass, field


@dataclass
class RateLimiter:
    """
    Token bucket rate limiter.

    Allows bursting up to `burst_size` scans, then enforces
    `requests_per_minute` rate.
    """

    requests_per_minute: int = 10
    burst_size: int = 10
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)

    def __post_init__(self):
        self._tokens = float(self.burst_size)
        self._last_update = time.monotonic()

    @property
    def tokens_per_second(self) -> float:
        return self.requests_per_minute / 60.0

    def _refill(self) -> None:
        """Refill tokens based on time elapsed."""
        now = time.monotonic()
        elapsed = now - self._last_update
        self._last_update = now
        self._tokens = min(self.burst_size, self._tokens + elapsed * self.tokens_per_second)

    def try_acquire(self) -> bool:
        """Take a token if one is available. Never waits."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def wait_time(self) -> float:
        """Seconds until the next token is available."""
        self._refill()
        if self._tokens >= 1:
            return 0.0
        if self.tokens_per_second <= 0:
            return float("inf")
        return (1 - self._tokens) / self.tokens_per_second

    def is_full(self) -> bool:
        self._refill()
        return self._tokens >= self.burst_size


class RateLimiterRegistry:
    """One bucket per client key (usually the remote address)."""

    def __init__(self, requests_per_minute: int = 10, burst_size: int = 10, max_clients: int = 10_000):
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.max_clients = max_clients
        self._limiters: dict[str, RateLimiter] = {}

    def __len__(self) -> int:
        return len(self._limiters)

    def get(self, client: str) -> RateLimiter:
        """Get or create the bucket for a client."""
        limiter = self._limiters.get(client)
        if limiter is None:
            if len(self._limiters) >= self.max_clients:
                self.prune()
            while self._limiters and len(self._limiters) >= self.max_clients:
                # Still full of active clients: drop the oldest bucket.
                del self._limiters[next(iter(self._limiters))]
            limiter = RateLimiter(
                requests_per_minute=self.requests_per_minute,
                burst_size=self.burst_size,
            )
            self._limiters[client] = limiter
        return limiter

    def prune(self) -> None:
        """Forget clients whose bucket has fully refilled."""
        for client in [key for key, limiter in self._limiters.items() if limiter.is_full()]:
            del self._limiters[client]

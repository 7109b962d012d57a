"""HTTP API for iurl."""

from .rate_limiter import RateLimiter, RateLimiterRegistry
from .server import ApiServer

__all__ = ["ApiServer", "RateLimiter", "RateLimiterRegistry"]

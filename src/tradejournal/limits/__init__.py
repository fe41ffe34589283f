"""Per-user request throttling."""

from tradejournal.limits.rate_limiter import RateLimiter

__all__ = ["RateLimiter"]

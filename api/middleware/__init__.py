"""API middleware for rate limiting."""

from api.middleware.rate_limiter import RateLimiter, search_rate_limiter

__all__ = ["RateLimiter", "search_rate_limiter"]

"""
Redis client management for the FAQ bot.

Used by the optional conversation backing; degrades to None when Redis
is unreachable.
"""

from libs.caching.redis_client import close_redis_client, get_redis_client, reset_redis_client

__all__ = ["close_redis_client", "get_redis_client", "reset_redis_client"]

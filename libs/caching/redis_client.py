"""
Redis connection for the conversation backing.

One pooled ``redis.asyncio`` client per process. When Redis cannot be
reached the getter returns None and stops retrying until
``reset_redis_client`` is called; callers run without durable history.
Under ``FAQBOT_APP_ENV=test`` an in-process fakeredis instance is used.
"""

from typing import Optional

import redis.asyncio as redis
import structlog

from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)

_client: Optional[redis.Redis] = None
_unavailable = False


def _host_of(url: str) -> str:
    # drop credentials before logging
    return url.rsplit("@", 1)[-1].split("//")[-1]


async def _connect(url: str) -> redis.Redis:
    client = redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
        socket_timeout=5,
        socket_connect_timeout=5,
    )
    await client.ping()
    return client


async def get_redis_client(use_fake: Optional[bool] = None) -> Optional[redis.Redis]:
    """
    Return the shared client, connecting on first use.

    Args:
        use_fake: Force fakeredis on or off; defaults to on when app_env is "test"

    Returns:
        Connected client, or None when Redis is not configured or unreachable
    """
    global _client, _unavailable

    settings = get_settings()
    if use_fake is None:
        use_fake = settings.app_env == "test"

    if use_fake:
        from fakeredis import aioredis as fakeredis

        if _client is None:
            _client = fakeredis.FakeRedis(decode_responses=True)
            logger.info("Using fakeredis for conversation backing")
        return _client

    if _client is not None:
        return _client
    if _unavailable:
        return None

    if not settings.redis_url:
        logger.warning(
            "FAQBOT_REDIS_URL not set, conversation backing disabled",
            hint="Set FAQBOT_REDIS_URL to keep history across restarts",
        )
        _unavailable = True
        return None

    try:
        _client = await _connect(settings.redis_url)
    except (redis.RedisError, OSError) as e:
        logger.error("Redis connection failed", host=_host_of(settings.redis_url), error=str(e))
        _unavailable = True
        return None

    logger.info("Redis client initialized", host=_host_of(settings.redis_url))
    return _client


async def close_redis_client() -> None:
    global _client

    if _client is None:
        return
    try:
        await _client.aclose()
        logger.info("Redis client closed")
    except Exception as e:
        logger.warning("Error closing Redis client", error=str(e))
    finally:
        _client = None


async def reset_redis_client() -> None:
    """Close the client and allow a fresh connection attempt."""
    global _unavailable

    await close_redis_client()
    _unavailable = False

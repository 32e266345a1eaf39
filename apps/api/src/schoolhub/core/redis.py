"""
Redis Client

Shared async Redis connection, used by the rate limiter. Redis is optional
outside production: when it is not initialized callers fall back to
in-process state.
"""

from redis.asyncio import Redis, from_url

from schoolhub.core.config import settings

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Open the Redis connection and ping it. Call on application startup."""
    global redis_client
    client = from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    await client.ping()
    redis_client = client
    return redis_client


def get_redis() -> Redis | None:
    """Return the shared client, or None when Redis is unavailable."""
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None

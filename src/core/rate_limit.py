"""Per-user chat throttle on Redis (fixed one-minute window)."""

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.core.config import settings
from src.core.db import redis

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


async def check_rate_limit(
    user_id: str, *, client: Redis | None = None, limit: int | None = None
) -> bool:
    """Return True if the user may send another request this minute.

    Fails open: when Redis is unreachable every request is allowed, so a
    broken cache never locks users out of ordering.
    """
    client = client or redis
    limit = limit or settings.rate_limit_per_minute
    key = f"rate:chat:{user_id}"
    try:
        count = await client.incr(key)
        if count == 1:
            await client.expire(key, WINDOW_SECONDS)
    except (RedisError, OSError) as e:
        logger.warning("Rate limit check failed: %s", e)
        return True
    return count <= limit

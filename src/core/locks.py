"""Cross-process lock on Redis for the reply check."""

import logging
import uuid

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

REPLY_CHECK_LOCK_KEY = "lock:reply_check"


class RedisPassLock:
    """``SET key token NX EX ttl`` lock shared by every process on one Redis.

    ``ttl`` bounds how long a crashed holder blocks the next pass. A Redis
    failure counts as "not acquired": the pass is skipped, never doubled.
    """

    def __init__(self, client: Redis, key: str = REPLY_CHECK_LOCK_KEY, ttl: int = 600):
        self._client = client
        self._key = key
        self._ttl = ttl
        self._token: str | None = None

    async def acquire(self) -> bool:
        token = uuid.uuid4().hex
        try:
            acquired = await self._client.set(self._key, token, nx=True, ex=self._ttl)
        except (RedisError, OSError) as e:
            logger.warning("Reply check lock unavailable: %s", e)
            return False
        if not acquired:
            return False
        self._token = token
        return True

    async def release(self) -> None:
        token, self._token = self._token, None
        if token is None:
            return
        try:
            # Only drop the key if it still holds our token (it may have expired)
            if await self._client.get(self._key) == token:
                await self._client.delete(self._key)
        except (RedisError, OSError) as e:
            logger.warning("Failed to release reply check lock: %s", e)

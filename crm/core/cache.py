import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Compare-and-delete so a lock is only released by the holder that set it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class CacheService:
    """Thin wrapper around an async Redis client.

    If *redis_client* is ``None`` (Redis unavailable), every operation
    degrades to a no-op; callers never need to check for ``None``.
    """

    def __init__(self, redis_client: Optional[Redis] = None) -> None:
        self._redis: Optional[Redis] = redis_client

    # ------------------------------------------------------------------
    # Per-key critical section
    # ------------------------------------------------------------------

    async def acquire_lock(self, key: str, ttl: int) -> Optional[str]:
        """Try to take *key* with ``SET NX EX``.

        Returns the holder token on success, ``None`` when the key is
        already held.  When Redis is unavailable a token is returned
        anyway so callers proceed unserialised; the lead-score
        conditional write still catches a lost race.
        """
        token = uuid.uuid4().hex
        if self._redis is None:
            return token
        try:
            acquired = await self._redis.set(key, token, nx=True, ex=ttl)
        except Exception:
            logger.warning("Redis SET NX failed for key %s", key)
            return token
        return token if acquired else None

    async def release_lock(self, key: str, token: str) -> None:
        """Release *key* if it is still held by *token* (best-effort)."""
        if self._redis is None:
            return
        try:
            await self._redis.eval(_RELEASE_SCRIPT, 1, key, token)
        except Exception:
            logger.warning("Redis lock release failed for key %s", key)

    @asynccontextmanager
    async def lock(self, key: str, ttl: int) -> AsyncIterator[bool]:
        """Async context manager yielding whether the lock was taken."""
        token = await self.acquire_lock(key, ttl)
        try:
            yield token is not None
        finally:
            if token is not None:
                await self.release_lock(key, token)

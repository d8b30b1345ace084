"""Redis backed advisory locks shared across API workers."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.asyncio import Redis
from redis.exceptions import RedisError

from sentinel.infra.redis import RedisProxy

logger = logging.getLogger(__name__)

# Delete only while the key still holds our token.
_RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class RedisActorLock:
    """SET NX PX lock with a bounded wait.

    When Redis cannot be reached the holder proceeds without the lock and
    ``hold`` yields ``False``.
    """

    def __init__(
        self,
        redis: Redis | RedisProxy,
        *,
        ttl_ms: int = 5000,
        wait_ms: int = 250,
        poll_ms: int = 25,
        namespace: str = "lock:flag",
    ) -> None:
        self._redis = redis
        self._ttl_ms = ttl_ms
        self._wait_ms = wait_ms
        self._poll_ms = poll_ms
        self._namespace = namespace

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[bool]:
        name = f"{self._namespace}:{key}"
        token = uuid.uuid4().hex
        acquired = await self._acquire(name, token)
        try:
            yield acquired
        finally:
            if acquired:
                await self._release(name, token)

    async def _acquire(self, name: str, token: str) -> bool:
        attempts = max(1, self._wait_ms // max(1, self._poll_ms))
        try:
            for attempt in range(attempts):
                if await self._redis.set(name, token, nx=True, px=self._ttl_ms):
                    return True
                if attempt + 1 < attempts:
                    await asyncio.sleep(self._poll_ms / 1000)
        except (RedisError, OSError):
            logger.warning("flag_lock_unavailable", extra={"lock": name}, exc_info=True)
            return False
        logger.warning("flag_lock_timeout", extra={"lock": name})
        return False

    async def _release(self, name: str, token: str) -> None:
        try:
            release = self._redis.register_script(_RELEASE_SCRIPT)
            await release(keys=[name], args=[token])
        except (RedisError, OSError):
            logger.warning("flag_lock_release_failed", extra={"lock": name}, exc_info=True)

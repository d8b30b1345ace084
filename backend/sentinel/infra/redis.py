"""Shared Redis handle used by the flag locks and the readiness probe."""

from __future__ import annotations

from typing import Any

import redis.asyncio as redis

from sentinel.settings import settings


class RedisProxy:
    """Module-level handle whose target client can be replaced at runtime.

    Components capture ``redis_client`` at import time; tests retarget it at
    fakeredis with :func:`set_redis_client`.
    """

    __slots__ = ("_target",)

    def __init__(self, target: redis.Redis) -> None:
        self._target = target

    @property
    def client(self) -> redis.Redis:
        return self._target

    def set_client(self, target: redis.Redis) -> None:
        self._target = target

    def __getattr__(self, name: str) -> Any:
        return getattr(self._target, name)


redis_client = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(target: redis.Redis) -> None:
    redis_client.set_client(target)

"""Trailing-window counters over the activity log."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta
from typing import Awaitable, Sequence, TypeVar

import asyncpg

from sentinel.detection.domain.activity import ActionKind, ActivityRepository
from sentinel.detection.domain.clock import Clock, utcnow
from sentinel.detection.domain.errors import DetectionUnavailable
from sentinel.obs import metrics

T = TypeVar("T")

# Failures that mean the store could not answer right now, as opposed to a bug.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    # server side: too many clients, shutdown or restart, statement timeout
    asyncpg.exceptions.InsufficientResourcesError,
    asyncpg.exceptions.OperatorInterventionError,
    asyncpg.exceptions.QueryCanceledError,
    DetectionUnavailable,
)


async def bounded(operation: str, call: Awaitable[T], *, timeout: float) -> T:
    """Await a store call under ``timeout`` and normalise transient failures."""

    start = time.perf_counter()
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except TRANSIENT_ERRORS as exc:
        raise DetectionUnavailable(f"{operation}:{type(exc).__name__}") from exc
    finally:
        metrics.observe_store(operation, time.perf_counter() - start)


def _require_window(window: timedelta) -> None:
    if window.total_seconds() <= 0:
        raise ValueError("window_must_be_positive")


class WindowCounter:
    """Counts activity records inside a trailing window ending at ``now``."""

    def __init__(
        self,
        repository: ActivityRepository,
        *,
        clock: Clock = utcnow,
        timeout: float = 2.0,
    ) -> None:
        self._repo = repository
        self._clock = clock
        self._timeout = timeout

    async def count_recent_actions(self, actor_id: str, action: ActionKind, window: timedelta) -> int:
        _require_window(window)
        since = self._clock() - window
        return await self.count_since(actor_id, action, since)

    async def count_since(self, actor_id: str, action: ActionKind, since: datetime) -> int:
        count = await bounded(
            "count_for_actor",
            self._repo.count_for_actor(actor_id, action, since),
            timeout=self._timeout,
        )
        return max(0, int(count))

    async def count_recent_from_origin(self, origin: str, action: ActionKind, window: timedelta) -> int:
        _require_window(window)
        since = self._clock() - window
        count = await bounded(
            "count_for_origin",
            self._repo.count_for_origin(origin, action, since),
            timeout=self._timeout,
        )
        return max(0, int(count))

    async def recent_origins(self, actor_id: str, actions: Sequence[ActionKind], limit: int) -> list[str]:
        return await bounded(
            "recent_origins",
            self._repo.recent_origins(actor_id, actions, limit),
            timeout=self._timeout,
        )

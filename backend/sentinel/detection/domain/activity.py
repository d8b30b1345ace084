"""Append-only activity log consumed by the detectors."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Sequence

from sentinel.detection.domain.clock import Clock, utcnow

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


class ActionKind(str, Enum):
    RESOURCE_CREATED = "artwork_created"
    CONTAINER_CREATED = "gallery_created"
    LOGIN_SUCCESS = "user_login"
    LOGIN_FAILURE = "user_login_failed"
    SIGNUP = "user_signup"


# Actions that establish an origin as known for an actor.
LOGIN_ACTIONS: tuple[ActionKind, ...] = (ActionKind.LOGIN_SUCCESS, ActionKind.SIGNUP)


@dataclass(frozen=True, slots=True)
class ActivityRecord:
    id: str
    actor_id: Optional[str]
    action: ActionKind
    origin: str
    user_agent: str
    created_at: datetime
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class OriginUsage:
    origin: str
    last_used: datetime
    count: int


class ActivityRepository(Protocol):
    async def append(self, record: ActivityRecord) -> ActivityRecord:
        ...

    async def count_for_actor(self, actor_id: str, action: ActionKind, since: datetime) -> int:
        ...

    async def count_for_origin(self, origin: str, action: ActionKind, since: datetime) -> int:
        ...

    async def recent_origins(self, actor_id: str, actions: Sequence[ActionKind], limit: int) -> list[str]:
        ...

    async def summarize(self, actor_id: str, since: datetime) -> dict[str, int]:
        ...

    async def origin_usage(self, actor_id: str, limit: int) -> list[OriginUsage]:
        ...


def client_info(headers: Mapping[str, str], peer: Optional[str] = None) -> tuple[str, str]:
    """Resolve the origin address and user agent for an inbound request."""

    lowered = {key.lower(): value for key, value in headers.items()}
    origin = (lowered.get("cf-connecting-ip") or "").strip()
    if not origin:
        forwarded = lowered.get("x-forwarded-for") or ""
        origin = forwarded.split(",")[0].strip()
    if not origin:
        origin = peer or UNKNOWN
    user_agent = lowered.get("user-agent") or UNKNOWN
    return origin, user_agent


class ActivityLogger:
    """Writes activity records on behalf of CRUD handlers."""

    def __init__(self, repository: ActivityRepository, *, clock: Clock = utcnow) -> None:
        self._repo = repository
        self._clock = clock

    async def append(
        self,
        *,
        action: ActionKind,
        actor_id: Optional[str],
        origin: str = UNKNOWN,
        user_agent: str = UNKNOWN,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> ActivityRecord:
        record = ActivityRecord(
            id=str(uuid.uuid4()),
            actor_id=actor_id,
            action=action,
            origin=origin or UNKNOWN,
            user_agent=user_agent or UNKNOWN,
            created_at=self._clock(),
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=dict(metadata or {}),
        )
        return await self._repo.append(record)

    async def log(self, **kwargs: Any) -> Optional[ActivityRecord]:
        """Best-effort append; a failed write never breaks the request."""

        try:
            return await self.append(**kwargs)
        except Exception:
            logger.exception(
                "activity_log_failed",
                extra={"action": getattr(kwargs.get("action"), "value", kwargs.get("action"))},
            )
            return None

    async def summary(self, actor_id: str, *, days: int = 30) -> dict[str, int]:
        since = self._clock() - timedelta(days=days)
        return await self._repo.summarize(actor_id, since)

    async def recent_origins(self, actor_id: str, *, limit: int = 10) -> list[OriginUsage]:
        return await self._repo.origin_usage(actor_id, limit)


class InMemoryActivityRepository(ActivityRepository):
    """Simple repository implementation for development and tests."""

    def __init__(self) -> None:
        self.records: list[ActivityRecord] = []

    async def append(self, record: ActivityRecord) -> ActivityRecord:
        self.records.append(record)
        return record

    async def count_for_actor(self, actor_id: str, action: ActionKind, since: datetime) -> int:
        return sum(
            1
            for item in self.records
            if item.actor_id == actor_id and item.action is action and item.created_at >= since
        )

    async def count_for_origin(self, origin: str, action: ActionKind, since: datetime) -> int:
        return sum(
            1
            for item in self.records
            if item.origin == origin and item.action is action and item.created_at >= since
        )

    async def recent_origins(self, actor_id: str, actions: Sequence[ActionKind], limit: int) -> list[str]:
        seen: list[str] = []
        for item in self._newest_first(actor_id):
            if item.action not in actions or item.origin in seen:
                continue
            seen.append(item.origin)
            if len(seen) >= limit:
                break
        return seen

    async def summarize(self, actor_id: str, since: datetime) -> dict[str, int]:
        summary: dict[str, int] = {}
        for item in self.records:
            if item.actor_id == actor_id and item.created_at >= since:
                summary[item.action.value] = summary.get(item.action.value, 0) + 1
        return summary

    async def origin_usage(self, actor_id: str, limit: int) -> list[OriginUsage]:
        usage: dict[str, OriginUsage] = {}
        for item in self._newest_first(actor_id):
            current = usage.get(item.origin)
            if current is None:
                usage[item.origin] = OriginUsage(origin=item.origin, last_used=item.created_at, count=1)
            else:
                usage[item.origin] = OriginUsage(
                    origin=current.origin,
                    last_used=current.last_used,
                    count=current.count + 1,
                )
        return list(usage.values())[:limit]

    def _newest_first(self, actor_id: str) -> list[ActivityRecord]:
        owned = [item for item in self.records if item.actor_id == actor_id]
        return sorted(owned, key=lambda item: item.created_at, reverse=True)

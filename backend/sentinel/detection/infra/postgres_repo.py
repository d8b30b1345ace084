"""PostgreSQL persistence for the suspicious activity detection subsystem."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence

import asyncpg

from sentinel.detection.domain.accounts import (
    CLEARABLE,
    ESCALATION_EXEMPT,
    Account,
    AccountRepository,
    AccountStatus,
)
from sentinel.detection.domain.activity import (
    ActionKind,
    ActivityRecord,
    ActivityRepository,
    OriginUsage,
)
from sentinel.detection.domain.fingerprints import FingerprintEntry, FingerprintRepository
from sentinel.detection.domain.flagging import FlagKindCount, FlagRecord, FlagRepository
from sentinel.detection.domain.review import ReviewRecord, ReviewRepository
from sentinel.detection.domain.verdicts import (
    FlagKind,
    Severity,
    evidence_from_payload,
    evidence_to_payload,
)


def _load_json(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, (bytes, str)):
        return json.loads(value)
    return dict(value)


def _row_to_flag(row: asyncpg.Record) -> FlagRecord:
    kind = FlagKind(str(row["kind"]))
    return FlagRecord(
        id=str(row["id"]),
        actor_id=str(row["user_id"]),
        kind=kind,
        severity=Severity(str(row["severity"])),
        evidence=evidence_from_payload(kind, _load_json(row["evidence"])),
        detected_at=row["detected_at"],
    )


def _row_to_account(row: asyncpg.Record) -> Account:
    return Account(
        id=str(row["id"]),
        status=AccountStatus(str(row["status"])),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        display_name=str(row["display_name"]) if row["display_name"] is not None else None,
    )


class PostgresActivityRepository(ActivityRepository):
    """Stores activity records in activity_log."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def append(self, record: ActivityRecord) -> ActivityRecord:
        await self._pool.execute(
            """
            INSERT INTO activity_log (id, user_id, action, entity_type, entity_id, metadata, ip_address, user_agent, created_at)
            VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9)
            """,
            record.id,
            record.actor_id,
            record.action.value,
            record.entity_type,
            record.entity_id,
            json.dumps(dict(record.metadata)),
            record.origin,
            record.user_agent,
            record.created_at,
        )
        return record

    async def count_for_actor(self, actor_id: str, action: ActionKind, since: datetime) -> int:
        count = await self._pool.fetchval(
            """
            SELECT COUNT(*) FROM activity_log
            WHERE user_id = $1 AND action = $2 AND created_at >= $3
            """,
            actor_id,
            action.value,
            since,
        )
        return int(count or 0)

    async def count_for_origin(self, origin: str, action: ActionKind, since: datetime) -> int:
        count = await self._pool.fetchval(
            """
            SELECT COUNT(*) FROM activity_log
            WHERE ip_address = $1 AND action = $2 AND created_at >= $3
            """,
            origin,
            action.value,
            since,
        )
        return int(count or 0)

    async def recent_origins(self, actor_id: str, actions: Sequence[ActionKind], limit: int) -> list[str]:
        rows = await self._pool.fetch(
            """
            SELECT ip_address, MAX(created_at) AS last_used
            FROM activity_log
            WHERE user_id = $1 AND action = ANY($2::text[])
            GROUP BY ip_address
            ORDER BY last_used DESC
            LIMIT $3
            """,
            actor_id,
            [action.value for action in actions],
            limit,
        )
        return [str(row["ip_address"]) for row in rows]

    async def summarize(self, actor_id: str, since: datetime) -> dict[str, int]:
        rows = await self._pool.fetch(
            """
            SELECT action, COUNT(*) AS count
            FROM activity_log
            WHERE user_id = $1 AND created_at >= $2
            GROUP BY action
            """,
            actor_id,
            since,
        )
        return {str(row["action"]): int(row["count"]) for row in rows}

    async def origin_usage(self, actor_id: str, limit: int) -> list[OriginUsage]:
        rows = await self._pool.fetch(
            """
            SELECT ip_address, MAX(created_at) AS last_used, COUNT(*) AS count
            FROM activity_log
            WHERE user_id = $1
            GROUP BY ip_address
            ORDER BY last_used DESC
            LIMIT $2
            """,
            actor_id,
            limit,
        )
        return [
            OriginUsage(origin=str(row["ip_address"]), last_used=row["last_used"], count=int(row["count"]))
            for row in rows
        ]


class PostgresFingerprintRepository(FingerprintRepository):
    """Stores content digests in artwork_fingerprints."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def record(self, entry: FingerprintEntry) -> None:
        await self._pool.execute(
            """
            INSERT INTO artwork_fingerprints (user_id, fingerprint, resource_id, created_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id, fingerprint, resource_id) DO NOTHING
            """,
            entry.actor_id,
            entry.fingerprint,
            entry.resource_id,
            entry.created_at,
        )

    async def find(self, actor_id: str, fingerprint: str, limit: int) -> list[str]:
        rows = await self._pool.fetch(
            """
            SELECT resource_id FROM artwork_fingerprints
            WHERE user_id = $1 AND fingerprint = $2
            ORDER BY created_at DESC
            LIMIT $3
            """,
            actor_id,
            fingerprint,
            limit,
        )
        return [str(row["resource_id"]) for row in rows]


class PostgresFlagRepository(FlagRepository):
    """Stores flags in suspicious_flags; rows are never updated or deleted."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def latest_since(self, actor_id: str, kind: FlagKind, since: datetime) -> FlagRecord | None:
        row = await self._pool.fetchrow(
            """
            SELECT id, user_id, kind, severity, evidence, detected_at
            FROM suspicious_flags
            WHERE user_id = $1 AND kind = $2 AND detected_at >= $3
            ORDER BY detected_at DESC
            LIMIT 1
            """,
            actor_id,
            kind.value,
            since,
        )
        if row is None:
            return None
        return _row_to_flag(row)

    async def insert(self, record: FlagRecord) -> FlagRecord:
        await self._pool.execute(
            """
            INSERT INTO suspicious_flags (id, user_id, kind, severity, evidence, detected_at)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6)
            """,
            record.id,
            record.actor_id,
            record.kind.value,
            record.severity.value,
            json.dumps(evidence_to_payload(record.evidence)),
            record.detected_at,
        )
        return record

    async def recent_for_actor(self, actor_id: str, limit: int) -> Sequence[FlagRecord]:
        rows = await self._pool.fetch(
            """
            SELECT id, user_id, kind, severity, evidence, detected_at
            FROM suspicious_flags
            WHERE user_id = $1
            ORDER BY detected_at DESC
            LIMIT $2
            """,
            actor_id,
            limit,
        )
        return [_row_to_flag(row) for row in rows]

    async def counts_by_kind(self, since: datetime) -> Sequence[FlagKindCount]:
        rows = await self._pool.fetch(
            """
            SELECT kind,
                   CASE MAX(CASE severity WHEN 'low' THEN 0 WHEN 'medium' THEN 1 WHEN 'high' THEN 2 ELSE 3 END)
                       WHEN 0 THEN 'low' WHEN 1 THEN 'medium' WHEN 2 THEN 'high' ELSE 'critical'
                   END AS severity,
                   COUNT(*) AS count
            FROM suspicious_flags
            WHERE detected_at >= $1
            GROUP BY kind
            ORDER BY kind
            """,
            since,
        )
        return [
            FlagKindCount(kind=FlagKind(str(row["kind"])), severity=Severity(str(row["severity"])), count=int(row["count"]))
            for row in rows
        ]


class PostgresAccountRepository(AccountRepository):
    """Reads and writes the status column of users."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get(self, actor_id: str) -> Account | None:
        row = await self._pool.fetchrow(
            "SELECT id, display_name, status, created_at, updated_at FROM users WHERE id = $1",
            actor_id,
        )
        if row is None:
            return None
        return _row_to_account(row)

    async def mark_flagged(self, actor_id: str, at: datetime) -> bool:
        result = await self._pool.execute(
            """
            UPDATE users SET status = $2, updated_at = $3
            WHERE id = $1 AND status <> ALL($4::text[])
            """,
            actor_id,
            AccountStatus.FLAGGED.value,
            at,
            [status.value for status in ESCALATION_EXEMPT],
        )
        return result.endswith(" 1")

    async def mark_active(self, actor_id: str, at: datetime) -> bool:
        result = await self._pool.execute(
            """
            UPDATE users SET status = $2, updated_at = $3
            WHERE id = $1 AND status = ANY($4::text[])
            """,
            actor_id,
            AccountStatus.ACTIVE.value,
            at,
            [status.value for status in CLEARABLE],
        )
        return result.endswith(" 1")

    async def list_by_status(self, status: AccountStatus, *, limit: int, offset: int) -> Sequence[Account]:
        rows = await self._pool.fetch(
            """
            SELECT id, display_name, status, created_at, updated_at
            FROM users
            WHERE status = $1
            ORDER BY updated_at DESC, id
            LIMIT $2 OFFSET $3
            """,
            status.value,
            limit,
            offset,
        )
        return [_row_to_account(row) for row in rows]

    async def count_by_status(self, status: AccountStatus) -> int:
        count = await self._pool.fetchval("SELECT COUNT(*) FROM users WHERE status = $1", status.value)
        return int(count or 0)


class PostgresReviewRepository(ReviewRepository):
    """Stores staff reviews in flag_reviews."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def insert(self, record: ReviewRecord) -> ReviewRecord:
        await self._pool.execute(
            """
            INSERT INTO flag_reviews (id, user_id, reviewer_id, notes, created_at)
            VALUES ($1, $2, $3, $4, $5)
            """,
            record.id,
            record.actor_id,
            record.reviewer_id,
            record.notes,
            record.created_at,
        )
        return record

    async def list_for_actor(self, actor_id: str) -> Sequence[ReviewRecord]:
        rows = await self._pool.fetch(
            """
            SELECT id, user_id, reviewer_id, notes, created_at
            FROM flag_reviews
            WHERE user_id = $1
            ORDER BY created_at DESC
            """,
            actor_id,
        )
        return [
            ReviewRecord(
                id=str(row["id"]),
                actor_id=str(row["user_id"]),
                reviewer_id=str(row["reviewer_id"]),
                notes=str(row["notes"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

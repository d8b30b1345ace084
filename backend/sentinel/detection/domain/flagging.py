"""Flag ledger and the engine that records verdicts and escalates accounts."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol, Sequence

from sentinel.detection.domain.accounts import AccountRepository
from sentinel.detection.domain.clock import Clock, utcnow
from sentinel.detection.domain.errors import DetectionUnavailable
from sentinel.detection.domain.locks import ActorLock, LocalActorLock
from sentinel.detection.domain.verdicts import (
    EVIDENCE_TYPES,
    Evidence,
    FlagKind,
    Severity,
    Verdict,
    evidence_to_payload,
)
from sentinel.detection.domain.windows import bounded
from sentinel.obs import metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FlagRecord:
    id: str
    actor_id: str
    kind: FlagKind
    severity: Severity
    evidence: Evidence
    detected_at: datetime


@dataclass(frozen=True, slots=True)
class FlagKindCount:
    kind: FlagKind
    severity: Severity
    count: int


class FlagRepository(Protocol):
    async def latest_since(self, actor_id: str, kind: FlagKind, since: datetime) -> FlagRecord | None:
        ...

    async def insert(self, record: FlagRecord) -> FlagRecord:
        ...

    async def recent_for_actor(self, actor_id: str, limit: int) -> Sequence[FlagRecord]:
        ...

    async def counts_by_kind(self, since: datetime) -> Sequence[FlagKindCount]:
        ...


class FlaggingEngine:
    """Records verdicts as flags, suppressing repeats inside the cool-down.

    The cool-down lookup and the insert run under a per-(actor, kind) lock so
    concurrent qualifying actions produce a single flag. Recording a flag does
    not notify anyone or revoke sessions.
    """

    def __init__(
        self,
        *,
        flags: FlagRepository,
        accounts: AccountRepository,
        lock: ActorLock | None = None,
        clock: Clock = utcnow,
        cooldown: timedelta = timedelta(hours=1),
        timeout: float = 2.0,
    ) -> None:
        self._flags = flags
        self._accounts = accounts
        self._lock = lock or LocalActorLock()
        self._clock = clock
        self._cooldown = cooldown
        self._timeout = timeout

    async def raise_verdict(self, actor_id: str, verdict: Verdict) -> Optional[FlagRecord]:
        return await self.raise_flag(actor_id, verdict.kind, verdict.severity, verdict.evidence)

    async def raise_flag(
        self,
        actor_id: str,
        kind: FlagKind,
        severity: Severity,
        evidence: Evidence,
    ) -> Optional[FlagRecord]:
        """Record a flag; returns ``None`` when suppressed or the store failed."""

        if not actor_id:
            raise ValueError("actor_id_required")
        if not isinstance(evidence, EVIDENCE_TYPES[kind]):
            raise TypeError(f"evidence_mismatch:{kind.value}")

        async with self._lock.hold(f"{actor_id}:{kind.value}") as locked:
            if not locked:
                logger.warning("flag_lock_skipped", extra={"actor": actor_id, "kind": kind.value})
            now = self._clock()
            try:
                existing = await bounded(
                    "flag_latest_since",
                    self._flags.latest_since(actor_id, kind, now - self._cooldown),
                    timeout=self._timeout,
                )
                if existing is not None:
                    metrics.flag_attempt(kind.value, severity.value, "suppressed")
                    return None
                record = await bounded(
                    "flag_insert",
                    self._flags.insert(
                        FlagRecord(
                            id=str(uuid.uuid4()),
                            actor_id=actor_id,
                            kind=kind,
                            severity=severity,
                            evidence=evidence,
                            detected_at=now,
                        )
                    ),
                    timeout=self._timeout,
                )
            except DetectionUnavailable as exc:
                metrics.flag_attempt(kind.value, severity.value, "unavailable")
                logger.warning(
                    "flag_fail_open",
                    extra={"actor": actor_id, "kind": kind.value, "reason": exc.reason},
                )
                return None

        metrics.flag_attempt(kind.value, severity.value, "recorded")
        logger.info(
            "flag_raised",
            extra={
                "actor": actor_id,
                "kind": kind.value,
                "severity": severity.value,
                "evidence": evidence_to_payload(evidence),
            },
        )
        if severity.escalates:
            await self._escalate(record)
        return record

    async def _escalate(self, record: FlagRecord) -> None:
        # The flag stays recorded even if this write fails; the account is
        # reconciled by the next qualifying action or a manual admin scan.
        try:
            await bounded(
                "account_mark_flagged",
                self._accounts.mark_flagged(record.actor_id, record.detected_at),
                timeout=self._timeout,
            )
        except DetectionUnavailable as exc:
            metrics.escalation("failed")
            logger.error(
                "flag_escalation_failed",
                extra={"actor": record.actor_id, "flag_id": record.id, "reason": exc.reason},
            )
            return
        metrics.escalation("ok")


class InMemoryFlagRepository(FlagRepository):
    """Simple repository implementation for development and tests."""

    def __init__(self) -> None:
        self.records: list[FlagRecord] = []

    async def latest_since(self, actor_id: str, kind: FlagKind, since: datetime) -> FlagRecord | None:
        matches = [
            item
            for item in self.records
            if item.actor_id == actor_id and item.kind is kind and item.detected_at >= since
        ]
        if not matches:
            return None
        return max(matches, key=lambda item: item.detected_at)

    async def insert(self, record: FlagRecord) -> FlagRecord:
        self.records.append(record)
        return record

    async def recent_for_actor(self, actor_id: str, limit: int) -> Sequence[FlagRecord]:
        owned = [item for item in self.records if item.actor_id == actor_id]
        owned.sort(key=lambda item: item.detected_at, reverse=True)
        return owned[:limit]

    async def counts_by_kind(self, since: datetime) -> Sequence[FlagKindCount]:
        grouped: dict[FlagKind, tuple[Severity, int]] = {}
        for item in self.records:
            if item.detected_at < since:
                continue
            severity, count = grouped.get(item.kind, (item.severity, 0))
            grouped[item.kind] = (max(severity, item.severity), count + 1)
        return [
            FlagKindCount(kind=kind, severity=severity, count=count)
            for kind, (severity, count) in sorted(grouped.items(), key=lambda pair: pair[0].value)
        ]

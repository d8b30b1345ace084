"""Staff review workflow over flagged accounts."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, Sequence

from sentinel.detection.domain.accounts import CLEARABLE, Account, AccountRepository, AccountStatus
from sentinel.detection.domain.clock import Clock, utcnow
from sentinel.detection.domain.config import DetectionConfig
from sentinel.detection.domain.errors import FlaggedAccountNotFound, ReviewValidationError
from sentinel.detection.domain.flagging import FlagKindCount, FlagRecord, FlagRepository
from sentinel.obs import metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReviewRecord:
    id: str
    actor_id: str
    reviewer_id: str
    notes: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class FlaggedAccount:
    account: Account
    flags: tuple[FlagRecord, ...]


@dataclass(frozen=True, slots=True)
class FlaggedPage:
    items: tuple[FlaggedAccount, ...]
    total: int
    limit: int
    offset: int


@dataclass(frozen=True, slots=True)
class FlagStatistics:
    flagged_accounts: int
    by_kind: tuple[FlagKindCount, ...]
    window_hours: int


class ReviewRepository(Protocol):
    async def insert(self, record: ReviewRecord) -> ReviewRecord:
        ...

    async def list_for_actor(self, actor_id: str) -> Sequence[ReviewRecord]:
        ...


class ReviewService:
    """Lists flagged accounts, clears them after review and reports statistics."""

    def __init__(
        self,
        *,
        accounts: AccountRepository,
        flags: FlagRepository,
        reviews: ReviewRepository,
        config: DetectionConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._accounts = accounts
        self._flags = flags
        self._reviews = reviews
        self._config = config or DetectionConfig()
        self._clock = clock

    def _page_bounds(self, limit: int | None, offset: int | None) -> tuple[int, int]:
        size = self._config.flagged_page_default if limit is None else limit
        size = max(1, min(size, self._config.flagged_page_max))
        return size, max(0, offset or 0)

    async def list_flagged(self, *, limit: int | None = None, offset: int | None = None) -> FlaggedPage:
        size, start = self._page_bounds(limit, offset)
        accounts = await self._accounts.list_by_status(AccountStatus.FLAGGED, limit=size, offset=start)
        total = await self._accounts.count_by_status(AccountStatus.FLAGGED)
        items = []
        for account in accounts:
            flags = await self._flags.recent_for_actor(account.id, self._config.recent_flags_per_account)
            items.append(FlaggedAccount(account=account, flags=tuple(flags)))
        return FlaggedPage(items=tuple(items), total=total, limit=size, offset=start)

    async def clear_flags(self, actor_id: str, reviewer_id: str, notes: str) -> ReviewRecord:
        """Return a flagged account to active and record who reviewed it.

        Clearing an account that is already active only adds another review
        record. Suspended, deleted and pending accounts are outside this
        workflow. Prior flags are left in place as the audit trail.
        """

        if not (actor_id or "").strip():
            raise ReviewValidationError("actor_id_required")
        if not (reviewer_id or "").strip():
            raise ReviewValidationError("reviewer_id_required")
        cleaned = (notes or "").strip()
        if not cleaned:
            raise ReviewValidationError("review_notes_required")
        if len(cleaned) > self._config.review_notes_max_length:
            raise ReviewValidationError("review_notes_too_long")

        account = await self._accounts.get(actor_id)
        if account is None or account.status not in CLEARABLE:
            raise FlaggedAccountNotFound()

        now = self._clock()
        # conditional write; a suspension landing after the read wins
        if not await self._accounts.mark_active(actor_id, now):
            raise FlaggedAccountNotFound()
        record = await self._reviews.insert(
            ReviewRecord(
                id=str(uuid.uuid4()),
                actor_id=actor_id,
                reviewer_id=reviewer_id,
                notes=cleaned,
                created_at=now,
            )
        )
        metrics.review_completed()
        logger.info("flags_cleared", extra={"actor": actor_id, "reviewer": reviewer_id})
        return record

    async def statistics(self) -> FlagStatistics:
        hours = self._config.stats_window_hours
        since = self._clock() - timedelta(hours=hours)
        flagged = await self._accounts.count_by_status(AccountStatus.FLAGGED)
        by_kind = await self._flags.counts_by_kind(since)
        return FlagStatistics(flagged_accounts=flagged, by_kind=tuple(by_kind), window_hours=hours)


class InMemoryReviewRepository(ReviewRepository):
    """Simple repository implementation for development and tests."""

    def __init__(self) -> None:
        self.records: list[ReviewRecord] = []

    async def insert(self, record: ReviewRecord) -> ReviewRecord:
        self.records.append(record)
        return record

    async def list_for_actor(self, actor_id: str) -> Sequence[ReviewRecord]:
        return [item for item in self.records if item.actor_id == actor_id]

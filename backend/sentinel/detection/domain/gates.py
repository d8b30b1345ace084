"""Pre-commit gates that reject a create before anything is persisted."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from sentinel.detection.domain.activity import ActionKind
from sentinel.detection.domain.clock import Clock, utcnow
from sentinel.detection.domain.errors import DetectionUnavailable, UploadLimitReached
from sentinel.detection.domain.windows import WindowCounter
from sentinel.obs import metrics

logger = logging.getLogger(__name__)


def _next_utc_midnight(now: datetime) -> datetime:
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today + timedelta(days=1)


class NewAccountUploadQuota:
    """Caps daily uploads for accounts younger than ``account_days``."""

    def __init__(
        self,
        counters: WindowCounter,
        *,
        account_days: int = 7,
        daily_limit: int = 10,
        clock: Clock = utcnow,
    ) -> None:
        self._counters = counters
        self._account_days = account_days
        self._daily_limit = daily_limit
        self._clock = clock

    def is_new_account(self, created_at: datetime) -> bool:
        return self._clock() - created_at < timedelta(days=self._account_days)

    async def enforce(self, actor_id: str, account_created_at: datetime) -> None:
        if not self.is_new_account(account_created_at):
            return
        now = self._clock()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        try:
            count = await self._counters.count_since(actor_id, ActionKind.RESOURCE_CREATED, midnight)
        except DetectionUnavailable as exc:
            logger.warning("upload_quota_fail_open", extra={"actor": actor_id, "reason": exc.reason})
            return
        if count >= self._daily_limit:
            retry_after = max(1, math.ceil((_next_utc_midnight(now) - now).total_seconds()))
            metrics.gate_rejected("new_account_upload_limit")
            raise UploadLimitReached(count=count, limit=self._daily_limit, retry_after=retry_after)

"""Call sites wired into the create, login and signup flows.

Each flow gets distinct pre-commit and post-commit hooks. The duplicate
content gate must observe the index before the new resource is recorded, and
the rapid submission check must count the resource that was just created, so
the two never share a single "run every detector" pass.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional, cast

from sentinel.detection.domain.activity import ActionKind, ActivityLogger, UNKNOWN
from sentinel.detection.domain.detectors import DetectorSuite
from sentinel.detection.domain.errors import DetectionError, DuplicateContentRejected, SignupBlocked
from sentinel.detection.domain.fingerprints import FingerprintIndex
from sentinel.detection.domain.flagging import FlaggingEngine, FlagRecord
from sentinel.detection.domain.gates import NewAccountUploadQuota
from sentinel.detection.domain.verdicts import DuplicateContentEvidence
from sentinel.obs import metrics

logger = logging.getLogger(__name__)


class ArtworkSubmissionGuard:
    def __init__(
        self,
        *,
        detectors: DetectorSuite,
        engine: FlaggingEngine,
        activity: ActivityLogger,
        fingerprints: FingerprintIndex,
        quota: NewAccountUploadQuota | None = None,
    ) -> None:
        self._detectors = detectors
        self._engine = engine
        self._activity = activity
        self._fingerprints = fingerprints
        self._quota = quota

    async def before_create(
        self,
        actor_id: str,
        fingerprint: str,
        *,
        account_created_at: Optional[datetime] = None,
    ) -> None:
        """Reject the submission outright; nothing has been persisted yet."""

        if self._quota is not None and account_created_at is not None:
            await self._quota.enforce(actor_id, account_created_at)
        verdict = await self._detectors.duplicate_content(actor_id, fingerprint)
        if verdict is None:
            return
        await self._engine.raise_verdict(actor_id, verdict)
        metrics.duplicate_rejected()
        evidence = cast(DuplicateContentEvidence, verdict.evidence)
        raise DuplicateContentRejected(list(evidence.matched_resource_ids))

    async def after_create(
        self,
        actor_id: str,
        resource_id: str,
        fingerprint: str,
        *,
        origin: str = UNKNOWN,
        user_agent: str = UNKNOWN,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[FlagRecord]:
        """Record the committed resource, then flag bursts of submissions.

        The create has already succeeded; a rapid submission verdict only
        flags the account.
        """

        await self._activity.log(
            action=ActionKind.RESOURCE_CREATED,
            actor_id=actor_id,
            origin=origin,
            user_agent=user_agent,
            entity_type="artwork",
            entity_id=resource_id,
            metadata=metadata,
        )
        try:
            await self._fingerprints.remember(actor_id, fingerprint, resource_id)
        except DetectionError as exc:
            logger.warning("fingerprint_record_failed", extra={"actor": actor_id, "reason": exc.reason})
        verdict = await self._detectors.rapid_submission(actor_id)
        if verdict is None:
            return None
        return await self._engine.raise_verdict(actor_id, verdict)


class ContainerCreationGuard:
    def __init__(self, *, detectors: DetectorSuite, engine: FlaggingEngine, activity: ActivityLogger) -> None:
        self._detectors = detectors
        self._engine = engine
        self._activity = activity

    async def after_create(
        self,
        actor_id: str,
        container_id: str,
        *,
        origin: str = UNKNOWN,
        user_agent: str = UNKNOWN,
    ) -> Optional[FlagRecord]:
        await self._activity.log(
            action=ActionKind.CONTAINER_CREATED,
            actor_id=actor_id,
            origin=origin,
            user_agent=user_agent,
            entity_type="gallery",
            entity_id=container_id,
        )
        verdict = await self._detectors.bulk_container_creation(actor_id)
        if verdict is None:
            return None
        return await self._engine.raise_verdict(actor_id, verdict)


class LoginGuard:
    def __init__(
        self,
        *,
        detectors: DetectorSuite,
        engine: FlaggingEngine,
        activity: ActivityLogger,
        signup_retry_after: int = 900,
    ) -> None:
        self._detectors = detectors
        self._engine = engine
        self._activity = activity
        self._signup_retry_after = signup_retry_after

    async def before_signup(self, origin: str) -> None:
        """Refuse new accounts from an origin with a burst of failed logins."""

        verdict = await self._detectors.repeated_auth_failure(origin)
        if verdict is None:
            return
        metrics.gate_rejected("repeated_auth_failure")
        raise SignupBlocked(retry_after=self._signup_retry_after)

    async def after_signup(self, actor_id: str, *, origin: str = UNKNOWN, user_agent: str = UNKNOWN) -> None:
        await self._activity.log(
            action=ActionKind.SIGNUP,
            actor_id=actor_id,
            origin=origin,
            user_agent=user_agent,
            entity_type="user",
            entity_id=actor_id,
        )

    async def after_login(
        self,
        actor_id: str,
        *,
        origin: str = UNKNOWN,
        user_agent: str = UNKNOWN,
    ) -> Optional[FlagRecord]:
        # History is read before this login is appended.
        verdict = await self._detectors.new_origin_login(actor_id, origin)
        flag = await self._engine.raise_verdict(actor_id, verdict) if verdict is not None else None
        await self._activity.log(
            action=ActionKind.LOGIN_SUCCESS,
            actor_id=actor_id,
            origin=origin,
            user_agent=user_agent,
            entity_type="user",
            entity_id=actor_id,
        )
        return flag

    async def after_login_failure(
        self,
        actor_id: Optional[str],
        *,
        origin: str = UNKNOWN,
        user_agent: str = UNKNOWN,
    ) -> None:
        await self._activity.log(
            action=ActionKind.LOGIN_FAILURE,
            actor_id=actor_id,
            origin=origin,
            user_agent=user_agent,
        )

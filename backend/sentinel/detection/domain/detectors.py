"""Detectors for each suspicious activity pattern.

Every detector turns window counts or fingerprint lookups into an optional
:class:`Verdict`. Store failures never escape: the detector records the
failure and answers "not suspicious" so the triggering action proceeds.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from sentinel.detection.domain.activity import LOGIN_ACTIONS, ActionKind
from sentinel.detection.domain.config import DetectionConfig
from sentinel.detection.domain.errors import DetectionUnavailable
from sentinel.detection.domain.fingerprints import FingerprintIndex
from sentinel.detection.domain.verdicts import (
    AuthFailureEvidence,
    BulkContainerEvidence,
    DuplicateContentEvidence,
    FlagKind,
    NewOriginEvidence,
    RapidSubmissionEvidence,
    Severity,
    Verdict,
)
from sentinel.detection.domain.windows import WindowCounter
from sentinel.obs import metrics

logger = logging.getLogger(__name__)


class DetectorSuite:
    """Bundles the detectors around shared counters and configuration."""

    def __init__(
        self,
        *,
        counters: WindowCounter,
        fingerprints: FingerprintIndex,
        config: DetectionConfig | None = None,
    ) -> None:
        self._counters = counters
        self._fingerprints = fingerprints
        self._config = config or DetectionConfig()

    async def rapid_submission(self, actor_id: str) -> Optional[Verdict]:
        threshold = self._config.rapid_submission

        async def _check() -> Optional[Verdict]:
            count = await self._counters.count_recent_actions(actor_id, ActionKind.RESOURCE_CREATED, threshold.window)
            if count <= threshold.limit:
                return None
            return Verdict(
                kind=FlagKind.RAPID_SUBMISSION,
                severity=Severity.HIGH,
                evidence=RapidSubmissionEvidence(
                    count=count,
                    threshold=threshold.limit,
                    window_seconds=threshold.seconds,
                ),
            )

        return await self._evaluate(FlagKind.RAPID_SUBMISSION, _check)

    async def duplicate_content(self, actor_id: str, fingerprint: str) -> Optional[Verdict]:
        async def _check() -> Optional[Verdict]:
            matches = await self._fingerprints.find_duplicates(actor_id, fingerprint)
            if not matches:
                return None
            return Verdict(
                kind=FlagKind.DUPLICATE_CONTENT,
                severity=Severity.MEDIUM,
                evidence=DuplicateContentEvidence(
                    fingerprint=fingerprint.strip().lower(),
                    matched_resource_ids=tuple(matches),
                ),
            )

        return await self._evaluate(FlagKind.DUPLICATE_CONTENT, _check)

    async def bulk_container_creation(self, actor_id: str) -> Optional[Verdict]:
        threshold = self._config.bulk_containers

        async def _check() -> Optional[Verdict]:
            count = await self._counters.count_recent_actions(actor_id, ActionKind.CONTAINER_CREATED, threshold.window)
            if count <= threshold.limit:
                return None
            return Verdict(
                kind=FlagKind.BULK_CONTAINER_CREATION,
                severity=Severity.LOW,
                evidence=BulkContainerEvidence(
                    count=count,
                    threshold=threshold.limit,
                    window_seconds=threshold.seconds,
                ),
            )

        return await self._evaluate(FlagKind.BULK_CONTAINER_CREATION, _check)

    async def new_origin_login(self, actor_id: str, origin: str) -> Optional[Verdict]:
        """Compare ``origin`` against the actor's recent distinct login origins.

        Must run before the current login is appended, otherwise the origin
        always looks known. An empty history never yields a verdict.
        """

        async def _check() -> Optional[Verdict]:
            known = await self._counters.recent_origins(
                actor_id,
                LOGIN_ACTIONS,
                self._config.new_origin_history_size,
            )
            if not known or origin in known:
                return None
            return Verdict(
                kind=FlagKind.NEW_ORIGIN_LOGIN,
                severity=Severity.LOW,
                evidence=NewOriginEvidence(origin=origin, known_origins=tuple(known)),
            )

        return await self._evaluate(FlagKind.NEW_ORIGIN_LOGIN, _check)

    async def repeated_auth_failure(self, origin: str) -> Optional[Verdict]:
        threshold = self._config.auth_failures

        async def _check() -> Optional[Verdict]:
            count = await self._counters.count_recent_from_origin(origin, ActionKind.LOGIN_FAILURE, threshold.window)
            if count < threshold.limit:
                return None
            return Verdict(
                kind=FlagKind.REPEATED_AUTH_FAILURE,
                severity=Severity.MEDIUM,
                evidence=AuthFailureEvidence(
                    origin=origin,
                    count=count,
                    threshold=threshold.limit,
                    window_seconds=threshold.seconds,
                ),
            )

        return await self._evaluate(FlagKind.REPEATED_AUTH_FAILURE, _check)

    async def _evaluate(
        self,
        kind: FlagKind,
        check: Callable[[], Awaitable[Optional[Verdict]]],
    ) -> Optional[Verdict]:
        try:
            verdict = await check()
        except DetectionUnavailable as exc:
            metrics.detector_outcome(kind.value, "unavailable")
            logger.warning("detector_fail_open", extra={"detector": kind.value, "reason": exc.reason})
            return None
        metrics.detector_outcome(kind.value, "detected" if verdict else "clear")
        return verdict

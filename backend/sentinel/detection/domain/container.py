"""Lightweight service container shared by detection modules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import asyncpg
from redis.asyncio import Redis

from sentinel.detection.domain.accounts import AccountRepository, InMemoryAccountRepository
from sentinel.detection.domain.activity import ActivityLogger, ActivityRepository, InMemoryActivityRepository
from sentinel.detection.domain.clock import Clock, utcnow
from sentinel.detection.domain.config import DetectionConfig
from sentinel.detection.domain.detectors import DetectorSuite
from sentinel.detection.domain.fingerprints import (
    FingerprintIndex,
    FingerprintRepository,
    InMemoryFingerprintRepository,
)
from sentinel.detection.domain.flagging import FlaggingEngine, FlagRepository, InMemoryFlagRepository
from sentinel.detection.domain.gates import NewAccountUploadQuota
from sentinel.detection.domain.hooks import ArtworkSubmissionGuard, ContainerCreationGuard, LoginGuard
from sentinel.detection.domain.locks import ActorLock, LocalActorLock
from sentinel.detection.domain.review import InMemoryReviewRepository, ReviewRepository, ReviewService
from sentinel.detection.domain.windows import WindowCounter
from sentinel.detection.infra.locks import RedisActorLock
from sentinel.detection.infra.postgres_repo import (
    PostgresAccountRepository,
    PostgresActivityRepository,
    PostgresFingerprintRepository,
    PostgresFlagRepository,
    PostgresReviewRepository,
)
from sentinel.infra.redis import RedisProxy
from sentinel.settings import settings


@dataclass(slots=True)
class DetectionServices:
    config: DetectionConfig
    accounts: AccountRepository
    activity_repository: ActivityRepository
    flags: FlagRepository
    reviews: ReviewRepository
    activity: ActivityLogger
    counters: WindowCounter
    fingerprints: FingerprintIndex
    detectors: DetectorSuite
    engine: FlaggingEngine
    review: ReviewService
    artworks: ArtworkSubmissionGuard
    galleries: ContainerCreationGuard
    logins: LoginGuard


def build_services(
    *,
    config: Optional[DetectionConfig] = None,
    accounts: Optional[AccountRepository] = None,
    activity_repository: Optional[ActivityRepository] = None,
    fingerprint_repository: Optional[FingerprintRepository] = None,
    flags: Optional[FlagRepository] = None,
    reviews: Optional[ReviewRepository] = None,
    lock: Optional[ActorLock] = None,
    clock: Clock = utcnow,
) -> DetectionServices:
    config = config or DetectionConfig.from_settings(settings)
    accounts = accounts or InMemoryAccountRepository()
    activity_repository = activity_repository or InMemoryActivityRepository()
    fingerprint_repository = fingerprint_repository or InMemoryFingerprintRepository()
    flags = flags or InMemoryFlagRepository()
    reviews = reviews or InMemoryReviewRepository()
    timeout = config.store_timeout_seconds

    activity = ActivityLogger(activity_repository, clock=clock)
    counters = WindowCounter(activity_repository, clock=clock, timeout=timeout)
    fingerprints = FingerprintIndex(
        fingerprint_repository,
        clock=clock,
        limit=config.duplicate_match_limit,
        timeout=timeout,
    )
    detectors = DetectorSuite(counters=counters, fingerprints=fingerprints, config=config)
    engine = FlaggingEngine(
        flags=flags,
        accounts=accounts,
        lock=lock or LocalActorLock(),
        clock=clock,
        cooldown=config.flag_cooldown,
        timeout=timeout,
    )
    quota = NewAccountUploadQuota(
        counters,
        account_days=config.new_account_days,
        daily_limit=config.new_account_daily_upload_limit,
        clock=clock,
    )
    return DetectionServices(
        config=config,
        accounts=accounts,
        activity_repository=activity_repository,
        flags=flags,
        reviews=reviews,
        activity=activity,
        counters=counters,
        fingerprints=fingerprints,
        detectors=detectors,
        engine=engine,
        review=ReviewService(accounts=accounts, flags=flags, reviews=reviews, config=config, clock=clock),
        artworks=ArtworkSubmissionGuard(
            detectors=detectors,
            engine=engine,
            activity=activity,
            fingerprints=fingerprints,
            quota=quota,
        ),
        galleries=ContainerCreationGuard(detectors=detectors, engine=engine, activity=activity),
        logins=LoginGuard(
            detectors=detectors,
            engine=engine,
            activity=activity,
            signup_retry_after=config.auth_failures.seconds,
        ),
    )


_services: DetectionServices = build_services()


def configure(services: DetectionServices) -> None:
    global _services
    _services = services


def configure_postgres(pool: asyncpg.Pool, redis_conn: Redis | RedisProxy) -> DetectionServices:
    services = build_services(
        accounts=PostgresAccountRepository(pool),
        activity_repository=PostgresActivityRepository(pool),
        fingerprint_repository=PostgresFingerprintRepository(pool),
        flags=PostgresFlagRepository(pool),
        reviews=PostgresReviewRepository(pool),
        lock=RedisActorLock(
            redis_conn,
            ttl_ms=settings.detection_lock_ttl_ms,
            wait_ms=settings.detection_lock_wait_ms,
        ),
    )
    configure(services)
    return services


def get_services() -> DetectionServices:
    return _services


def get_review_service() -> ReviewService:
    return _services.review


def get_activity_logger() -> ActivityLogger:
    return _services.activity

"""Threshold configuration for the suspicious activity detectors."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from sentinel.settings import Settings


@dataclass(frozen=True, slots=True)
class WindowThreshold:
    """A count limit applied over a trailing window."""

    limit: int
    seconds: int

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            raise ValueError("window_seconds_must_be_positive")
        if self.limit < 0:
            raise ValueError("threshold_must_be_non_negative")

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.seconds)


@dataclass(frozen=True, slots=True)
class DetectionConfig:
    rapid_submission: WindowThreshold = WindowThreshold(limit=5, seconds=60)
    bulk_containers: WindowThreshold = WindowThreshold(limit=10, seconds=3600)
    auth_failures: WindowThreshold = WindowThreshold(limit=5, seconds=900)
    flag_cooldown_seconds: int = 3600
    new_origin_history_size: int = 10
    duplicate_match_limit: int = 10
    new_account_days: int = 7
    new_account_daily_upload_limit: int = 10
    review_notes_max_length: int = 1000
    flagged_page_default: int = 50
    flagged_page_max: int = 200
    recent_flags_per_account: int = 5
    stats_window_hours: int = 24
    store_timeout_seconds: float = 2.0

    @property
    def flag_cooldown(self) -> timedelta:
        return timedelta(seconds=self.flag_cooldown_seconds)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DetectionConfig":
        return cls(
            rapid_submission=WindowThreshold(
                limit=settings.rapid_submission_threshold,
                seconds=settings.rapid_submission_window_seconds,
            ),
            bulk_containers=WindowThreshold(
                limit=settings.bulk_container_threshold,
                seconds=settings.bulk_container_window_seconds,
            ),
            auth_failures=WindowThreshold(
                limit=settings.auth_failure_threshold,
                seconds=settings.auth_failure_window_seconds,
            ),
            flag_cooldown_seconds=settings.flag_cooldown_seconds,
            new_origin_history_size=settings.new_origin_history_size,
            duplicate_match_limit=settings.duplicate_match_limit,
            new_account_days=settings.new_account_days,
            new_account_daily_upload_limit=settings.new_account_daily_upload_limit,
            review_notes_max_length=settings.review_notes_max_length,
            flagged_page_default=settings.flagged_page_default,
            flagged_page_max=settings.flagged_page_max,
            stats_window_hours=settings.stats_window_hours,
            store_timeout_seconds=settings.detection_store_timeout_seconds,
        )

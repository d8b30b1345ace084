"""Exceptions raised across the suspicious activity detection boundary."""

from __future__ import annotations


class DetectionError(Exception):
    """Raised for detection failures with optional HTTP status mapping."""

    def __init__(self, reason: str, *, status_code: int = 400, retry_after: int | None = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.retry_after = retry_after


class DetectionUnavailable(DetectionError):
    """Transient store failure; callers treat the signal as absent."""

    def __init__(self, reason: str = "store_unavailable") -> None:
        super().__init__(reason, status_code=503)


class DuplicateContentRejected(DetectionError):
    def __init__(self, matched_resource_ids: list[str]) -> None:
        super().__init__("duplicate_content", status_code=409)
        self.matched_resource_ids = list(matched_resource_ids)


class InvalidFingerprint(DetectionError):
    def __init__(self) -> None:
        super().__init__("invalid_fingerprint", status_code=400)


class SignupBlocked(DetectionError):
    def __init__(self, retry_after: int) -> None:
        super().__init__("too_many_failed_logins", status_code=429, retry_after=retry_after)


class UploadLimitReached(DetectionError):
    def __init__(self, count: int, limit: int, retry_after: int) -> None:
        super().__init__("new_account_upload_limit", status_code=429, retry_after=retry_after)
        self.count = count
        self.limit = limit


class ReviewValidationError(DetectionError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason, status_code=400)


class FlaggedAccountNotFound(DetectionError):
    def __init__(self) -> None:
        super().__init__("flagged_user_not_found", status_code=404)

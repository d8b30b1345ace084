"""Staff endpoints for reviewing accounts flagged by the detectors."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sentinel.detection.domain.container import get_activity_logger, get_review_service
from sentinel.detection.domain.flagging import FlagRecord
from sentinel.detection.domain.review import FlaggedAccount
from sentinel.detection.domain.verdicts import evidence_to_payload
from sentinel.infra.auth import StaffPrincipal, require_admin

router = APIRouter(prefix="/api/admin/suspicious", tags=["admin-suspicious"])


class FlagOut(BaseModel):
    id: str
    kind: str
    severity: str
    evidence: dict[str, Any]
    detected_at: str

    @classmethod
    def from_domain(cls, record: FlagRecord) -> "FlagOut":
        return cls(
            id=record.id,
            kind=record.kind.value,
            severity=record.severity.value,
            evidence=evidence_to_payload(record.evidence),
            detected_at=record.detected_at.isoformat(),
        )


class FlaggedUserOut(BaseModel):
    user_id: str
    display_name: str | None
    flagged_at: str
    flags: list[FlagOut]

    @classmethod
    def from_domain(cls, item: FlaggedAccount) -> "FlaggedUserOut":
        return cls(
            user_id=item.account.id,
            display_name=item.account.display_name,
            flagged_at=item.account.updated_at.isoformat(),
            flags=[FlagOut.from_domain(flag) for flag in item.flags],
        )


class PaginationOut(BaseModel):
    limit: int
    offset: int
    total: int


class FlaggedListOut(BaseModel):
    users: list[FlaggedUserOut]
    pagination: PaginationOut


class ClearFlagsIn(BaseModel):
    review_notes: str = ""


class ClearFlagsOut(BaseModel):
    user_id: str
    status: str
    cleared_by: str
    review_id: str


class FlagKindCountOut(BaseModel):
    kind: str
    severity: str
    count: int


class StatsOut(BaseModel):
    flagged_users: int
    recent_flags: list[FlagKindCountOut]
    window_hours: int


class OriginUsageOut(BaseModel):
    origin: str
    last_used: str
    count: int


class ActivityOut(BaseModel):
    user_id: str
    summary: dict[str, int]
    recent_origins: list[OriginUsageOut]


@router.get("/flagged", response_model=FlaggedListOut)
async def list_flagged(
    *,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _: StaffPrincipal = Depends(require_admin),
) -> FlaggedListOut:
    page = await get_review_service().list_flagged(limit=limit, offset=offset)
    return FlaggedListOut(
        users=[FlaggedUserOut.from_domain(item) for item in page.items],
        pagination=PaginationOut(limit=page.limit, offset=page.offset, total=page.total),
    )


@router.post("/{user_id}/clear", response_model=ClearFlagsOut)
async def clear_flags(
    user_id: str,
    payload: ClearFlagsIn,
    admin: StaffPrincipal = Depends(require_admin),
) -> ClearFlagsOut:
    review = await get_review_service().clear_flags(user_id, admin.id, payload.review_notes)
    return ClearFlagsOut(user_id=user_id, status="active", cleared_by=admin.id, review_id=review.id)


@router.get("/stats", response_model=StatsOut)
async def flag_stats(_: StaffPrincipal = Depends(require_admin)) -> StatsOut:
    stats = await get_review_service().statistics()
    return StatsOut(
        flagged_users=stats.flagged_accounts,
        recent_flags=[
            FlagKindCountOut(kind=item.kind.value, severity=item.severity.value, count=item.count)
            for item in stats.by_kind
        ],
        window_hours=stats.window_hours,
    )


@router.get("/users/{user_id}/activity", response_model=ActivityOut)
async def user_activity(
    user_id: str,
    days: int = Query(default=30, ge=1, le=365),
    _: StaffPrincipal = Depends(require_admin),
) -> ActivityOut:
    activity = get_activity_logger()
    summary = await activity.summary(user_id, days=days)
    origins = await activity.recent_origins(user_id, limit=10)
    return ActivityOut(
        user_id=user_id,
        summary=summary,
        recent_origins=[
            OriginUsageOut(origin=item.origin, last_used=item.last_used.isoformat(), count=item.count)
            for item in origins
        ],
    )

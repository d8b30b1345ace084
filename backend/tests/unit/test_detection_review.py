from dataclasses import replace

import pytest

from sentinel.detection.domain.accounts import Account, AccountStatus, InMemoryAccountRepository
from sentinel.detection.domain.errors import FlaggedAccountNotFound, ReviewValidationError
from sentinel.detection.domain.flagging import InMemoryFlagRepository
from sentinel.detection.domain.review import InMemoryReviewRepository, ReviewService
from sentinel.detection.domain.verdicts import (
    BulkContainerEvidence,
    FlagKind,
    NewOriginEvidence,
    RapidSubmissionEvidence,
    Severity,
)

RAPID = RapidSubmissionEvidence(count=6, threshold=5, window_seconds=60)


async def _flag(services, actor_id: str) -> None:
    await services.engine.raise_flag(actor_id, FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID)


@pytest.mark.asyncio
async def test_clear_flags_restores_active_and_keeps_history(services, clock) -> None:
    await _flag(services, "u1")
    clock.advance(minutes=5)

    review = await services.review.clear_flags("u1", "admin-1", "  ok  ")

    account = await services.accounts.get("u1")
    assert account.status is AccountStatus.ACTIVE
    assert account.updated_at == clock()
    assert review.notes == "ok"
    assert review.reviewer_id == "admin-1"
    assert [item.id for item in await services.reviews.list_for_actor("u1")] == [review.id]
    assert len(await services.flags.recent_for_actor("u1", 10)) == 1


@pytest.mark.asyncio
async def test_clearing_active_account_adds_review_only(services) -> None:
    await services.review.clear_flags("u2", "admin-1", "looked fine")
    await services.review.clear_flags("u2", "admin-2", "still fine")

    assert (await services.accounts.get("u2")).status is AccountStatus.ACTIVE
    assert len(await services.reviews.list_for_actor("u2")) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("actor_id", "reviewer_id", "notes", "reason"),
    [
        ("", "admin-1", "ok", "actor_id_required"),
        ("u1", " ", "ok", "reviewer_id_required"),
        ("u1", "admin-1", "   ", "review_notes_required"),
        ("u1", "admin-1", "x" * 1001, "review_notes_too_long"),
    ],
)
async def test_clear_flags_validation(services, actor_id, reviewer_id, notes, reason) -> None:
    await _flag(services, "u1")

    with pytest.raises(ReviewValidationError) as exc:
        await services.review.clear_flags(actor_id, reviewer_id, notes)

    assert exc.value.reason == reason
    assert exc.value.status_code == 400
    assert (await services.accounts.get("u1")).status is AccountStatus.FLAGGED
    assert services.reviews.records == []


@pytest.mark.asyncio
async def test_clear_flags_unknown_or_suspended_account(services, accounts, clock) -> None:
    accounts.add(Account(id="u9", status=AccountStatus.SUSPENDED, created_at=clock(), updated_at=clock()))

    with pytest.raises(FlaggedAccountNotFound):
        await services.review.clear_flags("nobody", "admin-1", "ok")
    with pytest.raises(FlaggedAccountNotFound):
        await services.review.clear_flags("u9", "admin-1", "ok")
    assert (await accounts.get("u9")).status is AccountStatus.SUSPENDED


@pytest.mark.asyncio
async def test_list_flagged_pages_and_attaches_recent_flags(services, clock) -> None:
    for actor_id in ("u1", "u2", "u3"):
        await _flag(services, actor_id)
        clock.advance(minutes=1)
    for index in range(6):
        await services.engine.raise_flag(
            "u3",
            FlagKind.NEW_ORIGIN_LOGIN,
            Severity.LOW,
            NewOriginEvidence(origin=f"10.0.0.{index}", known_origins=("1.1.1.1",)),
        )
        clock.advance(hours=2)

    page = await services.review.list_flagged(limit=2, offset=0)

    assert page.total == 3
    assert page.limit == 2
    assert [item.account.id for item in page.items] == ["u3", "u2"]
    assert len(page.items[0].flags) == 5
    assert page.items[0].flags[0].detected_at > page.items[0].flags[-1].detected_at

    rest = await services.review.list_flagged(limit=2, offset=2)
    assert [item.account.id for item in rest.items] == ["u1"]


@pytest.mark.asyncio
async def test_list_flagged_clamps_page_size(services) -> None:
    assert (await services.review.list_flagged()).limit == 50
    assert (await services.review.list_flagged(limit=1000)).limit == 200
    assert (await services.review.list_flagged(limit=0, offset=-3)).limit == 1
    assert (await services.review.list_flagged(limit=0, offset=-3)).offset == 0


@pytest.mark.asyncio
async def test_statistics_cover_trailing_day(services, clock) -> None:
    await _flag(services, "u1")
    clock.advance(hours=25)
    await _flag(services, "u2")
    await services.engine.raise_flag(
        "u3",
        FlagKind.BULK_CONTAINER_CREATION,
        Severity.LOW,
        BulkContainerEvidence(count=11, threshold=10, window_seconds=3600),
    )

    stats = await services.review.statistics()

    assert stats.flagged_accounts == 2
    assert stats.window_hours == 24
    assert [(item.kind, item.severity, item.count) for item in stats.by_kind] == [
        (FlagKind.BULK_CONTAINER_CREATION, Severity.LOW, 1),
        (FlagKind.RAPID_SUBMISSION, Severity.HIGH, 1),
    ]


class SuspendedAfterRead(InMemoryAccountRepository):
    """Serves a flagged snapshot while the stored account has since been suspended."""

    async def get(self, actor_id):
        account = await super().get(actor_id)
        return replace(account, status=AccountStatus.FLAGGED) if account else None


@pytest.mark.asyncio
async def test_clear_flags_does_not_reactivate_account_suspended_mid_review(clock) -> None:
    accounts = SuspendedAfterRead()
    accounts.add(Account(id="u1", status=AccountStatus.SUSPENDED, created_at=clock(), updated_at=clock()))
    reviews = InMemoryReviewRepository()
    service = ReviewService(accounts=accounts, flags=InMemoryFlagRepository(), reviews=reviews, clock=clock)

    with pytest.raises(FlaggedAccountNotFound):
        await service.clear_flags("u1", "admin-1", "looked fine")

    assert accounts._items["u1"].status is AccountStatus.SUSPENDED
    assert reviews.records == []

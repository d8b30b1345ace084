import asyncio
from datetime import timedelta

import pytest

from sentinel.detection.domain.accounts import Account, AccountStatus, InMemoryAccountRepository
from sentinel.detection.domain.flagging import FlaggingEngine, InMemoryFlagRepository
from sentinel.detection.domain.locks import LocalActorLock
from sentinel.detection.domain.verdicts import (
    BulkContainerEvidence,
    DuplicateContentEvidence,
    FlagKind,
    RapidSubmissionEvidence,
    Severity,
    Verdict,
    evidence_from_payload,
    evidence_to_payload,
)

RAPID = RapidSubmissionEvidence(count=6, threshold=5, window_seconds=60)


class FailingAccounts(InMemoryAccountRepository):
    async def mark_flagged(self, actor_id, at):
        raise ConnectionError("primary gone")


class FailingFlags(InMemoryFlagRepository):
    async def latest_since(self, actor_id, kind, since):
        raise OSError("timeout")


def _engine(clock, accounts, flags=None) -> tuple[FlaggingEngine, InMemoryFlagRepository]:
    flags = flags or InMemoryFlagRepository()
    return FlaggingEngine(flags=flags, accounts=accounts, clock=clock), flags


@pytest.mark.asyncio
async def test_high_severity_flag_escalates_account(clock, accounts) -> None:
    engine, flags = _engine(clock, accounts)

    record = await engine.raise_flag("u1", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID)

    assert record is not None
    assert record.detected_at == clock()
    assert flags.records == [record]
    account = await accounts.get("u1")
    assert account.status is AccountStatus.FLAGGED
    assert account.updated_at == clock()


@pytest.mark.asyncio
async def test_low_and_medium_flags_do_not_escalate(clock, accounts) -> None:
    engine, flags = _engine(clock, accounts)

    await engine.raise_flag(
        "u1",
        FlagKind.BULK_CONTAINER_CREATION,
        Severity.LOW,
        BulkContainerEvidence(count=11, threshold=10, window_seconds=3600),
    )
    await engine.raise_flag(
        "u1",
        FlagKind.DUPLICATE_CONTENT,
        Severity.MEDIUM,
        DuplicateContentEvidence(fingerprint="ab", matched_resource_ids=("art-1",)),
    )

    assert len(flags.records) == 2
    assert (await accounts.get("u1")).status is AccountStatus.ACTIVE


@pytest.mark.asyncio
async def test_cooldown_suppresses_repeat_flags(clock, accounts) -> None:
    engine, flags = _engine(clock, accounts)

    first = await engine.raise_flag("u1", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID)
    clock.advance(minutes=30)
    assert await engine.raise_flag("u1", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID) is None

    clock.advance(minutes=31)
    second = await engine.raise_flag("u1", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID)

    assert second is not None
    assert [item.id for item in flags.records] == [first.id, second.id]
    assert second.detected_at - first.detected_at == timedelta(minutes=61)


@pytest.mark.asyncio
async def test_cooldown_is_per_actor_and_kind(clock, accounts) -> None:
    engine, flags = _engine(clock, accounts)

    await engine.raise_flag("u1", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID)
    assert await engine.raise_flag("u2", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID) is not None
    other_kind = await engine.raise_flag(
        "u1",
        FlagKind.BULK_CONTAINER_CREATION,
        Severity.LOW,
        BulkContainerEvidence(count=11, threshold=10, window_seconds=3600),
    )

    assert other_kind is not None
    assert len(flags.records) == 3


@pytest.mark.asyncio
async def test_concurrent_qualifying_actions_produce_single_flag(clock, accounts) -> None:
    engine, flags = _engine(clock, accounts)

    results = await asyncio.gather(
        *[engine.raise_flag("u1", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID) for _ in range(5)]
    )

    assert sum(1 for item in results if item is not None) == 1
    assert len(flags.records) == 1


@pytest.mark.asyncio
async def test_local_lock_forgets_keys_once_released(clock, accounts) -> None:
    lock = LocalActorLock()
    engine = FlaggingEngine(flags=InMemoryFlagRepository(), accounts=accounts, lock=lock, clock=clock)

    await asyncio.gather(
        *[engine.raise_flag(actor, FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID) for actor in ("u1", "u2", "u1")]
    )

    assert lock._locks == {}


@pytest.mark.asyncio
async def test_local_lock_serialises_holders_of_one_key() -> None:
    lock = LocalActorLock()
    order: list[str] = []

    async def hold(name: str) -> None:
        async with lock.hold("u1:rapid_submission"):
            order.append(f"{name}:in")
            await asyncio.sleep(0)
            order.append(f"{name}:out")

    await asyncio.gather(hold("a"), hold("b"))

    assert order == ["a:in", "a:out", "b:in", "b:out"]
    assert lock._locks == {}


@pytest.mark.asyncio
async def test_escalation_never_overrides_suspended_account(clock, accounts) -> None:
    suspended = await accounts.get("u3")
    accounts.add(
        Account(
            id="u3",
            status=AccountStatus.SUSPENDED,
            created_at=suspended.created_at,
            updated_at=suspended.updated_at,
        )
    )
    engine, flags = _engine(clock, accounts)

    record = await engine.raise_flag("u3", FlagKind.RAPID_SUBMISSION, Severity.CRITICAL, RAPID)

    assert record is not None
    assert len(flags.records) == 1
    assert (await accounts.get("u3")).status is AccountStatus.SUSPENDED


@pytest.mark.asyncio
async def test_escalation_failure_keeps_flag(clock) -> None:
    engine, flags = _engine(clock, FailingAccounts())

    record = await engine.raise_flag("u1", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID)

    assert record is not None
    assert flags.records == [record]


@pytest.mark.asyncio
async def test_flag_store_failure_fails_open(clock, accounts) -> None:
    engine, _ = _engine(clock, accounts, flags=FailingFlags())

    assert await engine.raise_flag("u1", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID) is None
    assert (await accounts.get("u1")).status is AccountStatus.ACTIVE


@pytest.mark.asyncio
async def test_raise_flag_validates_inputs(clock, accounts) -> None:
    engine, flags = _engine(clock, accounts)

    with pytest.raises(ValueError):
        await engine.raise_flag("", FlagKind.RAPID_SUBMISSION, Severity.HIGH, RAPID)
    with pytest.raises(TypeError):
        await engine.raise_flag("u1", FlagKind.DUPLICATE_CONTENT, Severity.MEDIUM, RAPID)
    assert flags.records == []


@pytest.mark.asyncio
async def test_raise_verdict_delegates(clock, accounts) -> None:
    engine, flags = _engine(clock, accounts)
    verdict = Verdict(kind=FlagKind.RAPID_SUBMISSION, severity=Severity.HIGH, evidence=RAPID)

    record = await engine.raise_verdict("u2", verdict)

    assert record.kind is FlagKind.RAPID_SUBMISSION
    assert record.evidence == RAPID


def test_severity_ordering() -> None:
    assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
    assert max(Severity.MEDIUM, Severity.LOW) is Severity.MEDIUM
    assert [item.escalates for item in Severity] == [False, False, True, True]


def test_verdict_rejects_mismatched_evidence() -> None:
    with pytest.raises(TypeError):
        Verdict(kind=FlagKind.NEW_ORIGIN_LOGIN, severity=Severity.LOW, evidence=RAPID)


def test_evidence_payload_round_trip_keeps_tuples() -> None:
    evidence = DuplicateContentEvidence(fingerprint="abc", matched_resource_ids=("a", "b"))

    payload = evidence_to_payload(evidence)
    assert payload == {"fingerprint": "abc", "matched_resource_ids": ["a", "b"]}
    assert evidence_from_payload(FlagKind.DUPLICATE_CONTENT, payload) == evidence
    with pytest.raises(ValueError):
        evidence_from_payload(FlagKind.RAPID_SUBMISSION, {"count": 1})

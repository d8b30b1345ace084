"""Flag kinds, severities and the per-detector evidence variants."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping, Union


class FlagKind(str, Enum):
    RAPID_SUBMISSION = "rapid_submission"
    DUPLICATE_CONTENT = "duplicate_content"
    BULK_CONTAINER_CREATION = "bulk_container_creation"
    NEW_ORIGIN_LOGIN = "new_origin_login"
    REPEATED_AUTH_FAILURE = "repeated_auth_failure"


_SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    @property
    def escalates(self) -> bool:
        """Whether a flag of this severity alone moves an account to flagged."""

        return self.rank >= _SEVERITY_RANK["high"]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


@dataclass(frozen=True, slots=True)
class RapidSubmissionEvidence:
    count: int
    threshold: int
    window_seconds: int


@dataclass(frozen=True, slots=True)
class DuplicateContentEvidence:
    fingerprint: str
    matched_resource_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class BulkContainerEvidence:
    count: int
    threshold: int
    window_seconds: int


@dataclass(frozen=True, slots=True)
class NewOriginEvidence:
    origin: str
    known_origins: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AuthFailureEvidence:
    origin: str
    count: int
    threshold: int
    window_seconds: int


Evidence = Union[
    RapidSubmissionEvidence,
    DuplicateContentEvidence,
    BulkContainerEvidence,
    NewOriginEvidence,
    AuthFailureEvidence,
]

EVIDENCE_TYPES: dict[FlagKind, type] = {
    FlagKind.RAPID_SUBMISSION: RapidSubmissionEvidence,
    FlagKind.DUPLICATE_CONTENT: DuplicateContentEvidence,
    FlagKind.BULK_CONTAINER_CREATION: BulkContainerEvidence,
    FlagKind.NEW_ORIGIN_LOGIN: NewOriginEvidence,
    FlagKind.REPEATED_AUTH_FAILURE: AuthFailureEvidence,
}


def evidence_to_payload(evidence: Evidence) -> dict[str, Any]:
    payload = asdict(evidence)
    for key, value in payload.items():
        if isinstance(value, tuple):
            payload[key] = list(value)
    return payload


def evidence_from_payload(kind: FlagKind, payload: Mapping[str, Any]) -> Evidence:
    """Rebuild typed evidence for ``kind``; unknown keys are dropped."""

    cls = EVIDENCE_TYPES[kind]
    fields = cls.__dataclass_fields__
    values: dict[str, Any] = {}
    for name in fields:
        if name not in payload:
            raise ValueError(f"evidence_missing_field:{name}")
        value = payload[name]
        values[name] = tuple(value) if isinstance(value, list) else value
    return cls(**values)


@dataclass(frozen=True, slots=True)
class Verdict:
    kind: FlagKind
    severity: Severity
    evidence: Evidence

    def __post_init__(self) -> None:
        if not isinstance(self.evidence, EVIDENCE_TYPES[self.kind]):
            raise TypeError(f"evidence_mismatch:{self.kind.value}")

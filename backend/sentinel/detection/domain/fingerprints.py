"""Per-actor index of content fingerprints for duplicate submission checks."""

from __future__ import annotations

import hashlib
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sentinel.detection.domain.clock import Clock, utcnow
from sentinel.detection.domain.errors import InvalidFingerprint
from sentinel.detection.domain.windows import bounded

_HEX = frozenset(string.hexdigits.lower())
DIGEST_LENGTH = hashlib.sha256().digest_size * 2


def content_fingerprint(payload: bytes) -> str:
    """SHA-256 over raw bytes, as produced by the upload pipeline."""

    return hashlib.sha256(payload).hexdigest()


def normalise_fingerprint(value: str) -> str:
    fingerprint = (value or "").strip().lower()
    if len(fingerprint) != DIGEST_LENGTH or not set(fingerprint) <= _HEX:
        raise InvalidFingerprint()
    return fingerprint


@dataclass(frozen=True, slots=True)
class FingerprintEntry:
    actor_id: str
    fingerprint: str
    resource_id: str
    created_at: datetime


class FingerprintRepository(Protocol):
    async def record(self, entry: FingerprintEntry) -> None:
        ...

    async def find(self, actor_id: str, fingerprint: str, limit: int) -> list[str]:
        ...


class FingerprintIndex:
    """Looks up prior resources an actor submitted with identical bytes.

    Matching is scoped to one actor; the same digest under another actor is
    never reported.
    """

    def __init__(
        self,
        repository: FingerprintRepository,
        *,
        clock: Clock = utcnow,
        limit: int = 10,
        timeout: float = 2.0,
    ) -> None:
        self._repo = repository
        self._clock = clock
        self._limit = limit
        self._timeout = timeout

    async def find_duplicates(self, actor_id: str, fingerprint: str) -> list[str]:
        normalised = normalise_fingerprint(fingerprint)
        matches = await bounded(
            "find_fingerprints",
            self._repo.find(actor_id, normalised, self._limit),
            timeout=self._timeout,
        )
        return list(matches)[: self._limit]

    async def remember(self, actor_id: str, fingerprint: str, resource_id: str) -> None:
        entry = FingerprintEntry(
            actor_id=actor_id,
            fingerprint=normalise_fingerprint(fingerprint),
            resource_id=resource_id,
            created_at=self._clock(),
        )
        await bounded("record_fingerprint", self._repo.record(entry), timeout=self._timeout)


class InMemoryFingerprintRepository(FingerprintRepository):
    """Simple repository implementation for development and tests."""

    def __init__(self) -> None:
        self.entries: list[FingerprintEntry] = []

    async def record(self, entry: FingerprintEntry) -> None:
        self.entries.append(entry)

    async def find(self, actor_id: str, fingerprint: str, limit: int) -> list[str]:
        matches = [
            entry
            for entry in self.entries
            if entry.actor_id == actor_id and entry.fingerprint == fingerprint
        ]
        matches.sort(key=lambda entry: entry.created_at, reverse=True)
        return [entry.resource_id for entry in matches[:limit]]

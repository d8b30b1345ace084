import pytest

from sentinel.detection.domain.errors import InvalidFingerprint
from sentinel.detection.domain.fingerprints import (
    FingerprintIndex,
    InMemoryFingerprintRepository,
    content_fingerprint,
    normalise_fingerprint,
)

DIGEST = content_fingerprint(b"same pixels")


def test_content_fingerprint_is_sha256_hex() -> None:
    assert content_fingerprint(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert len(DIGEST) == 64


def test_normalise_fingerprint_lowercases_and_validates() -> None:
    assert normalise_fingerprint(f"  {DIGEST.upper()} ") == DIGEST
    for value in ("", "not-a-digest", "ab", DIGEST[:-1], DIGEST + "0"):
        with pytest.raises(InvalidFingerprint):
            normalise_fingerprint(value)


@pytest.mark.asyncio
async def test_duplicates_are_scoped_to_actor(clock) -> None:
    index = FingerprintIndex(InMemoryFingerprintRepository(), clock=clock)

    await index.remember("u1", DIGEST, "art-1")

    assert await index.find_duplicates("u1", DIGEST) == ["art-1"]
    assert await index.find_duplicates("u2", DIGEST) == []
    assert await index.find_duplicates("u1", content_fingerprint(b"other")) == []


@pytest.mark.asyncio
async def test_duplicates_are_newest_first_and_bounded(clock) -> None:
    index = FingerprintIndex(InMemoryFingerprintRepository(), clock=clock, limit=2)

    for resource_id in ("art-1", "art-2", "art-3"):
        await index.remember("u1", DIGEST, resource_id)
        clock.advance(seconds=5)

    assert await index.find_duplicates("u1", DIGEST.upper()) == ["art-3", "art-2"]

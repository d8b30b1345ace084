"""HS256 staff tokens accepted by the admin review API."""

from __future__ import annotations

import time
from typing import Any, Mapping

import jwt

from sentinel.settings import settings

ISSUER = "gallery-api"
AUDIENCE = "gallery-admin"
_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "exp", "iat"]


def issue_staff_token(claims: Mapping[str, Any], *, ttl_seconds: int = 3600) -> str:
    issued_at = int(time.time())
    token_claims: dict[str, Any] = {
        "iss": ISSUER,
        "aud": AUDIENCE,
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
        **claims,
    }
    return jwt.encode(token_claims, settings.secret_key, algorithm=_ALGORITHM)


def read_staff_token(token: str) -> dict[str, Any]:
    """Verify signature, expiry, issuer and audience; raises ``jwt.InvalidTokenError``."""
    return jwt.decode(
        token,
        key=settings.secret_key,
        algorithms=[_ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        options={"require": _REQUIRED_CLAIMS},
    )

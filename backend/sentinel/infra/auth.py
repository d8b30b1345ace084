"""Staff identity for the admin endpoints.

A signed bearer token is always accepted. Development environments also
trust ``X-User-Id`` / ``X-User-Roles`` so local tooling can call the API
without minting tokens.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError

from sentinel.infra.jwt import read_staff_token
from sentinel.settings import settings

ADMIN_ROLE = "admin"

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True, slots=True)
class StaffPrincipal:
    id: str
    roles: frozenset[str] = frozenset()
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


def _unauthorized() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def _roles(raw: Any) -> frozenset[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(str(item).strip() for item in raw if str(item).strip())


def principal_from_claims(claims: Mapping[str, Any]) -> StaffPrincipal:
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise _unauthorized()
    name = claims.get("name")
    return StaffPrincipal(
        id=subject,
        roles=_roles(claims.get("roles", claims.get("role"))),
        display_name=str(name) if name is not None else None,
    )


async def current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
) -> StaffPrincipal:
    if credentials is not None:
        try:
            return principal_from_claims(read_staff_token(credentials.credentials))
        except InvalidTokenError:
            raise _unauthorized()
    if x_user_id and settings.is_dev():
        return StaffPrincipal(id=x_user_id, roles=_roles(x_user_roles))
    raise _unauthorized()


async def require_admin(principal: StaffPrincipal = Depends(current_principal)) -> StaffPrincipal:
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")
    return principal

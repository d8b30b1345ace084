"""Account status store as seen by the detection subsystem."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, Sequence


class AccountStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    FLAGGED = "flagged"
    SUSPENDED = "suspended"
    DELETED = "deleted"


# Statuses an automatic flag never overrides.
ESCALATION_EXEMPT: frozenset[AccountStatus] = frozenset({AccountStatus.SUSPENDED, AccountStatus.DELETED})

# Statuses a staff review may reset to active.
CLEARABLE: frozenset[AccountStatus] = frozenset({AccountStatus.FLAGGED, AccountStatus.ACTIVE})


@dataclass(frozen=True, slots=True)
class Account:
    id: str
    status: AccountStatus
    created_at: datetime
    updated_at: datetime
    display_name: Optional[str] = None


class AccountRepository(Protocol):
    async def get(self, actor_id: str) -> Account | None:
        ...

    async def mark_flagged(self, actor_id: str, at: datetime) -> bool:
        """Set status to flagged unless suspended or deleted; return whether a row matched."""
        ...

    async def mark_active(self, actor_id: str, at: datetime) -> bool:
        """Set status to active only from a clearable status; return whether a row matched."""
        ...

    async def list_by_status(self, status: AccountStatus, *, limit: int, offset: int) -> Sequence[Account]:
        ...

    async def count_by_status(self, status: AccountStatus) -> int:
        ...


class InMemoryAccountRepository(AccountRepository):
    """Simple repository implementation for development and tests."""

    def __init__(self) -> None:
        self._items: dict[str, Account] = {}

    def add(self, account: Account) -> Account:
        self._items[account.id] = account
        return account

    async def get(self, actor_id: str) -> Account | None:
        return self._items.get(actor_id)

    async def mark_flagged(self, actor_id: str, at: datetime) -> bool:
        account = self._items.get(actor_id)
        if account is None or account.status in ESCALATION_EXEMPT:
            return False
        self._items[actor_id] = replace(account, status=AccountStatus.FLAGGED, updated_at=at)
        return True

    async def mark_active(self, actor_id: str, at: datetime) -> bool:
        account = self._items.get(actor_id)
        if account is None or account.status not in CLEARABLE:
            return False
        self._items[actor_id] = replace(account, status=AccountStatus.ACTIVE, updated_at=at)
        return True

    async def list_by_status(self, status: AccountStatus, *, limit: int, offset: int) -> Sequence[Account]:
        matches = [item for item in self._items.values() if item.status is status]
        matches.sort(key=lambda item: item.updated_at, reverse=True)
        return matches[offset : offset + limit]

    async def count_by_status(self, status: AccountStatus) -> int:
        return sum(1 for item in self._items.values() if item.status is status)

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4


class LifecycleState(str, Enum):
    """Soft-delete state for organizations, memberships and employees.

    A hard-deleted record simply no longer exists; ``deactivated`` rows are
    kept so history and foreign keys stay intact.
    """

    ACTIVE = "active"
    DEACTIVATED = "deactivated"


@dataclass(frozen=True, slots=True)
class Organization:
    id: UUID
    name: str
    slug: str
    state: LifecycleState = LifecycleState.ACTIVE
    max_users: int | None = None  # None = unlimited
    max_employees: int | None = None  # None = unlimited
    expires_at: datetime | None = None
    current_bundle_id: UUID | None = None

    @property
    def is_active(self) -> bool:
        return self.state is LifecycleState.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def cap_for(self, resource: str) -> int | None:
        if resource == "users":
            return self.max_users
        if resource == "employees":
            return self.max_employees
        raise ValueError(f"unknown capped resource {resource!r}")

    @staticmethod
    def new(*, name: str, slug: str) -> Organization:
        return Organization(id=uuid4(), name=name, slug=slug)


@dataclass(frozen=True, slots=True)
class Membership:
    """Grants one user access to one organization."""

    id: UUID
    user_id: UUID
    org_id: UUID
    state: LifecycleState = LifecycleState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state is LifecycleState.ACTIVE

    @staticmethod
    def new(*, user_id: UUID, org_id: UUID) -> Membership:
        return Membership(id=uuid4(), user_id=user_id, org_id=org_id)

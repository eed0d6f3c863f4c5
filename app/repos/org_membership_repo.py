from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.organization import LifecycleState, Membership


class MembershipRepo(Protocol):
    async def get(self, membership_id: UUID) -> Membership | None: ...
    async def get_for(self, user_id: UUID, org_id: UUID) -> Membership | None: ...
    async def add(self, membership: Membership) -> None: ...
    async def set_state(
        self, membership_id: UUID, state: LifecycleState
    ) -> Membership | None: ...
    async def count_active(self, org_id: UUID) -> int: ...
    async def list_by_org(self, org_id: UUID) -> list[Membership]: ...
    async def list_by_user(self, user_id: UUID) -> list[Membership]: ...


class InMemoryMembershipRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Membership] = {}
        self._id_by_pair: dict[tuple[UUID, UUID], UUID] = {}

    async def get(self, membership_id: UUID) -> Membership | None:
        return self._by_id.get(membership_id)

    async def get_for(self, user_id: UUID, org_id: UUID) -> Membership | None:
        membership_id = self._id_by_pair.get((user_id, org_id))
        return self._by_id.get(membership_id) if membership_id is not None else None

    async def add(self, membership: Membership) -> None:
        key = (membership.user_id, membership.org_id)
        if key in self._id_by_pair:
            raise ValueError("membership already exists")
        self._by_id[membership.id] = membership
        self._id_by_pair[key] = membership.id

    async def set_state(
        self, membership_id: UUID, state: LifecycleState
    ) -> Membership | None:
        existing = self._by_id.get(membership_id)
        if existing is None:
            return None
        updated = replace(existing, state=state)
        self._by_id[membership_id] = updated
        return updated

    async def count_active(self, org_id: UUID) -> int:
        return sum(1 for m in self._by_id.values() if m.org_id == org_id and m.is_active)

    async def list_by_org(self, org_id: UUID) -> list[Membership]:
        return [m for m in self._by_id.values() if m.org_id == org_id]

    async def list_by_user(self, user_id: UUID) -> list[Membership]:
        return [m for m in self._by_id.values() if m.user_id == user_id]

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.organization import Organization


class OrgRepo(Protocol):
    async def get(self, org_id: UUID) -> Organization | None: ...
    async def get_by_slug(self, slug: str) -> Organization | None: ...
    async def lock(self, org_id: UUID) -> Organization | None:
        """Read the organization and hold its row lock until the transaction ends."""
        ...

    async def add(self, org: Organization) -> None: ...
    async def update(self, org: Organization) -> None: ...
    async def list_all(self) -> list[Organization]: ...


class InMemoryOrgRepo:
    """Row locking is a no-op here: InMemoryStore already serializes transactions."""

    def __init__(self) -> None:
        self._by_id: dict[UUID, Organization] = {}
        self._id_by_slug: dict[str, UUID] = {}

    async def get(self, org_id: UUID) -> Organization | None:
        return self._by_id.get(org_id)

    async def get_by_slug(self, slug: str) -> Organization | None:
        org_id = self._id_by_slug.get(slug)
        return self._by_id.get(org_id) if org_id is not None else None

    async def lock(self, org_id: UUID) -> Organization | None:
        return self._by_id.get(org_id)

    async def add(self, org: Organization) -> None:
        if org.slug in self._id_by_slug:
            raise ValueError("slug already exists")
        self._by_id[org.id] = org
        self._id_by_slug[org.slug] = org.id

    async def update(self, org: Organization) -> None:
        if org.id not in self._by_id:
            raise KeyError("organization not found")
        self._by_id[org.id] = org

    async def list_all(self) -> list[Organization]:
        return sorted(self._by_id.values(), key=lambda o: o.name)

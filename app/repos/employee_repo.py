from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.employee import Employee


class EmployeeRepo(Protocol):
    async def add(self, employee: Employee) -> None: ...
    async def count_active(self, org_id: UUID) -> int: ...
    async def list_by_org(self, org_id: UUID) -> list[Employee]: ...


class InMemoryEmployeeRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Employee] = {}

    async def add(self, employee: Employee) -> None:
        self._by_id[employee.id] = employee

    async def count_active(self, org_id: UUID) -> int:
        return sum(1 for e in self._by_id.values() if e.org_id == org_id and e.is_active)

    async def list_by_org(self, org_id: UUID) -> list[Employee]:
        return [e for e in self._by_id.values() if e.org_id == org_id]

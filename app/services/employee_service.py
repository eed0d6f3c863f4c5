"""Employee creation under the organization's employee cap."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import UUID

from app.core.errors import ValidationError
from app.models.employee import Employee
from app.repos.store import Store
from app.services.limits import ensure_capacity

logger = logging.getLogger(__name__)


def _new_employee(org_id: UUID, full_name: str, email: str | None) -> Employee:
    full_name = full_name.strip()
    if not full_name:
        raise ValidationError("full_name is required")
    email = email.lower().strip() if email else None
    return Employee.new(org_id=org_id, full_name=full_name, email=email)


class EmployeeService:
    def __init__(self, store: Store) -> None:
        self._store = store

    async def create_employee(
        self, org_id: UUID, full_name: str, email: str | None = None
    ) -> Employee:
        employee = _new_employee(org_id, full_name, email)
        async with self._store.transaction() as tx:
            await ensure_capacity(tx, org_id, "employees")
            await tx.employees.add(employee)
        logger.info("Employee created org=%s employee=%s", org_id, employee.id)
        return employee

    async def bulk_create(
        self, org_id: UUID, rows: Sequence[tuple[str, str | None]]
    ) -> list[Employee]:
        """Create every row or none.  The cap is checked once for the batch."""
        if not rows:
            raise ValidationError("No employees to import")
        employees = [_new_employee(org_id, full_name, email) for full_name, email in rows]
        async with self._store.transaction() as tx:
            await ensure_capacity(tx, org_id, "employees", adding=len(employees))
            for employee in employees:
                await tx.employees.add(employee)
        logger.info("Employees imported org=%s count=%d", org_id, len(employees))
        return employees

    async def list_employees(self, org_id: UUID) -> list[Employee]:
        async with self._store.transaction() as tx:
            return await tx.employees.list_by_org(org_id)

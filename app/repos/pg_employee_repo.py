"""PostgreSQL implementation of EmployeeRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import EmployeeRow
from app.models.employee import Employee
from app.models.organization import LifecycleState


class PgEmployeeRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, employee: Employee) -> None:
        self._session.add(
            EmployeeRow(
                id=employee.id,
                org_id=employee.org_id,
                full_name=employee.full_name,
                email=employee.email,
                state=employee.state.value,
            )
        )
        await self._session.flush()

    async def count_active(self, org_id: UUID) -> int:
        stmt = select(func.count()).select_from(EmployeeRow).where(
            EmployeeRow.org_id == org_id,
            EmployeeRow.state == LifecycleState.ACTIVE.value,
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def list_by_org(self, org_id: UUID) -> list[Employee]:
        stmt = (
            select(EmployeeRow)
            .where(EmployeeRow.org_id == org_id)
            .order_by(EmployeeRow.full_name)
        )
        rows = (await self._session.execute(stmt)).scalars()
        return [
            Employee(
                id=r.id,
                org_id=r.org_id,
                full_name=r.full_name,
                email=r.email,
                state=LifecycleState(r.state),
            )
            for r in rows
        ]

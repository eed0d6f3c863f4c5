"""PostgreSQL implementation of OrgRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import OrganizationRow
from app.models.organization import LifecycleState, Organization


class PgOrgRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, org_id: UUID) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.id == org_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def get_by_slug(self, slug: str) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.slug == slug)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def lock(self, org_id: UUID) -> Organization | None:
        # Concurrent cap checks for the same organization queue up behind this.
        stmt = (
            select(OrganizationRow)
            .where(OrganizationRow.id == org_id)
            .with_for_update()
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def add(self, org: Organization) -> None:
        self._session.add(
            OrganizationRow(
                id=org.id,
                name=org.name,
                slug=org.slug,
                state=org.state.value,
                max_users=org.max_users,
                max_employees=org.max_employees,
                expires_at=org.expires_at,
                current_bundle_id=org.current_bundle_id,
            )
        )
        await self._session.flush()

    async def update(self, org: Organization) -> None:
        stmt = (
            update(OrganizationRow)
            .where(OrganizationRow.id == org.id)
            .values(
                name=org.name,
                state=org.state.value,
                max_users=org.max_users,
                max_employees=org.max_employees,
                expires_at=org.expires_at,
                current_bundle_id=org.current_bundle_id,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("organization not found")

    async def list_all(self) -> list[Organization]:
        stmt = select(OrganizationRow).order_by(OrganizationRow.name)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_org(r) for r in rows]


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        slug=row.slug,
        state=LifecycleState(row.state),
        max_users=row.max_users,
        max_employees=row.max_employees,
        expires_at=row.expires_at,
        current_bundle_id=row.current_bundle_id,
    )

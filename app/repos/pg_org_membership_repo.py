"""PostgreSQL implementation of MembershipRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import MembershipRow
from app.models.organization import LifecycleState, Membership


class PgMembershipRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, membership_id: UUID) -> Membership | None:
        stmt = select(MembershipRow).where(MembershipRow.id == membership_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def get_for(self, user_id: UUID, org_id: UUID) -> Membership | None:
        stmt = select(MembershipRow).where(
            MembershipRow.user_id == user_id, MembershipRow.org_id == org_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def add(self, membership: Membership) -> None:
        self._session.add(
            MembershipRow(
                id=membership.id,
                user_id=membership.user_id,
                org_id=membership.org_id,
                state=membership.state.value,
            )
        )
        await self._session.flush()

    async def set_state(
        self, membership_id: UUID, state: LifecycleState
    ) -> Membership | None:
        stmt = (
            update(MembershipRow)
            .where(MembershipRow.id == membership_id)
            .values(state=state.value)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get(membership_id)

    async def count_active(self, org_id: UUID) -> int:
        stmt = select(func.count()).select_from(MembershipRow).where(
            MembershipRow.org_id == org_id,
            MembershipRow.state == LifecycleState.ACTIVE.value,
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def list_by_org(self, org_id: UUID) -> list[Membership]:
        stmt = select(MembershipRow).where(MembershipRow.org_id == org_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def list_by_user(self, user_id: UUID) -> list[Membership]:
        stmt = select(MembershipRow).where(MembershipRow.user_id == user_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]


def _row_to_membership(row: MembershipRow) -> Membership:
    return Membership(
        id=row.id,
        user_id=row.user_id,
        org_id=row.org_id,
        state=LifecycleState(row.state),
    )

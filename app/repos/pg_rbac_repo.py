"""PostgreSQL implementation of RbacRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import MembershipRoleRow, PermissionRow, RolePermissionRow, RoleRow
from app.models.rbac import Permission, Role


class PgRbacRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_role(self, role: Role) -> None:
        self._session.add(RoleRow(id=role.id, key=role.key, name=role.name, org_id=role.org_id))
        await self._session.flush()

    async def add_permission(self, permission: Permission) -> None:
        self._session.add(
            PermissionRow(id=permission.id, key=permission.key, name=permission.name)
        )
        await self._session.flush()

    async def get_role_by_key(self, key: str, org_id: UUID | None = None) -> Role | None:
        scope = RoleRow.org_id.is_(None)
        if org_id is not None:
            scope = or_(scope, RoleRow.org_id == org_id)
        # Org-specific rows sort first: FALSE < TRUE.
        stmt = (
            select(RoleRow)
            .where(RoleRow.key == key, scope)
            .order_by(RoleRow.org_id.is_(None))
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_role(row) if row is not None else None

    async def get_permission_by_key(self, key: str) -> Permission | None:
        stmt = select(PermissionRow).where(PermissionRow.key == key)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_permission(row) if row is not None else None

    async def list_roles(self) -> list[Role]:
        rows = (await self._session.execute(select(RoleRow).order_by(RoleRow.key))).scalars()
        return [_row_to_role(r) for r in rows]

    async def list_permissions(self) -> list[Permission]:
        stmt = select(PermissionRow).order_by(PermissionRow.key)
        rows = (await self._session.execute(stmt)).scalars()
        return [_row_to_permission(r) for r in rows]

    async def grant(self, role_id: UUID, permission_id: UUID) -> None:
        stmt = (
            insert(RolePermissionRow)
            .values(role_id=role_id, permission_id=permission_id)
            .on_conflict_do_nothing()
        )
        await self._session.execute(stmt)

    async def assign_role(self, membership_id: UUID, role_id: UUID) -> None:
        stmt = (
            insert(MembershipRoleRow)
            .values(membership_id=membership_id, role_id=role_id)
            .on_conflict_do_nothing()
        )
        await self._session.execute(stmt)

    async def roles_for_membership(self, membership_id: UUID) -> list[Role]:
        stmt = (
            select(RoleRow)
            .join(MembershipRoleRow, MembershipRoleRow.role_id == RoleRow.id)
            .where(MembershipRoleRow.membership_id == membership_id)
            .order_by(RoleRow.key)
        )
        rows = (await self._session.execute(stmt)).scalars()
        return [_row_to_role(r) for r in rows]

    async def permission_keys_for_membership(
        self, membership_id: UUID
    ) -> frozenset[str]:
        stmt = (
            select(PermissionRow.key)
            .join(RolePermissionRow, RolePermissionRow.permission_id == PermissionRow.id)
            .join(MembershipRoleRow, MembershipRoleRow.role_id == RolePermissionRow.role_id)
            .where(MembershipRoleRow.membership_id == membership_id)
            .distinct()
        )
        return frozenset((await self._session.execute(stmt)).scalars())


def _row_to_role(row: RoleRow) -> Role:
    return Role(id=row.id, key=row.key, name=row.name, org_id=row.org_id)


def _row_to_permission(row: PermissionRow) -> Permission:
    return Permission(id=row.id, key=row.key, name=row.name)

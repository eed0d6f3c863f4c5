from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.rbac import Permission, Role


class RbacRepo(Protocol):
    async def add_role(self, role: Role) -> None: ...
    async def add_permission(self, permission: Permission) -> None: ...
    async def get_role_by_key(self, key: str, org_id: UUID | None = None) -> Role | None:
        """The organization's own role when it defines one, else the global role."""
        ...
    async def get_permission_by_key(self, key: str) -> Permission | None: ...
    async def list_roles(self) -> list[Role]: ...
    async def list_permissions(self) -> list[Permission]: ...
    async def grant(self, role_id: UUID, permission_id: UUID) -> None: ...
    async def assign_role(self, membership_id: UUID, role_id: UUID) -> None: ...
    async def roles_for_membership(self, membership_id: UUID) -> list[Role]: ...
    async def permission_keys_for_membership(
        self, membership_id: UUID
    ) -> frozenset[str]:
        """Union of permission keys over every role of the membership, one query."""
        ...


class InMemoryRbacRepo:
    def __init__(self) -> None:
        self._roles: dict[UUID, Role] = {}
        self._permissions: dict[UUID, Permission] = {}
        # (role_id, permission_id) and (membership_id, role_id) join rows
        self._role_permissions: set[tuple[UUID, UUID]] = set()
        self._membership_roles: set[tuple[UUID, UUID]] = set()

    async def add_role(self, role: Role) -> None:
        if any(r.key == role.key and r.org_id == role.org_id for r in self._roles.values()):
            raise ValueError("role key already exists")
        self._roles[role.id] = role

    async def add_permission(self, permission: Permission) -> None:
        if any(p.key == permission.key for p in self._permissions.values()):
            raise ValueError("permission key already exists")
        self._permissions[permission.id] = permission

    async def get_role_by_key(self, key: str, org_id: UUID | None = None) -> Role | None:
        fallback = None
        for role in self._roles.values():
            if role.key != key:
                continue
            if org_id is not None and role.org_id == org_id:
                return role
            if role.org_id is None:
                fallback = role
        return fallback

    async def get_permission_by_key(self, key: str) -> Permission | None:
        for permission in self._permissions.values():
            if permission.key == key:
                return permission
        return None

    async def list_roles(self) -> list[Role]:
        return sorted(self._roles.values(), key=lambda r: r.key)

    async def list_permissions(self) -> list[Permission]:
        return sorted(self._permissions.values(), key=lambda p: p.key)

    async def grant(self, role_id: UUID, permission_id: UUID) -> None:
        self._role_permissions.add((role_id, permission_id))

    async def assign_role(self, membership_id: UUID, role_id: UUID) -> None:
        self._membership_roles.add((membership_id, role_id))

    async def roles_for_membership(self, membership_id: UUID) -> list[Role]:
        roles = [
            self._roles[role_id]
            for m_id, role_id in self._membership_roles
            if m_id == membership_id and role_id in self._roles
        ]
        return sorted(roles, key=lambda r: r.key)

    async def permission_keys_for_membership(
        self, membership_id: UUID
    ) -> frozenset[str]:
        role_ids = {r_id for m_id, r_id in self._membership_roles if m_id == membership_id}
        permission_ids = {p_id for r_id, p_id in self._role_permissions if r_id in role_ids}
        return frozenset(
            self._permissions[p_id].key
            for p_id in permission_ids
            if p_id in self._permissions
        )

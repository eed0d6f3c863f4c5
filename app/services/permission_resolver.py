"""Membership -> permission set.

Roles are never cached on the token or in process memory: every decision
reads the membership's roles afresh, so a role change takes effect on the
very next request.  The union of permission keys comes from one joined
query per membership (``RbacRepo.permission_keys_for_membership``).
"""

from __future__ import annotations

import logging
from uuid import UUID

from app.models.rbac import PermissionSet
from app.repos.store import Store, Transaction

logger = logging.getLogger(__name__)


async def resolve_membership(tx: Transaction, membership_id: UUID) -> PermissionSet:
    """Union of permission keys over every role of an active membership.

    A missing or deactivated membership, or one with no roles, yields the
    empty set.  Never raises for a missing membership.
    """
    membership = await tx.memberships.get(membership_id)
    if membership is None or not membership.is_active:
        return PermissionSet.empty()
    keys = await tx.rbac.permission_keys_for_membership(membership_id)
    return PermissionSet(keys=keys)


async def resolve_user(tx: Transaction, user_id: UUID, org_id: UUID | None) -> PermissionSet:
    user = await tx.users.get_by_id(user_id)
    if user is not None and user.is_super_admin:
        return PermissionSet.everything(p.key for p in await tx.rbac.list_permissions())
    if org_id is None:
        return PermissionSet.empty()
    membership = await tx.memberships.get_for(user_id, org_id)
    if membership is None:
        return PermissionSet.empty()
    return await resolve_membership(tx, membership.id)


class PermissionResolver:
    def __init__(self, store: Store) -> None:
        self._store = store

    async def resolve(self, membership_id: UUID) -> PermissionSet:
        async with self._store.transaction() as tx:
            return await resolve_membership(tx, membership_id)

    async def resolve_for(self, user_id: UUID, org_id: UUID | None) -> PermissionSet:
        async with self._store.transaction() as tx:
            permissions = await resolve_user(tx, user_id, org_id)
        logger.debug(
            "Resolved %d permissions for user=%s org=%s universal=%s",
            len(permissions),
            user_id,
            org_id,
            permissions.universal,
        )
        return permissions

"""Organization members: invite, deactivate, reactivate.

Anything that makes a membership active (a new one, or reactivating a
soft-removed one) goes through ``ensure_capacity`` in the same transaction
as the write.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.organization import LifecycleState, Membership
from app.models.rbac import Role
from app.models.user import User
from app.repos.store import Store, Transaction
from app.services.auth_service import hash_password_in_thread
from app.services.limits import ensure_capacity, lock_org
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MemberView:
    membership: Membership
    user: User
    roles: tuple[Role, ...] = ()


async def assign_roles(
    tx: Transaction,
    membership_id: UUID,
    role_keys: Sequence[str],
    *,
    org_id: UUID | None = None,
) -> list[Role]:
    roles = []
    for key in role_keys:
        role = await tx.rbac.get_role_by_key(key, org_id)
        if role is None:
            raise NotFoundError(f"Role {key!r} not found")
        await tx.rbac.assign_role(membership_id, role.id)
        roles.append(role)
    return roles


async def _set_state(tx: Transaction, membership_id: UUID, state: LifecycleState) -> Membership:
    membership = await tx.memberships.set_state(membership_id, state)
    if membership is None:
        raise NotFoundError("Member not found")
    return membership


class MembershipService:
    def __init__(self, store: Store, *, notifier: NotificationDispatcher | None = None) -> None:
        self._store = store
        self._notifier = notifier

    async def add_member(
        self,
        org_id: UUID,
        *,
        email: str,
        name: str = "",
        password: str | None = None,
        role_keys: Sequence[str] = ("member",),
    ) -> MemberView:
        """Invite a user by email, creating the account when it does not exist.

        Without a password a random one is set; the invitee resets it.
        """
        email = email.lower().strip()
        if "@" not in email:
            raise ValidationError("A valid email is required")
        if not role_keys:
            raise ValidationError("At least one role is required")

        # Only used when the invitee has no account yet.
        password_hash = await hash_password_in_thread(password or secrets.token_urlsafe(24))
        async with self._store.transaction() as tx:
            # Lock before reading so concurrent invites of one email serialize.
            await lock_org(tx, org_id)
            user = await tx.users.get_by_email(email)
            membership = await tx.memberships.get_for(user.id, org_id) if user else None
            if membership is not None and membership.is_active:
                raise ConflictError("User is already a member of this organization")

            await ensure_capacity(tx, org_id, "users")

            created_user = user is None
            if user is None:
                user = User.new(
                    email=email,
                    password_hash=password_hash,
                    name=name,
                )
                await tx.users.add(user)

            if membership is None:
                membership = Membership.new(user_id=user.id, org_id=org_id)
                await tx.memberships.add(membership)
            else:
                membership = await _set_state(tx, membership.id, LifecycleState.ACTIVE)
            await assign_roles(tx, membership.id, role_keys, org_id=org_id)
            roles = await tx.rbac.roles_for_membership(membership.id)

        logger.info(
            "Member added org=%s user=%s roles=%s new_user=%s",
            org_id,
            user.id,
            list(role_keys),
            created_user,
        )
        if self._notifier is not None:
            await self._notifier.notify(
                "member_invited",
                {"org_id": str(org_id), "user_id": str(user.id), "email": user.email},
            )
        return MemberView(membership=membership, user=user, roles=tuple(roles))

    async def _owned(self, tx: Transaction, org_id: UUID, membership_id: UUID) -> Membership:
        membership = await tx.memberships.get(membership_id)
        if membership is None or membership.org_id != org_id:
            raise NotFoundError("Member not found")
        return membership

    async def deactivate_member(
        self, org_id: UUID, membership_id: UUID, *, acting_user_id: UUID | None = None
    ) -> Membership:
        async with self._store.transaction() as tx:
            membership = await self._owned(tx, org_id, membership_id)
            if acting_user_id is not None and membership.user_id == acting_user_id:
                raise ConflictError("You cannot remove yourself from the organization")
            if membership.is_active:
                membership = await _set_state(tx, membership_id, LifecycleState.DEACTIVATED)
        logger.info("Member deactivated org=%s membership=%s", org_id, membership_id)
        return membership

    async def reactivate_member(self, org_id: UUID, membership_id: UUID) -> Membership:
        async with self._store.transaction() as tx:
            membership = await self._owned(tx, org_id, membership_id)
            if membership.is_active:
                return membership
            await ensure_capacity(tx, org_id, "users")
            membership = await _set_state(tx, membership_id, LifecycleState.ACTIVE)
        logger.info("Member reactivated org=%s membership=%s", org_id, membership_id)
        return membership

    async def list_members(self, org_id: UUID) -> list[MemberView]:
        views: list[MemberView] = []
        async with self._store.transaction() as tx:
            for membership in await tx.memberships.list_by_org(org_id):
                user = await tx.users.get_by_id(membership.user_id)
                if user is None:
                    continue
                roles = await tx.rbac.roles_for_membership(membership.id)
                views.append(MemberView(membership=membership, user=user, roles=tuple(roles)))
        views.sort(key=lambda v: v.user.email)
        return views

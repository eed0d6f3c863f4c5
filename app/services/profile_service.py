"""What the caller may see: the data behind ``/v1/me`` and ``/v1/me/modules``.

A non-super-admin caller must hold an active membership in the token's
organization; anything else is UnauthorizedError, matching the gate.
A super-admin without an organization gets an empty, platform-only view.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from app.core.errors import UnauthorizedError
from app.models.manifest import ModuleManifest, filter_manifest
from app.models.module import LicensedModule, evaluate
from app.models.organization import Membership, Organization
from app.models.principal import Principal
from app.models.rbac import ORG_ADMIN_ROLE_KEYS, PermissionSet, Role
from app.models.user import User
from app.repos.store import Store, Transaction
from app.services.entitlement_service import licensed_modules, utcnow
from app.services.module_registry import ModuleRegistry
from app.services.permission_resolver import resolve_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MembershipSummary:
    membership: Membership
    organization: Organization
    roles: tuple[Role, ...]


@dataclass(frozen=True, slots=True)
class Profile:
    user: User
    organization: Organization | None
    memberships: tuple[MembershipSummary, ...]
    roles: tuple[Role, ...]
    permissions: PermissionSet
    is_org_admin: bool
    modules: tuple[LicensedModule, ...]


@dataclass(frozen=True, slots=True)
class VisibleModule:
    manifest: ModuleManifest
    licensed: LicensedModule


async def _caller(tx: Transaction, principal: Principal) -> User:
    user = await tx.users.get_by_id(principal.user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError("Unknown user")
    return user


async def _current_membership(
    tx: Transaction, principal: Principal, org_id: UUID
) -> Membership | None:
    membership = await tx.memberships.get_for(principal.user_id, org_id)
    active = membership is not None and membership.is_active
    if not active and not principal.is_super_admin:
        raise UnauthorizedError("No active membership in this organization")
    return membership if active else None


async def _current_org(tx: Transaction, principal: Principal, org_id: UUID) -> Organization:
    org = await tx.orgs.get(org_id)
    if org is None or (not org.is_active and not principal.is_super_admin):
        raise UnauthorizedError("Organization not found or inactive")
    return org


class ProfileService:
    def __init__(self, store: Store, registry: ModuleRegistry) -> None:
        self._store = store
        self._registry = registry

    async def describe(self, principal: Principal) -> Profile:
        """User, memberships, roles and permissions in the current organization.

        ``modules`` lists the enabled entitlement rows as stored; this path
        has no side effects.
        """
        now = utcnow()
        async with self._store.transaction() as tx:
            user = await _caller(tx, principal)
            if principal.org_id is None:
                if not principal.is_super_admin:
                    raise UnauthorizedError("Organization context required")
                return Profile(
                    user=user,
                    organization=None,
                    memberships=(),
                    roles=(),
                    permissions=PermissionSet.empty(),
                    is_org_admin=False,
                    modules=(),
                )

            membership = await _current_membership(tx, principal, principal.org_id)
            org = await _current_org(tx, principal, principal.org_id)

            summaries: list[MembershipSummary] = []
            for m in await tx.memberships.list_by_user(user.id):
                if not m.is_active:
                    continue
                member_org = await tx.orgs.get(m.org_id)
                if member_org is None:
                    continue
                member_roles = await tx.rbac.roles_for_membership(m.id)
                summaries.append(
                    MembershipSummary(
                        membership=m, organization=member_org, roles=tuple(member_roles)
                    )
                )

            roles = tuple(await tx.rbac.roles_for_membership(membership.id)) if membership else ()
            permissions = await resolve_user(tx, user.id, org.id)

            modules: list[LicensedModule] = []
            for org_module in await tx.modules.list_org_modules(org.id):
                if not org_module.is_enabled:
                    continue
                module = await tx.modules.get_module(org_module.module_id)
                if module is not None:
                    modules.append(
                        LicensedModule(
                            module=module, org_module=org_module, entitlement=evaluate(org_module, now)
                        )
                    )
        modules.sort(key=lambda lm: lm.module.key)

        return Profile(
            user=user,
            organization=org,
            memberships=tuple(summaries),
            roles=roles,
            permissions=permissions,
            is_org_admin=user.is_super_admin or any(r.key in ORG_ADMIN_ROLE_KEYS for r in roles),
            modules=tuple(modules),
        )

    async def visible_modules(
        self, principal: Principal, now: datetime | None = None
    ) -> list[VisibleModule]:
        """Licensed modules with manifests filtered to the caller's permissions.

        Running trials are lazily activated on the way.  Rows that are past
        their hard expiry and carry no trial are left out, as are modules the
        registry does not know and modules switched off platform-wide.
        """
        if principal.org_id is None:
            if not principal.is_super_admin:
                raise UnauthorizedError("Organization context required")
            return []

        now = now or utcnow()
        visible: list[VisibleModule] = []
        async with self._store.transaction() as tx:
            await _caller(tx, principal)
            await _current_membership(tx, principal, principal.org_id)
            await _current_org(tx, principal, principal.org_id)
            permissions = await resolve_user(tx, principal.user_id, principal.org_id)

            for licensed in await licensed_modules(tx, principal.org_id, now):
                if licensed.entitlement.is_expired and licensed.org_module.trial_ends_at is None:
                    continue
                if not licensed.module.is_active:
                    continue
                manifest = self._registry.get(licensed.module.key)
                if manifest is None:
                    logger.warning(
                        "Licensed module missing from registry key=%s", licensed.module.key
                    )
                    continue
                visible.append(
                    VisibleModule(
                        manifest=filter_manifest(
                            manifest, permissions, is_super_admin=principal.is_super_admin
                        ),
                        licensed=licensed,
                    )
                )
        return visible

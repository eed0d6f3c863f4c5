"""Response schemas shared by several routers."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from app.models.module import LicensedModule
from app.models.organization import Organization
from app.models.rbac import Role
from app.models.user import User


class UserOut(BaseModel):
    id: str
    email: str
    name: str
    is_super_admin: bool

    @classmethod
    def of(cls, user: User) -> UserOut:
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            is_super_admin=user.is_super_admin,
        )


class OrganizationOut(BaseModel):
    id: str
    name: str
    slug: str
    state: str
    max_users: int | None
    max_employees: int | None
    expires_at: datetime | None
    is_expired: bool
    current_bundle_id: str | None

    @classmethod
    def of(cls, org: Organization, now: datetime) -> OrganizationOut:
        return cls(
            id=str(org.id),
            name=org.name,
            slug=org.slug,
            state=org.state.value,
            max_users=org.max_users,
            max_employees=org.max_employees,
            expires_at=org.expires_at,
            is_expired=org.is_expired(now),
            current_bundle_id=str(org.current_bundle_id) if org.current_bundle_id else None,
        )


class RoleOut(BaseModel):
    id: str
    key: str
    name: str

    @classmethod
    def of(cls, role: Role) -> RoleOut:
        return cls(id=str(role.id), key=role.key, name=role.name)


class LicensingOut(BaseModel):
    module_key: str
    module_name: str
    is_enabled: bool
    plan: str | None
    seats: int | None
    expires_at: datetime | None
    trial_ends_at: datetime | None
    is_expired: bool
    is_trial: bool
    state: str

    @classmethod
    def of(cls, licensed: LicensedModule, *, hide_trial: bool = False) -> LicensingOut:
        row = licensed.org_module
        entitlement = licensed.entitlement
        return cls(
            module_key=licensed.module.key,
            module_name=licensed.module.name,
            is_enabled=row.is_enabled,
            plan=row.plan,
            seats=row.seats,
            expires_at=row.expires_at,
            trial_ends_at=row.trial_ends_at,
            is_expired=entitlement.is_expired,
            is_trial=entitlement.is_trial and not hide_trial,
            state=entitlement.state.value,
        )

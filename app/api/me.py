"""The caller's own view: identity, permissions and licensed modules."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from app.api.dependencies import PrincipalDep, ServicesDep
from app.api.schemas import LicensingOut, OrganizationOut, RoleOut, UserOut
from app.models.manifest import ModuleManifest
from app.services.entitlement_service import utcnow

router = APIRouter(prefix="/v1/me", tags=["me"])


class MembershipOut(BaseModel):
    id: str
    organization_id: str
    organization_name: str
    organization_slug: str
    roles: list[RoleOut]


class MeOut(BaseModel):
    user: UserOut
    current_organization: OrganizationOut | None
    memberships: list[MembershipOut]
    roles: list[RoleOut]
    permissions: list[str]
    is_org_admin: bool
    enabled_modules: list[LicensingOut]


class SidebarItemOut(BaseModel):
    label: str
    path: str
    icon: str | None = None
    permission: str | None = None


class DashboardWidgetOut(BaseModel):
    key: str
    title: str
    permission: str | None = None


class ModuleManifestOut(BaseModel):
    key: str
    name: str
    icon: str
    sidebar_items: list[SidebarItemOut]
    dashboard_widgets: list[DashboardWidgetOut]
    licensing: LicensingOut


def _manifest_out(manifest: ModuleManifest, licensing: LicensingOut) -> ModuleManifestOut:
    return ModuleManifestOut(
        key=manifest.key,
        name=manifest.name,
        icon=manifest.icon,
        sidebar_items=[
            SidebarItemOut(label=i.label, path=i.path, icon=i.icon, permission=i.permission)
            for i in manifest.sidebar_items
        ],
        dashboard_widgets=[
            DashboardWidgetOut(key=w.key, title=w.title, permission=w.permission)
            for w in manifest.dashboard_widgets
        ],
        licensing=licensing,
    )


@router.get("", response_model=MeOut)
async def me(principal: PrincipalDep, services: ServicesDep) -> MeOut:
    profile = await services.profiles.describe(principal)
    now = utcnow()
    return MeOut(
        user=UserOut.of(profile.user),
        current_organization=(
            OrganizationOut.of(profile.organization, now) if profile.organization else None
        ),
        memberships=[
            MembershipOut(
                id=str(s.membership.id),
                organization_id=str(s.organization.id),
                organization_name=s.organization.name,
                organization_slug=s.organization.slug,
                roles=[RoleOut.of(r) for r in s.roles],
            )
            for s in profile.memberships
        ],
        roles=[RoleOut.of(r) for r in profile.roles],
        permissions=profile.permissions.sorted_keys(),
        is_org_admin=profile.is_org_admin,
        enabled_modules=[LicensingOut.of(lm) for lm in profile.modules],
    )


@router.get("/modules", response_model=list[ModuleManifestOut])
async def my_modules(principal: PrincipalDep, services: ServicesDep) -> list[ModuleManifestOut]:
    """Permission-filtered manifests for every module the organization licenses.

    Super-admins see full manifests and are never reported as on trial.
    """
    visible = await services.profiles.visible_modules(principal)
    return [
        _manifest_out(
            v.manifest,
            LicensingOut.of(v.licensed, hide_trial=principal.is_super_admin),
        )
        for v in visible
    ]

"""Platform operator endpoints.  Every route requires a super-admin token.

Each mutation is one AssignmentEngine call and therefore one transaction.
A cap that would fall below the current active count is rejected with the
structured limit error (409, code ``limit_exceeded``).
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from app.api.billing import PriceOut
from app.api.dependencies import ServicesDep, SuperAdminDep
from app.api.schemas import LicensingOut, OrganizationOut
from app.models.billing import BillingPeriod, Bundle
from app.models.module import Module, OrgModule, evaluate
from app.models.organization import LifecycleState
from app.services.entitlement_service import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


# --- Schemas ----------------------------------------------------------------


class OrganizationDetailOut(OrganizationOut):
    modules: list[LicensingOut]


class LimitsIn(BaseModel):
    max_users: int | None = None
    max_employees: int | None = None


class ExpiryIn(BaseModel):
    expires_at: datetime | None = None


class BundleAssignIn(BaseModel):
    bundle_id: UUID | None = None


class StateIn(BaseModel):
    state: LifecycleState


class ExtendTrialIn(BaseModel):
    days: int


class OrgModuleIn(BaseModel):
    is_enabled: bool
    plan: str | None = None
    seats: int | None = None
    expires_at: datetime | None = None
    trial_ends_at: datetime | None = None


class OrgModuleOut(BaseModel):
    id: str
    module_id: str
    is_enabled: bool
    plan: str | None
    seats: int | None
    expires_at: datetime | None
    trial_ends_at: datetime | None
    is_expired: bool
    is_trial: bool
    state: str

    @classmethod
    def of(cls, row: OrgModule) -> OrgModuleOut:
        entitlement = evaluate(row, utcnow())
        return cls(
            id=str(row.id),
            module_id=str(row.module_id),
            is_enabled=row.is_enabled,
            plan=row.plan,
            seats=row.seats,
            expires_at=row.expires_at,
            trial_ends_at=row.trial_ends_at,
            is_expired=entitlement.is_expired,
            is_trial=entitlement.is_trial,
            state=entitlement.state.value,
        )


class ModuleAvailabilityIn(BaseModel):
    is_active: bool


class ModuleOut(BaseModel):
    id: str
    key: str
    name: str
    is_active: bool

    @classmethod
    def of(cls, module: Module) -> ModuleOut:
        return cls(id=str(module.id), key=module.key, name=module.name, is_active=module.is_active)


class PriceIn(BaseModel):
    plan: str
    billing_period: BillingPeriod = BillingPeriod.MONTHLY
    price_cents: int
    currency: str = "SAR"
    max_seats: int | None = None


class BundleModuleIn(BaseModel):
    module_key: str
    plan: str


class BundleIn(BaseModel):
    name: str
    modules: list[BundleModuleIn] = Field(min_length=1)
    max_users: int | None = None
    max_employees: int | None = None
    price_cents: int = 0
    currency: str = "SAR"
    billing_period: BillingPeriod = BillingPeriod.MONTHLY


class BundleOut(BaseModel):
    id: str
    name: str
    is_active: bool
    module_ids: list[str]
    max_users: int | None
    max_employees: int | None
    price_cents: int
    currency: str
    billing_period: BillingPeriod

    @classmethod
    def of(cls, bundle: Bundle) -> BundleOut:
        return cls(
            id=str(bundle.id),
            name=bundle.name,
            is_active=bundle.is_active,
            module_ids=[str(m.module_id) for m in bundle.modules],
            max_users=bundle.max_users,
            max_employees=bundle.max_employees,
            price_cents=bundle.price_cents,
            currency=bundle.currency,
            billing_period=bundle.billing_period,
        )


# --- Organizations ----------------------------------------------------------


@router.get("/organizations", response_model=list[OrganizationOut])
async def list_organizations(admin: SuperAdminDep, services: ServicesDep) -> list[OrganizationOut]:
    now = utcnow()
    orgs = await services.assignments.list_organizations()
    return [OrganizationOut.of(o, now) for o in orgs]


@router.get("/organizations/{org_id}", response_model=OrganizationDetailOut)
async def get_organization(
    org_id: UUID, admin: SuperAdminDep, services: ServicesDep
) -> OrganizationDetailOut:
    org = await services.assignments.get_organization(org_id)
    rows = await services.entitlements.list_org_modules(org_id)
    return OrganizationDetailOut(
        **OrganizationOut.of(org, utcnow()).model_dump(),
        modules=[LicensingOut.of(r) for r in rows],
    )


@router.patch("/organizations/{org_id}/limits", response_model=OrganizationOut)
async def set_limits(
    org_id: UUID, body: LimitsIn, admin: SuperAdminDep, services: ServicesDep
) -> OrganizationOut:
    """Change caps.  Only the fields present in the body are touched; null means unlimited."""
    caps = {name: getattr(body, name) for name in body.model_fields_set}
    org = await services.assignments.set_limits(org_id, **caps)
    logger.info("Limits changed by admin=%s org=%s", admin.user_id, org_id)
    return OrganizationOut.of(org, utcnow())


@router.patch("/organizations/{org_id}/expiry", response_model=OrganizationOut)
async def set_expiry(
    org_id: UUID, body: ExpiryIn, admin: SuperAdminDep, services: ServicesDep
) -> OrganizationOut:
    org = await services.assignments.set_org_expiry(org_id, body.expires_at)
    return OrganizationOut.of(org, utcnow())


@router.patch("/organizations/{org_id}/status", response_model=OrganizationOut)
async def set_status(
    org_id: UUID, body: StateIn, admin: SuperAdminDep, services: ServicesDep
) -> OrganizationOut:
    org = await services.assignments.set_org_state(org_id, body.state)
    return OrganizationOut.of(org, utcnow())


@router.post("/organizations/{org_id}/bundle", response_model=OrganizationOut)
async def assign_bundle(
    org_id: UUID, body: BundleAssignIn, admin: SuperAdminDep, services: ServicesDep
) -> OrganizationOut:
    org = await services.assignments.assign_bundle(org_id, body.bundle_id)
    logger.info(
        "Bundle assignment by admin=%s org=%s bundle=%s", admin.user_id, org_id, body.bundle_id
    )
    return OrganizationOut.of(org, utcnow())


@router.post("/organizations/{org_id}/extend-trial", response_model=list[OrgModuleOut])
async def extend_trial(
    org_id: UUID, body: ExtendTrialIn, admin: SuperAdminDep, services: ServicesDep
) -> list[OrgModuleOut]:
    rows = await services.assignments.extend_trial(org_id, body.days)
    return [OrgModuleOut.of(r) for r in rows]


@router.put("/organizations/{org_id}/modules/{module_key}", response_model=OrgModuleOut)
async def set_org_module(
    org_id: UUID,
    module_key: str,
    body: OrgModuleIn,
    admin: SuperAdminDep,
    services: ServicesDep,
) -> OrgModuleOut:
    """Override one entitlement row.  Fields absent from the body keep their value."""
    overrides = {
        name: getattr(body, name)
        for name in ("plan", "seats", "expires_at", "trial_ends_at")
        if name in body.model_fields_set
    }
    row = await services.assignments.set_org_module(
        org_id, module_key, is_enabled=body.is_enabled, **overrides
    )
    return OrgModuleOut.of(row)


# --- Catalog ----------------------------------------------------------------


@router.patch("/modules/{module_key}", response_model=ModuleOut)
async def set_module_availability(
    module_key: str, body: ModuleAvailabilityIn, admin: SuperAdminDep, services: ServicesDep
) -> ModuleOut:
    module = await services.assignments.set_module_availability(module_key, body.is_active)
    return ModuleOut.of(module)


@router.post(
    "/modules/{module_key}/prices",
    response_model=PriceOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_price(
    module_key: str, body: PriceIn, admin: SuperAdminDep, services: ServicesDep
) -> PriceOut:
    price = await services.assignments.create_module_price(
        module_key,
        plan=body.plan,
        billing_period=body.billing_period,
        price_cents=body.price_cents,
        currency=body.currency,
        max_seats=body.max_seats,
    )
    return PriceOut.of(price)


@router.get("/bundles", response_model=list[BundleOut])
async def list_bundles(admin: SuperAdminDep, services: ServicesDep) -> list[BundleOut]:
    return [BundleOut.of(b) for b in await services.assignments.list_bundles()]


@router.post("/bundles", response_model=BundleOut, status_code=status.HTTP_201_CREATED)
async def create_bundle(body: BundleIn, admin: SuperAdminDep, services: ServicesDep) -> BundleOut:
    bundle = await services.assignments.create_bundle(
        name=body.name,
        modules=[(m.module_key, m.plan) for m in body.modules],
        max_users=body.max_users,
        max_employees=body.max_employees,
        price_cents=body.price_cents,
        currency=body.currency,
        billing_period=body.billing_period,
    )
    return BundleOut.of(bundle)

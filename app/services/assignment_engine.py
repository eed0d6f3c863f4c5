"""Administrative entitlement mutations.

Every public method is one store transaction: the organization row is
locked first, every dependent row is written, and any error (including a
limit violation discovered half way) rolls the whole operation back.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from uuid import UUID

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.billing import BillingPeriod, Bundle, BundleModule, ModulePrice
from app.models.module import Module, OrgModule
from app.models.organization import LifecycleState, Organization
from app.repos.store import Store, Transaction
from app.services.entitlement_service import utcnow
from app.services.limits import Resource, ensure_cap_fits, lock_org

logger = logging.getLogger(__name__)

_UNSET = object()


async def upsert_entitlement(
    tx: Transaction, org_id: UUID, module_id: UUID, **fields
) -> OrgModule:
    """Create or update the single OrgModule row for (org, module)."""
    existing = await tx.modules.get_org_module(org_id, module_id)
    if existing is None:
        row = OrgModule.new(org_id=org_id, module_id=module_id, **fields)
    else:
        row = replace(existing, **fields)
    return await tx.modules.upsert_org_module(row)


async def _module_by_key(tx: Transaction, module_key: str) -> Module:
    module = await tx.modules.get_by_key(module_key)
    if module is None:
        raise NotFoundError(f"Module {module_key!r} not found")
    return module


class AssignmentEngine:
    def __init__(self, store: Store) -> None:
        self._store = store

    # --- bundles ---

    async def assign_bundle(self, org_id: UUID, bundle_id: UUID | None) -> Organization:
        """Point the organization at a bundle, adopting its caps and modules.

        Passing ``None`` clears ``current_bundle_id`` only; module rows
        granted by the previous bundle are kept.
        """
        async with self._store.transaction() as tx:
            org = await lock_org(tx, org_id)
            if bundle_id is None:
                org = replace(org, current_bundle_id=None)
                await tx.orgs.update(org)
                logger.info("Bundle unassigned org=%s", org_id)
                return org

            bundle = await tx.billing.get_bundle(bundle_id)
            if bundle is None or not bundle.is_active:
                raise NotFoundError("Bundle not found or inactive")

            max_users = bundle.max_users if bundle.max_users is not None else org.max_users
            max_employees = (
                bundle.max_employees if bundle.max_employees is not None else org.max_employees
            )
            await ensure_cap_fits(tx, org_id, "users", max_users)
            await ensure_cap_fits(tx, org_id, "employees", max_employees)

            org = replace(
                org,
                current_bundle_id=bundle.id,
                max_users=max_users,
                max_employees=max_employees,
            )
            await tx.orgs.update(org)
            for bundle_module in bundle.modules:
                if await tx.modules.get_module(bundle_module.module_id) is None:
                    raise NotFoundError("Bundle references an unknown module")
                await upsert_entitlement(
                    tx, org_id, bundle_module.module_id, is_enabled=True, plan=bundle_module.plan
                )

        logger.info(
            "Bundle assigned org=%s bundle=%s modules=%d max_users=%s max_employees=%s",
            org_id,
            bundle.name,
            len(bundle.modules),
            max_users,
            max_employees,
        )
        return org

    async def create_bundle(
        self,
        *,
        name: str,
        modules: list[tuple[str, str]],
        max_users: int | None = None,
        max_employees: int | None = None,
        price_cents: int = 0,
        currency: str = "SAR",
        billing_period: BillingPeriod = BillingPeriod.MONTHLY,
    ) -> Bundle:
        if not modules:
            raise ValidationError("A bundle needs at least one module")
        async with self._store.transaction() as tx:
            if any(b.name == name for b in await tx.billing.list_bundles()):
                raise ConflictError(f"Bundle {name!r} already exists")
            members = []
            for module_key, plan in modules:
                module = await _module_by_key(tx, module_key)
                members.append(BundleModule(module_id=module.id, plan=plan))
            bundle = Bundle.new(
                name=name,
                modules=tuple(members),
                max_users=max_users,
                max_employees=max_employees,
                price_cents=price_cents,
                currency=currency,
                billing_period=billing_period,
            )
            await tx.billing.add_bundle(bundle)
        logger.info("Bundle created name=%s modules=%d", name, len(members))
        return bundle

    async def list_bundles(self) -> list[Bundle]:
        async with self._store.transaction() as tx:
            return await tx.billing.list_bundles()

    # --- trials ---

    async def extend_trial(
        self, org_id: UUID, days: int, *, now: datetime | None = None
    ) -> list[OrgModule]:
        """Set ``trial_ends_at = now + days`` on every enabled module."""
        if days <= 0:
            raise ValidationError("days must be positive")
        now = now or utcnow()
        trial_ends_at = now + timedelta(days=days)
        updated: list[OrgModule] = []
        async with self._store.transaction() as tx:
            await lock_org(tx, org_id)
            for org_module in await tx.modules.list_org_modules(org_id):
                if not org_module.is_enabled:
                    continue
                updated.append(
                    await tx.modules.upsert_org_module(
                        replace(
                            org_module,
                            trial_ends_at=trial_ends_at,
                            plan=org_module.plan or "trial",
                        )
                    )
                )
        logger.info(
            "Trial extended org=%s days=%d modules=%d until=%s",
            org_id,
            days,
            len(updated),
            trial_ends_at.isoformat(),
        )
        return updated

    # --- caps ---

    async def set_limits(
        self,
        org_id: UUID,
        *,
        max_users: object = _UNSET,
        max_employees: object = _UNSET,
    ) -> Organization:
        """Change one or both caps.  ``None`` means unlimited; omitted caps are kept."""
        caps: dict[Resource, int | None] = {}
        if max_users is not _UNSET:
            caps["users"] = max_users  # type: ignore[assignment]
        if max_employees is not _UNSET:
            caps["employees"] = max_employees  # type: ignore[assignment]

        async with self._store.transaction() as tx:
            org = await lock_org(tx, org_id)
            for resource, cap in caps.items():
                await ensure_cap_fits(tx, org_id, resource, cap)
            if "users" in caps:
                org = replace(org, max_users=caps["users"])
            if "employees" in caps:
                org = replace(org, max_employees=caps["employees"])
            await tx.orgs.update(org)
        logger.info("Caps changed org=%s caps=%s", org_id, caps)
        return org

    async def set_user_limit(self, org_id: UUID, cap: int | None) -> Organization:
        return await self.set_limits(org_id, max_users=cap)

    async def set_employee_limit(self, org_id: UUID, cap: int | None) -> Organization:
        return await self.set_limits(org_id, max_employees=cap)

    # --- organization ---

    async def set_org_expiry(self, org_id: UUID, expires_at: datetime | None) -> Organization:
        async with self._store.transaction() as tx:
            org = replace(await lock_org(tx, org_id), expires_at=expires_at)
            await tx.orgs.update(org)
        logger.info(
            "Organization expiry set org=%s expires_at=%s",
            org_id,
            expires_at.isoformat() if expires_at else None,
        )
        return org

    async def set_org_state(self, org_id: UUID, state: LifecycleState) -> Organization:
        async with self._store.transaction() as tx:
            org = replace(await lock_org(tx, org_id), state=state)
            await tx.orgs.update(org)
        logger.info("Organization state set org=%s state=%s", org_id, state.value)
        return org

    async def get_organization(self, org_id: UUID) -> Organization:
        async with self._store.transaction() as tx:
            org = await tx.orgs.get(org_id)
        if org is None:
            raise NotFoundError("Organization not found")
        return org

    async def list_organizations(self) -> list[Organization]:
        async with self._store.transaction() as tx:
            return await tx.orgs.list_all()

    async def set_org_module(
        self,
        org_id: UUID,
        module_key: str,
        *,
        is_enabled: bool,
        plan: object = _UNSET,
        seats: object = _UNSET,
        expires_at: object = _UNSET,
        trial_ends_at: object = _UNSET,
    ) -> OrgModule:
        """Operator override of one entitlement row.  Omitted fields are kept."""
        fields: dict[str, object] = {"is_enabled": is_enabled}
        for name, value in (
            ("plan", plan),
            ("seats", seats),
            ("expires_at", expires_at),
            ("trial_ends_at", trial_ends_at),
        ):
            if value is not _UNSET:
                fields[name] = value
        async with self._store.transaction() as tx:
            await lock_org(tx, org_id)
            module = await _module_by_key(tx, module_key)
            org_module = await upsert_entitlement(tx, org_id, module.id, **fields)
        logger.info(
            "Module override org=%s module=%s fields=%s",
            org_id,
            module_key,
            sorted(fields),
        )
        return org_module

    # --- catalog ---

    async def set_module_availability(self, module_key: str, is_active: bool) -> Module:
        async with self._store.transaction() as tx:
            module = await _module_by_key(tx, module_key)
            updated = await tx.modules.set_module_active(module.id, is_active)
        if updated is None:
            raise NotFoundError(f"Module {module_key!r} not found")
        logger.info("Module availability set module=%s is_active=%s", module_key, is_active)
        return updated

    async def create_module_price(
        self,
        module_key: str,
        *,
        plan: str,
        billing_period: BillingPeriod,
        price_cents: int,
        currency: str = "SAR",
        max_seats: int | None = None,
    ) -> ModulePrice:
        if price_cents < 0:
            raise ValidationError("price_cents must be zero or positive")
        async with self._store.transaction() as tx:
            module = await _module_by_key(tx, module_key)
            if await tx.billing.get_price(module.id, plan, billing_period) is not None:
                raise ConflictError(
                    f"Price for {module_key}/{plan}/{billing_period.value} already exists"
                )
            price = ModulePrice.new(
                module_id=module.id,
                plan=plan,
                billing_period=billing_period,
                price_cents=price_cents,
                currency=currency,
                max_seats=max_seats,
            )
            await tx.billing.add_price(price)
        logger.info(
            "Module price created module=%s plan=%s period=%s cents=%d",
            module_key,
            plan,
            billing_period.value,
            price_cents,
        )
        return price

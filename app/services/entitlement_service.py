"""Per-organization module entitlements on the read path.

``evaluate`` in app.models.module is the pure rule.  This module adds the
one write the read path is allowed to make: lazy trial activation.  A row
that is disabled but still inside its trial window is switched on the
first time anyone looks at it.  The write is an absolute ``is_enabled =
true``, so concurrent observers racing on the same row converge.

Trial expiry never switches a row off here; an expired trial simply stops
being reported as a trial.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime
from uuid import UUID

from app.core.metrics import LAZY_ACTIVATIONS
from app.models.module import Entitlement, LicensedModule, Module, OrgModule, evaluate
from app.repos.store import Store, Transaction

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


async def activate_if_trial(
    tx: Transaction, module: Module, org_module: OrgModule, now: datetime
) -> tuple[OrgModule, Entitlement]:
    """Evaluate ``org_module``, enabling it first when a trial is running."""
    entitlement = evaluate(org_module, now)
    if not entitlement.needs_activation:
        return org_module, entitlement

    org_module = await tx.modules.upsert_org_module(replace(org_module, is_enabled=True))
    LAZY_ACTIVATIONS.labels(module_key=module.key).inc()
    logger.info(
        "Trial module activated on read org=%s module=%s trial_ends_at=%s",
        org_module.org_id,
        module.key,
        org_module.trial_ends_at.isoformat() if org_module.trial_ends_at else None,
    )
    return org_module, evaluate(org_module, now)


async def observe_module(
    tx: Transaction, org_id: UUID, module: Module, now: datetime
) -> Entitlement | None:
    org_module = await tx.modules.get_org_module(org_id, module.id)
    if org_module is None:
        return None
    _, entitlement = await activate_if_trial(tx, module, org_module, now)
    return entitlement


async def licensed_modules(
    tx: Transaction, org_id: UUID, now: datetime
) -> list[LicensedModule]:
    """Rows that are enabled or inside a running trial, lazily activated."""
    licensed: list[LicensedModule] = []
    for org_module in await tx.modules.list_org_modules(org_id):
        entitlement = evaluate(org_module, now)
        if not (entitlement.is_enabled or entitlement.is_trial):
            continue
        module = await tx.modules.get_module(org_module.module_id)
        if module is None:
            continue
        org_module, entitlement = await activate_if_trial(tx, module, org_module, now)
        licensed.append(
            LicensedModule(module=module, org_module=org_module, entitlement=entitlement)
        )
    licensed.sort(key=lambda lm: lm.module.key)
    return licensed


class EntitlementService:
    def __init__(self, store: Store) -> None:
        self._store = store

    async def observe(
        self, org_id: UUID, module_key: str, now: datetime | None = None
    ) -> Entitlement | None:
        """Entitlement of one module for an organization, or None without a row."""
        now = now or utcnow()
        async with self._store.transaction() as tx:
            module = await tx.modules.get_by_key(module_key)
            if module is None:
                return None
            return await observe_module(tx, org_id, module, now)

    async def list_licensed(
        self, org_id: UUID, now: datetime | None = None
    ) -> list[LicensedModule]:
        now = now or utcnow()
        async with self._store.transaction() as tx:
            return await licensed_modules(tx, org_id, now)

    async def list_org_modules(self, org_id: UUID) -> list[LicensedModule]:
        """Every entitlement row of an organization, without side effects."""
        now = utcnow()
        rows: list[LicensedModule] = []
        async with self._store.transaction() as tx:
            for org_module in await tx.modules.list_org_modules(org_id):
                module = await tx.modules.get_module(org_module.module_id)
                if module is None:
                    continue
                rows.append(
                    LicensedModule(
                        module=module, org_module=org_module, entitlement=evaluate(org_module, now)
                    )
                )
        rows.sort(key=lambda lm: lm.module.key)
        return rows

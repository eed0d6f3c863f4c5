from __future__ import annotations

import asyncio

from app.db.seed import (
    BUNDLES,
    MODULES,
    PERMISSION_KEYS,
    ensure_super_admin,
    grants_for,
    load_catalog,
)
from app.models.billing import BillingPeriod
from app.repos.store import InMemoryStore


def test_catalog_load_is_idempotent(store: InMemoryStore) -> None:
    async def counts():
        async with store.transaction() as tx:
            return (
                len(await tx.modules.list_modules()),
                len(await tx.rbac.list_permissions()),
                len(await tx.rbac.list_roles()),
                len(await tx.billing.list_prices()),
                len(await tx.billing.list_bundles()),
            )

    before = asyncio.run(counts())
    asyncio.run(load_catalog(store))

    assert asyncio.run(counts()) == before
    assert before[0] == len(MODULES)
    assert before[1] == len(PERMISSION_KEYS)
    assert before[4] == len(BUNDLES)


def test_yearly_price_is_ten_months(store: InMemoryStore) -> None:
    async def prices():
        async with store.transaction() as tx:
            hr = await tx.modules.get_by_key("hr")
            assert hr is not None
            monthly = await tx.billing.get_price(hr.id, "pro", BillingPeriod.MONTHLY)
            yearly = await tx.billing.get_price(hr.id, "pro", BillingPeriod.YEARLY)
            return monthly, yearly

    monthly, yearly = asyncio.run(prices())
    assert monthly is not None and yearly is not None
    assert yearly.price_cents == monthly.price_cents * 10
    assert monthly.max_seats == 10


def test_role_grants() -> None:
    assert set(grants_for("owner")) == set(PERMISSION_KEYS)
    assert "billing.subscriptions.manage" not in grants_for("admin")
    assert "billing.subscriptions.view" in grants_for("admin")
    assert grants_for("member") == []
    assert grants_for("hr.viewer") == ["hr.employees.view"]
    assert all(k.startswith("hr.") for k in grants_for("hr.manager"))
    assert all(k.endswith(".view") for k in grants_for("pmo.viewer"))


def test_ensure_super_admin_is_idempotent(store: InMemoryStore) -> None:
    first = asyncio.run(ensure_super_admin(store, "root@example.com", "hash"))
    second = asyncio.run(ensure_super_admin(store, "root@example.com", "other-hash"))

    assert first.is_super_admin
    assert second.id == first.id
    assert second.password_hash == "hash"

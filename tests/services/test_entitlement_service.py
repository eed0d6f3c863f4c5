from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from app.models.module import EntitlementState, OrgModule, evaluate
from app.repos.store import InMemoryStore
from app.services.container import Services
from tests.factories import get_module_row, make_org, set_module

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
PAST = NOW - timedelta(days=1)
FUTURE = NOW + timedelta(days=1)


def _row(**fields) -> OrgModule:
    return OrgModule.new(org_id=uuid4(), module_id=uuid4(), **fields)


@pytest.mark.parametrize(
    ("fields", "usable", "is_expired", "is_trial", "state"),
    [
        ({}, False, False, False, EntitlementState.DISABLED),
        ({"is_enabled": True}, True, False, False, EntitlementState.ACTIVE),
        ({"is_enabled": True, "expires_at": FUTURE}, True, False, False, EntitlementState.ACTIVE),
        ({"is_enabled": True, "expires_at": PAST}, False, True, False, EntitlementState.EXPIRED),
        ({"is_enabled": False, "expires_at": PAST}, False, True, False, EntitlementState.EXPIRED),
        ({"is_enabled": True, "trial_ends_at": FUTURE}, True, False, True, EntitlementState.TRIAL),
        ({"is_enabled": False, "trial_ends_at": FUTURE}, False, False, True, EntitlementState.TRIAL),
        # An ended trial is no longer a trial but stays enabled.
        ({"is_enabled": True, "trial_ends_at": PAST}, True, False, False, EntitlementState.ACTIVE),
        ({"is_enabled": True, "trial_ends_at": NOW}, True, False, True, EntitlementState.TRIAL),
        ({"is_enabled": True, "expires_at": NOW}, True, False, False, EntitlementState.ACTIVE),
    ],
)
def test_evaluate(fields, usable, is_expired, is_trial, state) -> None:
    entitlement = evaluate(_row(**fields), NOW)
    assert entitlement.usable is usable
    assert entitlement.is_expired is is_expired
    assert entitlement.is_trial is is_trial
    assert entitlement.state is state


def test_only_disabled_rows_in_running_trial_need_activation() -> None:
    assert evaluate(_row(is_enabled=False, trial_ends_at=FUTURE), NOW).needs_activation
    assert not evaluate(_row(is_enabled=True, trial_ends_at=FUTURE), NOW).needs_activation
    assert not evaluate(_row(is_enabled=False, trial_ends_at=PAST), NOW).needs_activation


def test_expiry_is_derived_without_writing(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        await set_module(store, org.id, "hr", is_enabled=True, expires_at=PAST)
        entitlement = await services.entitlements.observe(org.id, "hr", now=NOW)
        return entitlement, await get_module_row(store, org.id, "hr")

    entitlement, row = asyncio.run(scenario())
    assert entitlement is not None
    assert entitlement.is_expired
    assert not entitlement.usable
    assert row is not None and row.is_enabled


def test_lazy_activation_is_idempotent(
    services: Services, store: InMemoryStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    writes: list[OrgModule] = []
    real_upsert = store.modules.upsert_org_module

    async def counting_upsert(org_module: OrgModule) -> OrgModule:
        writes.append(org_module)
        return await real_upsert(org_module)

    async def scenario():
        org = await make_org(store)
        await set_module(store, org.id, "hr", is_enabled=False, trial_ends_at=FUTURE)
        monkeypatch.setattr(store.modules, "upsert_org_module", counting_upsert)
        results = [await services.entitlements.observe(org.id, "hr", now=NOW) for _ in range(3)]
        return results, await get_module_row(store, org.id, "hr")

    results, row = asyncio.run(scenario())
    assert len(writes) == 1
    assert all(r is not None and r.is_enabled and r.is_trial and r.usable for r in results)
    assert row is not None and row.is_enabled


def test_trial_module_is_listed_and_activated(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        trial_ends_at = datetime.now(UTC) + timedelta(days=7)
        await set_module(
            store, org.id, "hr", is_enabled=False, plan="trial", trial_ends_at=trial_ends_at
        )
        listed = await services.entitlements.list_licensed(org.id)
        return listed, await get_module_row(store, org.id, "hr")

    listed, row = asyncio.run(scenario())
    assert [lm.module.key for lm in listed] == ["hr"]
    assert listed[0].entitlement.is_trial
    assert listed[0].entitlement.is_enabled
    assert row is not None and row.is_enabled


def test_list_licensed_skips_disabled_rows(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        await set_module(store, org.id, "hr", is_enabled=True)
        await set_module(store, org.id, "pmo", is_enabled=False)
        await set_module(store, org.id, "sales", is_enabled=False, trial_ends_at=PAST)
        return await services.entitlements.list_licensed(org.id, now=NOW)

    assert [lm.module.key for lm in asyncio.run(scenario())] == ["hr"]


def test_list_org_modules_has_no_side_effects(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        trial_ends_at = datetime.now(UTC) + timedelta(days=3)
        await set_module(store, org.id, "hr", is_enabled=False, trial_ends_at=trial_ends_at)
        rows = await services.entitlements.list_org_modules(org.id)
        return rows, await get_module_row(store, org.id, "hr")

    rows, row = asyncio.run(scenario())
    assert [lm.module.key for lm in rows] == ["hr"]
    assert row is not None and not row.is_enabled


def test_observe_without_row_is_none(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        return (
            await services.entitlements.observe(org.id, "hr"),
            await services.entitlements.observe(org.id, "no-such-module"),
        )

    assert asyncio.run(scenario()) == (None, None)

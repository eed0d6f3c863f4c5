from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from app.core.errors import ConflictError, LimitViolationError, NotFoundError, ValidationError
from app.models.billing import BillingPeriod
from app.models.module import OrgModule
from app.repos.store import InMemoryStore
from app.services.container import Services
from tests.factories import add_employees, get_module_row, make_member, make_org, set_module


def _bundle(services: Services, modules, **caps):
    return asyncio.run(
        services.assignments.create_bundle(name=f"Bundle {uuid4().hex[:6]}", modules=modules, **caps)
    )


def test_assign_bundle_enables_modules_and_adopts_caps(
    services: Services, store: InMemoryStore
) -> None:
    bundle = _bundle(services, [("hr", "pro"), ("ticketing", "basic")], max_users=10, max_employees=50)
    org = asyncio.run(make_org(store))

    updated = asyncio.run(services.assignments.assign_bundle(org.id, bundle.id))

    assert updated.current_bundle_id == bundle.id
    assert (updated.max_users, updated.max_employees) == (10, 50)
    hr = asyncio.run(get_module_row(store, org.id, "hr"))
    ticketing = asyncio.run(get_module_row(store, org.id, "ticketing"))
    assert hr is not None and hr.is_enabled and hr.plan == "pro"
    assert ticketing is not None and ticketing.is_enabled and ticketing.plan == "basic"


def test_assign_bundle_keeps_existing_caps_when_bundle_has_none(
    services: Services, store: InMemoryStore
) -> None:
    bundle = _bundle(services, [("hr", "pro")])
    org = asyncio.run(make_org(store, max_users=4, max_employees=9))

    updated = asyncio.run(services.assignments.assign_bundle(org.id, bundle.id))

    assert (updated.max_users, updated.max_employees) == (4, 9)


def test_assign_bundle_rolls_back_when_a_module_write_fails(
    services: Services, store: InMemoryStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    bundle = _bundle(services, [("hr", "pro"), ("ticketing", "pro"), ("pmo", "pro")], max_users=20)
    org = asyncio.run(make_org(store))
    asyncio.run(set_module(store, org.id, "hr", is_enabled=False, plan="basic"))

    real_upsert = store.modules.upsert_org_module
    calls = []

    async def failing_upsert(org_module: OrgModule) -> OrgModule:
        calls.append(org_module)
        if len(calls) == 2:
            raise RuntimeError("write failed")
        return await real_upsert(org_module)

    monkeypatch.setattr(store.modules, "upsert_org_module", failing_upsert)
    with pytest.raises(RuntimeError):
        asyncio.run(services.assignments.assign_bundle(org.id, bundle.id))
    monkeypatch.undo()

    stored_org = asyncio.run(services.assignments.get_organization(org.id))
    assert stored_org.current_bundle_id is None
    assert stored_org.max_users is None
    hr = asyncio.run(get_module_row(store, org.id, "hr"))
    assert hr is not None and not hr.is_enabled and hr.plan == "basic"
    assert asyncio.run(get_module_row(store, org.id, "ticketing")) is None
    assert asyncio.run(get_module_row(store, org.id, "pmo")) is None


def test_assign_bundle_over_user_cap_is_rejected(services: Services, store: InMemoryStore) -> None:
    bundle = _bundle(services, [("hr", "pro"), ("ticketing", "basic")], max_users=10)

    async def build():
        org = await make_org(store)
        for _ in range(12):
            await make_member(store, org.id)
        return org

    org = asyncio.run(build())
    with pytest.raises(LimitViolationError) as exc_info:
        asyncio.run(services.assignments.assign_bundle(org.id, bundle.id))

    assert exc_info.value.resource == "users"
    assert (exc_info.value.current_count, exc_info.value.cap) == (12, 10)
    assert asyncio.run(get_module_row(store, org.id, "hr")) is None
    assert asyncio.run(services.assignments.get_organization(org.id)).current_bundle_id is None


def test_unassigning_a_bundle_keeps_modules(services: Services, store: InMemoryStore) -> None:
    bundle = _bundle(services, [("hr", "pro")])
    org = asyncio.run(make_org(store))
    asyncio.run(services.assignments.assign_bundle(org.id, bundle.id))

    updated = asyncio.run(services.assignments.assign_bundle(org.id, None))

    assert updated.current_bundle_id is None
    hr = asyncio.run(get_module_row(store, org.id, "hr"))
    assert hr is not None and hr.is_enabled


def test_assign_unknown_bundle_is_not_found(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store))
    with pytest.raises(NotFoundError):
        asyncio.run(services.assignments.assign_bundle(org.id, uuid4()))


def test_create_bundle_validation(services: Services) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(services.assignments.create_bundle(name="Empty", modules=[]))
    with pytest.raises(NotFoundError):
        asyncio.run(services.assignments.create_bundle(name="Ghost", modules=[("crm", "pro")]))
    with pytest.raises(ConflictError):
        asyncio.run(services.assignments.create_bundle(name="Starter Bundle", modules=[("hr", "pro")]))


def test_extend_trial_touches_enabled_modules_only(services: Services, store: InMemoryStore) -> None:
    now = datetime(2026, 5, 1, tzinfo=UTC)
    org = asyncio.run(make_org(store))
    asyncio.run(set_module(store, org.id, "hr", is_enabled=True))
    asyncio.run(set_module(store, org.id, "ticketing", is_enabled=True, plan="pro"))
    asyncio.run(set_module(store, org.id, "pmo", is_enabled=False))

    updated = asyncio.run(services.assignments.extend_trial(org.id, 14, now=now))

    assert len(updated) == 2
    hr = asyncio.run(get_module_row(store, org.id, "hr"))
    ticketing = asyncio.run(get_module_row(store, org.id, "ticketing"))
    pmo = asyncio.run(get_module_row(store, org.id, "pmo"))
    assert hr is not None and hr.trial_ends_at == now + timedelta(days=14) and hr.plan == "trial"
    assert ticketing is not None and ticketing.plan == "pro"
    assert pmo is not None and pmo.trial_ends_at is None


def test_extend_trial_requires_positive_days(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store))
    with pytest.raises(ValidationError):
        asyncio.run(services.assignments.extend_trial(org.id, 0))


def test_set_limits_below_current_usage_is_rejected(
    services: Services, store: InMemoryStore
) -> None:
    async def build():
        org = await make_org(store)
        for _ in range(3):
            await make_member(store, org.id)
        await add_employees(store, org.id, 5)
        return org

    org = asyncio.run(build())
    with pytest.raises(LimitViolationError) as exc_info:
        asyncio.run(services.assignments.set_limits(org.id, max_users=10, max_employees=4))
    assert exc_info.value.resource == "employees"
    assert asyncio.run(services.assignments.get_organization(org.id)).max_users is None

    updated = asyncio.run(services.assignments.set_limits(org.id, max_users=3, max_employees=5))
    assert (updated.max_users, updated.max_employees) == (3, 5)


def test_set_limits_keeps_omitted_caps(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store, max_users=5, max_employees=7))

    updated = asyncio.run(services.assignments.set_user_limit(org.id, None))

    assert updated.max_users is None
    assert updated.max_employees == 7
    with pytest.raises(ValidationError):
        asyncio.run(services.assignments.set_employee_limit(org.id, -1))


def test_set_org_module_overrides_only_given_fields(
    services: Services, store: InMemoryStore
) -> None:
    expires_at = datetime(2027, 1, 1, tzinfo=UTC)
    org = asyncio.run(make_org(store))
    asyncio.run(set_module(store, org.id, "hr", is_enabled=True, plan="pro", seats=10))

    row = asyncio.run(
        services.assignments.set_org_module(org.id, "hr", is_enabled=False, expires_at=expires_at)
    )

    assert not row.is_enabled
    assert (row.plan, row.seats, row.expires_at) == ("pro", 10, expires_at)


def test_set_org_module_unknown_module(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store))
    with pytest.raises(NotFoundError):
        asyncio.run(services.assignments.set_org_module(org.id, "crm", is_enabled=True))


def test_create_module_price(services: Services) -> None:
    with pytest.raises(ConflictError):
        asyncio.run(
            services.assignments.create_module_price(
                "hr", plan="pro", billing_period=BillingPeriod.MONTHLY, price_cents=1
            )
        )
    with pytest.raises(ValidationError):
        asyncio.run(
            services.assignments.create_module_price(
                "hr", plan="gold", billing_period=BillingPeriod.MONTHLY, price_cents=-5
            )
        )

    price = asyncio.run(
        services.assignments.create_module_price(
            "hr", plan="gold", billing_period=BillingPeriod.YEARLY, price_cents=500000, max_seats=100
        )
    )
    assert (price.plan, price.billing_period, price.max_seats) == ("gold", BillingPeriod.YEARLY, 100)


def test_organization_lookups(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store))
    assert org.id in {o.id for o in asyncio.run(services.assignments.list_organizations())}
    with pytest.raises(NotFoundError):
        asyncio.run(services.assignments.get_organization(uuid4()))
    with pytest.raises(NotFoundError):
        asyncio.run(services.assignments.set_org_expiry(uuid4(), None))

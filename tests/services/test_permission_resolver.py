from __future__ import annotations

import asyncio
from uuid import uuid4

from app.models.organization import LifecycleState
from app.repos.store import InMemoryStore
from app.services.container import Services
from tests.factories import make_member, make_org, make_user


def test_permissions_are_the_union_of_all_roles(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        _, membership = await make_member(store, org.id, ("hr.viewer", "ticketing.viewer"))
        return await services.resolver.resolve(membership.id)

    permissions = asyncio.run(scenario())
    assert permissions.sorted_keys() == ["hr.employees.view", "ticketing.tickets.view"]
    assert not permissions.universal


def test_overlapping_roles_are_deduplicated(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        _, both = await make_member(store, org.id, ("hr.manager", "hr.viewer"))
        _, manager = await make_member(store, org.id, ("hr.manager",))
        return (
            await services.resolver.resolve(both.id),
            await services.resolver.resolve(manager.id),
        )

    both, manager = asyncio.run(scenario())
    assert both.keys == manager.keys
    assert "hr.employees.view" in both


def test_member_role_grants_nothing(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        _, membership = await make_member(store, org.id, ("member",))
        return await services.resolver.resolve(membership.id)

    assert len(asyncio.run(scenario())) == 0


def test_unknown_or_deactivated_membership_resolves_to_empty(
    services: Services, store: InMemoryStore
) -> None:
    async def scenario():
        org = await make_org(store)
        _, gone = await make_member(store, org.id, ("owner",), state=LifecycleState.DEACTIVATED)
        return (
            await services.resolver.resolve(uuid4()),
            await services.resolver.resolve(gone.id),
        )

    missing, deactivated = asyncio.run(scenario())
    assert len(missing) == 0
    assert len(deactivated) == 0


def test_role_change_is_visible_on_next_resolution(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        org = await make_org(store)
        _, membership = await make_member(store, org.id, ("member",))
        before = await services.resolver.resolve(membership.id)
        async with store.transaction() as tx:
            role = await tx.rbac.get_role_by_key("admin")
            assert role is not None
            await tx.rbac.assign_role(membership.id, role.id)
        after = await services.resolver.resolve(membership.id)
        return before, after

    before, after = asyncio.run(scenario())
    assert "users.view" not in before
    assert "users.view" in after
    assert "billing.subscriptions.manage" not in after


def test_super_admin_resolves_to_everything(services: Services, store: InMemoryStore) -> None:
    async def scenario():
        root = await make_user(store, is_super_admin=True)
        return await services.resolver.resolve_for(root.id, None)

    permissions = asyncio.run(scenario())
    assert permissions.universal
    assert "billing.subscriptions.manage" in permissions
    assert "anything.at.all" in permissions


def test_resolve_for_user_without_membership_is_empty(
    services: Services, store: InMemoryStore
) -> None:
    async def scenario():
        org = await make_org(store)
        user = await make_user(store)
        return await services.resolver.resolve_for(user.id, org.id)

    assert len(asyncio.run(scenario())) == 0

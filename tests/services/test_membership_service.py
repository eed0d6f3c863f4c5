from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from app.core.errors import ConflictError, LimitViolationError, NotFoundError, ValidationError
from app.models.organization import LifecycleState
from app.models.rbac import Role
from app.repos.org_membership_repo import InMemoryMembershipRepo
from app.repos.store import InMemoryStore
from app.services.container import Services
from app.services.notifications import NOTIFICATIONS_QUEUE
from app.services.task_queue import InMemoryTaskQueue
from tests.factories import add_employees, make_member, make_org


def _violations(resource: str) -> float:
    return REGISTRY.get_sample_value("limit_violations_total", {"resource": resource}) or 0.0


def test_user_cap_is_enforced_and_freed_by_deactivation(
    services: Services, store: InMemoryStore
) -> None:
    async def build():
        org = await make_org(store, max_users=3)
        members = [await make_member(store, org.id) for _ in range(3)]
        return org, members

    org, members = asyncio.run(build())
    before = _violations("users")

    with pytest.raises(LimitViolationError) as exc_info:
        asyncio.run(services.memberships.add_member(org.id, email="fourth@example.com"))
    assert (exc_info.value.current_count, exc_info.value.cap) == (3, 3)
    assert _violations("users") == before + 1

    _, first = members[0]
    asyncio.run(services.memberships.deactivate_member(org.id, first.id))
    view = asyncio.run(services.memberships.add_member(org.id, email="fourth@example.com"))
    assert view.membership.is_active


def test_concurrent_adds_cannot_both_take_the_last_seat(
    services: Services, store: InMemoryStore
) -> None:
    async def race():
        org = await make_org(store, max_users=2)
        await make_member(store, org.id)
        results = await asyncio.gather(
            services.memberships.add_member(org.id, email="a@example.com"),
            services.memberships.add_member(org.id, email="b@example.com"),
            return_exceptions=True,
        )
        async with store.transaction() as tx:
            active = await tx.memberships.count_active(org.id)
        return results, active

    results, active = asyncio.run(race())

    assert sum(isinstance(r, LimitViolationError) for r in results) == 1
    assert active == 2


def test_add_member_creates_user_and_assigns_roles(
    services: Services, store: InMemoryStore, queue: InMemoryTaskQueue
) -> None:
    org = asyncio.run(make_org(store))

    view = asyncio.run(
        services.memberships.add_member(
            org.id, email="  New@Example.com ", name="New", role_keys=("admin",)
        )
    )

    assert view.user.email == "new@example.com"
    assert [r.key for r in view.roles] == ["admin"]
    task = asyncio.run(queue.dequeue(NOTIFICATIONS_QUEUE))
    assert task is not None
    assert task.payload["kind"] == "member_invited"
    assert task.payload["email"] == "new@example.com"


def test_add_member_reuses_existing_account(services: Services, store: InMemoryStore) -> None:
    async def build():
        home = await make_org(store, "Home")
        other = await make_org(store, "Other")
        user, _ = await make_member(store, home.id)
        return other, user

    other, user = asyncio.run(build())
    view = asyncio.run(services.memberships.add_member(other.id, email=user.email))
    assert view.user.id == user.id


def test_add_member_rejects_duplicates_and_bad_input(
    services: Services, store: InMemoryStore
) -> None:
    async def build():
        org = await make_org(store)
        user, _ = await make_member(store, org.id)
        return org, user

    org, user = asyncio.run(build())
    with pytest.raises(ConflictError):
        asyncio.run(services.memberships.add_member(org.id, email=user.email))
    with pytest.raises(ValidationError):
        asyncio.run(services.memberships.add_member(org.id, email="not-an-email"))
    with pytest.raises(ValidationError):
        asyncio.run(services.memberships.add_member(org.id, email="x@example.com", role_keys=()))
    with pytest.raises(NotFoundError):
        asyncio.run(
            services.memberships.add_member(org.id, email="y@example.com", role_keys=("wizard",))
        )


def test_unknown_role_leaves_no_account_behind(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store))
    with pytest.raises(NotFoundError):
        asyncio.run(
            services.memberships.add_member(org.id, email="ghost@example.com", role_keys=("wizard",))
        )

    async def lookup():
        async with store.transaction() as tx:
            return await tx.users.get_by_email("ghost@example.com")

    assert asyncio.run(lookup()) is None


def test_re_adding_a_removed_member_reactivates_membership(
    services: Services, store: InMemoryStore
) -> None:
    async def build():
        org = await make_org(store)
        user, membership = await make_member(store, org.id, state=LifecycleState.DEACTIVATED)
        return org, user, membership

    org, user, membership = asyncio.run(build())
    view = asyncio.run(services.memberships.add_member(org.id, email=user.email))
    assert view.membership.id == membership.id
    assert view.membership.is_active


def test_reactivation_rechecks_the_cap(services: Services, store: InMemoryStore) -> None:
    async def build():
        org = await make_org(store, max_users=1)
        _, removed = await make_member(store, org.id, state=LifecycleState.DEACTIVATED)
        await make_member(store, org.id)
        return org, removed

    org, removed = asyncio.run(build())
    with pytest.raises(LimitViolationError):
        asyncio.run(services.memberships.reactivate_member(org.id, removed.id))


def test_reactivate_active_member_is_a_no_op(services: Services, store: InMemoryStore) -> None:
    async def build():
        org = await make_org(store, max_users=1)
        _, membership = await make_member(store, org.id)
        return org, membership

    org, membership = asyncio.run(build())
    assert asyncio.run(services.memberships.reactivate_member(org.id, membership.id)).is_active


def test_members_cannot_remove_themselves(services: Services, store: InMemoryStore) -> None:
    async def build():
        org = await make_org(store)
        user, membership = await make_member(store, org.id, ("owner",))
        return org, user, membership

    org, user, membership = asyncio.run(build())
    with pytest.raises(ConflictError):
        asyncio.run(
            services.memberships.deactivate_member(org.id, membership.id, acting_user_id=user.id)
        )


def test_membership_of_another_org_is_not_found(services: Services, store: InMemoryStore) -> None:
    async def build():
        home = await make_org(store, "Home")
        other = await make_org(store, "Other")
        _, foreign = await make_member(store, other.id)
        return home, foreign

    home, foreign = asyncio.run(build())
    with pytest.raises(NotFoundError):
        asyncio.run(services.memberships.deactivate_member(home.id, foreign.id))
    with pytest.raises(NotFoundError):
        asyncio.run(services.memberships.reactivate_member(home.id, uuid4()))


def test_membership_vanishing_mid_update_is_not_found(
    services: Services, store: InMemoryStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    org = asyncio.run(make_org(store))
    _, removed = asyncio.run(make_member(store, org.id, state=LifecycleState.DEACTIVATED))

    async def gone(self, membership_id, state):
        return None

    monkeypatch.setattr(InMemoryMembershipRepo, "set_state", gone)

    with pytest.raises(NotFoundError):
        asyncio.run(services.memberships.reactivate_member(org.id, removed.id))


def test_org_scoped_roles_are_assignable_only_in_their_org(
    services: Services, store: InMemoryStore
) -> None:
    async def build():
        home = await make_org(store, "Home")
        other = await make_org(store, "Other")
        auditor = Role.new(key="hr.auditor", name="HR Auditor", org_id=home.id)
        async with store.transaction() as tx:
            await tx.rbac.add_role(auditor)
            permission = await tx.rbac.get_permission_by_key("hr.employees.view")
            assert permission is not None
            await tx.rbac.grant(auditor.id, permission.id)
        return home, other, auditor

    home, other, auditor = asyncio.run(build())

    view = asyncio.run(
        services.memberships.add_member(
            home.id, email="aud@example.com", role_keys=("hr.auditor",)
        )
    )
    assert [r.id for r in view.roles] == [auditor.id]
    permissions = asyncio.run(services.resolver.resolve(view.membership.id))
    assert "hr.employees.view" in permissions

    with pytest.raises(NotFoundError):
        asyncio.run(
            services.memberships.add_member(
                other.id, email="aud@example.com", role_keys=("hr.auditor",)
            )
        )


def test_org_role_shadows_the_global_role_of_the_same_key(
    services: Services, store: InMemoryStore
) -> None:
    org = asyncio.run(make_org(store))
    custom = Role.new(key="member", name="Member (custom)", org_id=org.id)

    async def add_custom():
        async with store.transaction() as tx:
            await tx.rbac.add_role(custom)

    asyncio.run(add_custom())
    view = asyncio.run(services.memberships.add_member(org.id, email="m@example.com"))

    assert [r.id for r in view.roles] == [custom.id]


def test_list_members_is_sorted_by_email(services: Services, store: InMemoryStore) -> None:
    async def build():
        org = await make_org(store)
        await make_member(store, org.id, email="zed@example.com")
        await make_member(store, org.id, ("admin",), email="amy@example.com")
        return org

    org = asyncio.run(build())
    views = asyncio.run(services.memberships.list_members(org.id))
    assert [v.user.email for v in views] == ["amy@example.com", "zed@example.com"]
    assert [r.key for r in views[0].roles] == ["admin"]


# ---- employees ----


def test_employee_cap(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store, max_employees=2))
    asyncio.run(add_employees(store, org.id, 2))

    with pytest.raises(LimitViolationError) as exc_info:
        asyncio.run(services.employees.create_employee(org.id, "Third"))
    assert exc_info.value.resource == "employees"


def test_bulk_import_is_all_or_nothing(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store, max_employees=3))
    asyncio.run(add_employees(store, org.id, 1))

    with pytest.raises(LimitViolationError) as exc_info:
        asyncio.run(
            services.employees.bulk_create(org.id, [("A", None), ("B", None), ("C", None)])
        )
    assert exc_info.value.requested == 3
    assert len(asyncio.run(services.employees.list_employees(org.id))) == 1

    created = asyncio.run(
        services.employees.bulk_create(org.id, [("A", "A@Example.com"), ("B", None)])
    )
    assert [e.email for e in created] == ["a@example.com", None]
    assert len(asyncio.run(services.employees.list_employees(org.id))) == 3


def test_employee_name_is_required(services: Services, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store))
    with pytest.raises(ValidationError):
        asyncio.run(services.employees.create_employee(org.id, "   "))
    with pytest.raises(ValidationError):
        asyncio.run(services.employees.bulk_create(org.id, []))

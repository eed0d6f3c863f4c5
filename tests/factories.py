"""Test data builders on top of an InMemoryStore.

All builders are coroutines; synchronous tests wrap them in ``asyncio.run``.
Passwords are stored as placeholder hashes unless a real one is needed,
since argon2 hashing is slow.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from app.core.errors import PaymentProviderError
from app.models.employee import Employee
from app.models.module import OrgModule
from app.models.organization import LifecycleState, Membership, Organization
from app.models.user import User
from app.repos.store import InMemoryStore
from app.services import token_service
from app.services.assignment_engine import upsert_entitlement
from app.services.membership_service import assign_roles
from app.services.payment_provider import Invoice


async def make_org(
    store: InMemoryStore,
    name: str = "Acme",
    *,
    max_users: int | None = None,
    max_employees: int | None = None,
    expires_at: datetime | None = None,
) -> Organization:
    org = replace(
        Organization.new(name=name, slug=f"{name.lower()}-{uuid4().hex[:6]}"),
        max_users=max_users,
        max_employees=max_employees,
        expires_at=expires_at,
    )
    async with store.transaction() as tx:
        await tx.orgs.add(org)
    return org


async def make_user(
    store: InMemoryStore,
    email: str | None = None,
    *,
    password_hash: str = "not-a-real-hash",
    is_super_admin: bool = False,
) -> User:
    user = User.new(
        email=email or f"user-{uuid4().hex[:8]}@example.com",
        password_hash=password_hash,
        is_super_admin=is_super_admin,
    )
    async with store.transaction() as tx:
        await tx.users.add(user)
    return user


async def make_member(
    store: InMemoryStore,
    org_id: UUID,
    role_keys: Sequence[str] = ("member",),
    *,
    email: str | None = None,
    state: LifecycleState = LifecycleState.ACTIVE,
) -> tuple[User, Membership]:
    user = await make_user(store, email)
    membership = replace(Membership.new(user_id=user.id, org_id=org_id), state=state)
    async with store.transaction() as tx:
        await tx.memberships.add(membership)
        if role_keys:
            await assign_roles(tx, membership.id, role_keys, org_id=org_id)
    return user, membership


async def set_module(store: InMemoryStore, org_id: UUID, module_key: str, **fields) -> OrgModule:
    async with store.transaction() as tx:
        module = await tx.modules.get_by_key(module_key)
        assert module is not None, module_key
        return await upsert_entitlement(tx, org_id, module.id, **fields)


async def get_module_row(store: InMemoryStore, org_id: UUID, module_key: str) -> OrgModule | None:
    async with store.transaction() as tx:
        module = await tx.modules.get_by_key(module_key)
        assert module is not None, module_key
        return await tx.modules.get_org_module(org_id, module.id)


async def add_employees(store: InMemoryStore, org_id: UUID, count: int) -> None:
    async with store.transaction() as tx:
        for i in range(count):
            await tx.employees.add(Employee.new(org_id=org_id, full_name=f"Employee {i}"))


def token_for(user: User, org_id: UUID | None) -> str:
    return token_service.create_access_token(
        sub=str(user.id),
        org_id=str(org_id) if org_id else None,
        is_super_admin=user.is_super_admin,
    )


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class FakeProvider:
    """Records invoices in memory; ``paid`` flips what get_invoice reports."""

    name = "fake"

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.paid = False
        self.created: list[dict[str, Any]] = []
        self.lookups = 0

    async def create_invoice(self, **fields: Any) -> Invoice:
        if self.fail:
            raise PaymentProviderError("Failed to create invoice")
        self.created.append(fields)
        return Invoice(
            id=f"inv_{len(self.created)}",
            status="unpaid",
            amount=fields["amount"],
            currency=fields["currency"],
            url=f"https://pay.example.com/inv_{len(self.created)}",
        )

    async def get_invoice(self, invoice_id: str) -> Invoice:
        self.lookups += 1
        return Invoice(
            id=invoice_id, status="paid" if self.paid else "unpaid", amount=0, currency="SAR"
        )

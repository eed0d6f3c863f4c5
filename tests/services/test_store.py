from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import ConflictError
from app.models.organization import Organization
from app.repos.org_repo import InMemoryOrgRepo
from app.repos.store import InMemoryStore, PgStore
from app.repos.user_repo import InMemoryUserRepo
from app.services.container import Services
from tests.factories import make_org


class _Begin:
    """session.begin() whose commit hits a unique constraint."""

    async def __aenter__(self) -> None:
        return None

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            raise IntegrityError(
                "INSERT INTO users", {}, Exception('duplicate key value "users_email_key"')
            )
        return False


class _Session:
    async def __aenter__(self) -> _Session:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    def begin(self) -> _Begin:
        return _Begin()


def test_pg_store_reports_unique_violations_as_conflicts() -> None:
    store = PgStore(_Session)  # type: ignore[arg-type]

    async def commit_duplicate() -> None:
        async with store.transaction():
            pass

    with pytest.raises(ConflictError) as exc_info:
        asyncio.run(commit_duplicate())
    assert isinstance(exc_info.value.__cause__, IntegrityError)


def test_in_memory_store_rolls_back_on_error(store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store))

    async def failing_insert() -> None:
        async with store.transaction() as tx:
            await tx.orgs.add(Organization.new(name="Other", slug="other"))
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(failing_insert())

    async def slugs() -> list[str]:
        async with store.transaction() as tx:
            return [o.slug for o in await tx.orgs.list_all()]

    assert asyncio.run(slugs()) == [org.slug]


def test_add_member_locks_the_org_before_reading(
    services: Services, store: InMemoryStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    org = asyncio.run(make_org(store))
    order: list[str] = []
    real_lock, real_get = InMemoryOrgRepo.lock, InMemoryUserRepo.get_by_email

    async def lock(self, org_id):
        order.append("lock")
        return await real_lock(self, org_id)

    async def get_by_email(self, email):
        order.append("read")
        return await real_get(self, email)

    monkeypatch.setattr(InMemoryOrgRepo, "lock", lock)
    monkeypatch.setattr(InMemoryUserRepo, "get_by_email", get_by_email)

    asyncio.run(services.memberships.add_member(org.id, email="new@example.com"))

    assert order[:2] == ["lock", "read"]

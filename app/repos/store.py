"""Unit of work over every repository.

Services never hold a repo directly; they open ``store.transaction()`` and
work through the repos on the yielded ``Transaction``.  Leaving the block
normally commits; any exception rolls back every write made inside it and
propagates.

Two stores satisfy the protocol:

  InMemoryStore -- used when DATABASE_URL is unset, and by the tests.
    Transactions are serialized by one asyncio.Lock, which also plays the
    role of the organization row lock.  Tables are snapshotted on entry
    and restored on error.

  PgStore -- one AsyncSession per transaction inside ``session.begin()``.
    ``orgs.lock()`` issues SELECT ... FOR UPDATE.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import ConflictError

from app.repos.billing_repo import BillingRepo, InMemoryBillingRepo
from app.repos.employee_repo import EmployeeRepo, InMemoryEmployeeRepo
from app.repos.module_repo import InMemoryModuleRepo, ModuleRepo
from app.repos.org_membership_repo import InMemoryMembershipRepo, MembershipRepo
from app.repos.org_repo import InMemoryOrgRepo, OrgRepo
from app.repos.pg_billing_repo import PgBillingRepo
from app.repos.pg_employee_repo import PgEmployeeRepo
from app.repos.pg_module_repo import PgModuleRepo
from app.repos.pg_org_membership_repo import PgMembershipRepo
from app.repos.pg_org_repo import PgOrgRepo
from app.repos.pg_rbac_repo import PgRbacRepo
from app.repos.pg_user_repo import PgUserRepo
from app.repos.rbac_repo import InMemoryRbacRepo, RbacRepo
from app.repos.user_repo import InMemoryUserRepo, UserRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Transaction:
    users: UserRepo
    orgs: OrgRepo
    memberships: MembershipRepo
    rbac: RbacRepo
    modules: ModuleRepo
    billing: BillingRepo
    employees: EmployeeRepo


class Store(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[Transaction]: ...


class InMemoryStore:
    def __init__(self) -> None:
        self.users = InMemoryUserRepo()
        self.orgs = InMemoryOrgRepo()
        self.memberships = InMemoryMembershipRepo()
        self.rbac = InMemoryRbacRepo()
        self.modules = InMemoryModuleRepo()
        self.billing = InMemoryBillingRepo()
        self.employees = InMemoryEmployeeRepo()
        self._lock = asyncio.Lock()

    def _repos(self) -> Transaction:
        return Transaction(
            users=self.users,
            orgs=self.orgs,
            memberships=self.memberships,
            rbac=self.rbac,
            modules=self.modules,
            billing=self.billing,
            employees=self.employees,
        )

    def _snapshot(self) -> list[tuple[object, dict[str, object]]]:
        # Table values are frozen dataclasses or tuples, so a shallow copy
        # of each dict/set is a full snapshot.
        snapshot = []
        for repo in (
            self.users,
            self.orgs,
            self.memberships,
            self.rbac,
            self.modules,
            self.billing,
            self.employees,
        ):
            tables = {
                name: copy.copy(value)
                for name, value in vars(repo).items()
                if isinstance(value, (dict, set))
            }
            snapshot.append((repo, tables))
        return snapshot

    @staticmethod
    def _restore(snapshot: list[tuple[object, dict[str, object]]]) -> None:
        for repo, tables in snapshot:
            for name, value in tables.items():
                setattr(repo, name, value)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield self._repos()
            except BaseException:
                self._restore(snapshot)
                logger.debug("In-memory transaction rolled back")
                raise


class PgStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """A unique-constraint violation, at flush or at commit, is a ConflictError."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield Transaction(
                        users=PgUserRepo(session),
                        orgs=PgOrgRepo(session),
                        memberships=PgMembershipRepo(session),
                        rbac=PgRbacRepo(session),
                        modules=PgModuleRepo(session),
                        billing=PgBillingRepo(session),
                        employees=PgEmployeeRepo(session),
                    )
            except IntegrityError as exc:
                logger.warning("Transaction rolled back on integrity error: %s", exc.orig)
                raise ConflictError("Conflicting write, the record already exists") from exc

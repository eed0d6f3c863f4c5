from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from starlette.concurrency import run_in_threadpool

from app.core.errors import UnauthorizedError
from app.models.organization import Organization
from app.models.user import User
from app.repos.store import Store, Transaction
from app.services import token_service

# Argon2 hash strings encode parameters + salt
logger = logging.getLogger(__name__)

_ph = PasswordHasher()


def hash_password(plain_password: str) -> str:
    if not plain_password:
        raise ValueError("password must be non-empty")
    return _ph.hash(plain_password)


# verify_password() must catch Argon2 exceptions and return False
def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return _ph.verify(password_hash, plain_password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


async def hash_password_in_thread(plain_password: str) -> str:
    """Hash on the threadpool.  Call it before opening a transaction."""
    return await run_in_threadpool(hash_password, plain_password)


async def authenticate_user(store: Store, email: str, password: str) -> User | None:
    """Check credentials.  Argon2 work runs on the threadpool with no transaction open."""
    async with store.transaction() as tx:
        user = await tx.users.get_by_email(email)
    if user is None:
        return None
    if not user.is_active:
        return None
    if not await run_in_threadpool(verify_password, password, user.password_hash):
        return None

    # Upgrade the stored hash when argon2 parameters changed since it was made.
    if _ph.check_needs_rehash(user.password_hash):
        new_hash = await run_in_threadpool(_ph.hash, password)
        async with store.transaction() as tx:
            await tx.users.update_password_hash(user.id, new_hash)
        logger.info("Rehashed password for user=%s", user.id)
    return user


@dataclass(frozen=True, slots=True)
class IssuedToken:
    access_token: str
    user: User
    organization: Organization | None
    expires_in: int = token_service.ACCESS_TOKEN_TTL_MIN * 60


async def _active_org(tx: Transaction, user_id: UUID, org_id: UUID) -> Organization | None:
    membership = await tx.memberships.get_for(user_id, org_id)
    if membership is None or not membership.is_active:
        return None
    org = await tx.orgs.get(org_id)
    if org is None or not org.is_active:
        return None
    return org


async def _first_active_org(tx: Transaction, user_id: UUID) -> Organization | None:
    for membership in await tx.memberships.list_by_user(user_id):
        org = await _active_org(tx, user_id, membership.org_id)
        if org is not None:
            return org
    return None


class AuthService:
    """Password login and organization switching.

    Tokens carry identity only (user, organization, super-admin flag);
    roles and permissions are resolved per request by the gate.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    def _issue(self, user: User, org: Organization | None) -> IssuedToken:
        token = token_service.create_access_token(
            sub=str(user.id),
            org_id=str(org.id) if org is not None else None,
            is_super_admin=user.is_super_admin,
        )
        return IssuedToken(access_token=token, user=user, organization=org)

    async def login(
        self, email: str, password: str, org_id: UUID | None = None
    ) -> IssuedToken:
        user = await authenticate_user(self._store, email, password)
        if user is None:
            logger.warning("Login failed for email=%s", email.lower().strip())
            raise UnauthorizedError("Invalid credentials")

        async with self._store.transaction() as tx:
            if org_id is not None:
                org = await _active_org(tx, user.id, org_id)
                if org is None and not user.is_super_admin:
                    raise UnauthorizedError("No active membership in this organization")
                if org is None:
                    org = await tx.orgs.get(org_id)
            else:
                org = await _first_active_org(tx, user.id)
                if org is None and not user.is_super_admin:
                    raise UnauthorizedError("User has no active organization")

        logger.info(
            "Login succeeded user=%s org=%s super_admin=%s",
            user.id,
            org.id if org else None,
            user.is_super_admin,
        )
        return self._issue(user, org)

    async def switch_organization(self, user_id: UUID, org_id: UUID) -> IssuedToken:
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_id(user_id)
            if user is None or not user.is_active:
                raise UnauthorizedError("Unknown user")
            org = await _active_org(tx, user.id, org_id)
            if org is None and user.is_super_admin:
                org = await tx.orgs.get(org_id)
            if org is None:
                raise UnauthorizedError("No active membership in this organization")
        logger.info("Organization switched user=%s org=%s", user_id, org_id)
        return self._issue(user, org)

"""Self-service registration: user + organization + owner + trial modules."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from app.core.errors import ConflictError, ValidationError
from app.models.module import OrgModule
from app.models.organization import Membership, Organization
from app.models.user import User
from app.repos.store import Store, Transaction
from app.services.auth_service import hash_password_in_thread
from app.services.entitlement_service import utcnow
from app.services.membership_service import assign_roles
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_MODULES: tuple[str, ...] = ("hr", "ticketing", "marketplace")
TRIAL_PLAN = "trial"

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    slug = _NON_SLUG.sub("-", name.lower()).strip("-")
    return slug or "org"


async def unique_slug(tx: Transaction, name: str) -> str:
    base = slugify(name)
    slug = base
    counter = 1
    while await tx.orgs.get_by_slug(slug) is not None:
        slug = f"{base}-{counter}"
        counter += 1
    return slug


async def seed_trial_modules(
    tx: Transaction,
    org_id: UUID,
    trial_ends_at: datetime,
    module_keys: tuple[str, ...] = DEFAULT_TRIAL_MODULES,
) -> list[str]:
    """Give a new organization trial rows.  Existing rows are left alone."""
    seeded = []
    for key in module_keys:
        module = await tx.modules.get_by_key(key)
        if module is None or not module.is_active:
            logger.warning("Trial module %r missing from catalog, skipped", key)
            continue
        created = await tx.modules.create_org_module_if_absent(
            OrgModule.new(
                org_id=org_id,
                module_id=module.id,
                is_enabled=True,
                plan=TRIAL_PLAN,
                trial_ends_at=trial_ends_at,
            )
        )
        if created:
            seeded.append(key)
    return seeded


@dataclass(frozen=True, slots=True)
class Registration:
    user: User
    organization: Organization
    membership: Membership
    trial_modules: tuple[str, ...]
    trial_ends_at: datetime


class OnboardingService:
    def __init__(
        self,
        store: Store,
        *,
        trial_days: int = 7,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self._store = store
        self._trial_days = trial_days
        self._notifier = notifier

    async def register(
        self,
        *,
        email: str,
        password: str,
        org_name: str,
        name: str = "",
        now: datetime | None = None,
    ) -> Registration:
        email = email.lower().strip()
        org_name = org_name.strip()
        if "@" not in email or not password or not org_name:
            raise ValidationError("Email, password, and organization name are required")

        now = now or utcnow()
        trial_ends_at = now + timedelta(days=self._trial_days)
        password_hash = await hash_password_in_thread(password)
        async with self._store.transaction() as tx:
            if await tx.users.get_by_email(email) is not None:
                raise ConflictError("User with this email already exists")
            user = User.new(email=email, password_hash=password_hash, name=name)
            await tx.users.add(user)

            org = Organization.new(name=org_name, slug=await unique_slug(tx, org_name))
            await tx.orgs.add(org)

            membership = Membership.new(user_id=user.id, org_id=org.id)
            await tx.memberships.add(membership)
            await assign_roles(tx, membership.id, ("owner",), org_id=org.id)

            seeded = await seed_trial_modules(tx, org.id, trial_ends_at)

        logger.info(
            "Organization registered org=%s slug=%s owner=%s trial_modules=%s",
            org.id,
            org.slug,
            user.id,
            seeded,
        )
        await self._send_welcome(user, org)
        return Registration(
            user=user,
            organization=org,
            membership=membership,
            trial_modules=tuple(seeded),
            trial_ends_at=trial_ends_at,
        )

    async def _send_welcome(self, user: User, org: Organization) -> None:
        if self._notifier is None:
            return
        payload = {
            "email": user.email,
            "name": user.name or "User",
            "org_id": str(org.id),
            "org_name": org.name,
        }
        await self._notifier.notify("welcome", payload)
        await self._notifier.notify("organization_created", payload)

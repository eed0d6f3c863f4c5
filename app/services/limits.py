"""Organization caps on active members and employees.

Both helpers must be called inside the transaction that performs the
write.  They lock the organization row first, then count, so two
concurrent creations serialize on the lock and the second one sees the
first one's row.
"""

from __future__ import annotations

import logging
from typing import Literal
from uuid import UUID

from app.core.errors import LimitViolationError, NotFoundError, ValidationError
from app.core.metrics import LIMIT_VIOLATIONS
from app.models.organization import Organization
from app.repos.store import Transaction

logger = logging.getLogger(__name__)

Resource = Literal["users", "employees"]


async def count_active(tx: Transaction, org_id: UUID, resource: Resource) -> int:
    if resource == "users":
        return await tx.memberships.count_active(org_id)
    return await tx.employees.count_active(org_id)


def _reject(
    org_id: UUID, resource: Resource, current: int, cap: int, requested: int
) -> LimitViolationError:
    LIMIT_VIOLATIONS.labels(resource=resource).inc()
    logger.info(
        "Limit reached org=%s resource=%s current=%d cap=%d requested=%d",
        org_id,
        resource,
        current,
        cap,
        requested,
    )
    return LimitViolationError(resource, current_count=current, cap=cap, requested=requested)


async def lock_org(tx: Transaction, org_id: UUID) -> Organization:
    org = await tx.orgs.lock(org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    return org


async def ensure_capacity(
    tx: Transaction, org_id: UUID, resource: Resource, *, adding: int = 1
) -> Organization:
    """Raise LimitViolationError unless ``adding`` more active rows fit."""
    org = await lock_org(tx, org_id)
    cap = org.cap_for(resource)
    if cap is None:
        return org
    current = await count_active(tx, org_id, resource)
    if current + adding > cap:
        raise _reject(org_id, resource, current, cap, adding)
    return org


async def ensure_cap_fits(
    tx: Transaction, org_id: UUID, resource: Resource, cap: int | None
) -> None:
    """Raise LimitViolationError if ``cap`` is below the current active count.

    The organization must already be locked by the caller.
    """
    if cap is None:
        return
    if cap < 0:
        raise ValidationError(f"max_{resource} must be zero or positive")
    current = await count_active(tx, org_id, resource)
    if cap < current:
        raise _reject(org_id, resource, current, cap, 0)

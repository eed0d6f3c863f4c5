"""Licensable modules and the per-organization entitlement state machine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Module:
    id: UUID
    key: str
    name: str
    description: str = ""
    is_active: bool = True  # global kill-switch

    @staticmethod
    def new(*, key: str, name: str, description: str = "") -> Module:
        return Module(id=uuid4(), key=key, name=name, description=description)


@dataclass(frozen=True, slots=True)
class OrgModule:
    """Entitlement record for one module in one organization.

    Unique per (org_id, module_id).  Trial and expiry status are never
    stored; they are derived by ``evaluate``.
    """

    id: UUID
    org_id: UUID
    module_id: UUID
    is_enabled: bool = False
    plan: str | None = None
    seats: int | None = None
    expires_at: datetime | None = None
    trial_ends_at: datetime | None = None

    @staticmethod
    def new(*, org_id: UUID, module_id: UUID, **fields) -> OrgModule:
        return OrgModule(id=uuid4(), org_id=org_id, module_id=module_id, **fields)


class EntitlementState(str, Enum):
    DISABLED = "disabled"
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class Entitlement:
    is_enabled: bool
    is_expired: bool
    is_trial: bool
    usable: bool

    @property
    def state(self) -> EntitlementState:
        if self.is_expired and not self.is_trial:
            return EntitlementState.EXPIRED
        if self.is_trial:
            return EntitlementState.TRIAL
        if not self.is_enabled:
            return EntitlementState.DISABLED
        return EntitlementState.ACTIVE

    @property
    def needs_activation(self) -> bool:
        """A disabled row inside a running trial is switched on when observed."""
        return self.is_trial and not self.is_enabled


def evaluate(org_module: OrgModule, now: datetime) -> Entitlement:
    """Derive usability of ``org_module`` at ``now``.  Pure."""
    is_expired = org_module.expires_at is not None and org_module.expires_at < now
    is_trial = org_module.trial_ends_at is not None and org_module.trial_ends_at >= now
    return Entitlement(
        is_enabled=org_module.is_enabled,
        is_expired=is_expired,
        is_trial=is_trial,
        usable=org_module.is_enabled and not is_expired,
    )


@dataclass(frozen=True, slots=True)
class LicensedModule:
    """A module joined with the organization's entitlement row, as observed."""

    module: Module
    org_module: OrgModule
    entitlement: Entitlement

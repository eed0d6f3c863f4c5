"""Per-request authorization: permission check plus module licensing.

Order of checks for a non-super-admin caller:

  1. membership for (user, org) must exist and be active, and the
     organization itself must exist and be active     -> UnauthorizedError
  2. the organization must not be past its hard expiry -> ModuleUnavailableError
  3. the resolved permission set must hold the key    -> ForbiddenError
  4. when a module key is given, the module must be known, globally
     active and usable for the organization           -> ModuleUnavailableError

Super-admins skip every check.  The whole evaluation runs in one store
transaction, and the denial is raised only after that transaction has
committed so a lazy trial activation observed on the way is kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from app.core.errors import (
    EngineError,
    ForbiddenError,
    ModuleUnavailableError,
    UnauthorizedError,
)
from app.core.metrics import AUTHZ_DECISIONS
from app.models.module import Entitlement
from app.models.principal import Principal
from app.models.rbac import PermissionSet
from app.repos.store import Store, Transaction
from app.services.entitlement_service import observe_module, utcnow
from app.services.module_registry import ModuleRegistry
from app.services.permission_resolver import resolve_membership

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuthorizationDecision:
    principal: Principal
    permissions: PermissionSet
    membership_id: UUID | None = None
    entitlement: Entitlement | None = None


class AuthorizationGate:
    def __init__(self, store: Store, registry: ModuleRegistry) -> None:
        self._store = store
        self._registry = registry

    async def authorize(
        self,
        principal: Principal,
        required_permission: str,
        required_module_key: str | None = None,
        *,
        now: datetime | None = None,
    ) -> AuthorizationDecision:
        if principal.is_super_admin:
            AUTHZ_DECISIONS.labels(outcome="super_admin").inc()
            return AuthorizationDecision(
                principal=principal, permissions=PermissionSet.everything()
            )

        now = now or utcnow()
        async with self._store.transaction() as tx:
            outcome = await self._evaluate(
                tx, principal, required_permission, required_module_key, now
            )

        if isinstance(outcome, EngineError):
            self._record_denial(principal, required_permission, required_module_key, outcome)
            raise outcome
        AUTHZ_DECISIONS.labels(outcome="allow").inc()
        return outcome

    async def _evaluate(
        self,
        tx: Transaction,
        principal: Principal,
        required_permission: str,
        required_module_key: str | None,
        now: datetime,
    ) -> AuthorizationDecision | EngineError:
        if principal.org_id is None:
            return UnauthorizedError("Organization context required")

        membership = await tx.memberships.get_for(principal.user_id, principal.org_id)
        if membership is None or not membership.is_active:
            return UnauthorizedError("No active membership in this organization")
        org = await tx.orgs.get(principal.org_id)
        if org is None or not org.is_active:
            return UnauthorizedError("Organization is not active")
        if org.is_expired(now):
            return ModuleUnavailableError(required_module_key, "organization_expired")

        permissions = await resolve_membership(tx, membership.id)
        if required_permission not in permissions:
            return ForbiddenError(required_permission)

        entitlement = None
        if required_module_key is not None:
            if required_module_key not in self._registry:
                return ModuleUnavailableError(required_module_key, "unknown_module")
            module = await tx.modules.get_by_key(required_module_key)
            if module is None:
                return ModuleUnavailableError(required_module_key, "unknown_module")
            if not module.is_active:
                return ModuleUnavailableError(required_module_key, "module_inactive")
            entitlement = await observe_module(tx, org.id, module, now)
            if entitlement is None or not entitlement.is_enabled:
                return ModuleUnavailableError(required_module_key, "not_enabled")
            if not entitlement.usable:
                return ModuleUnavailableError(required_module_key, "expired")

        return AuthorizationDecision(
            principal=principal,
            permissions=permissions,
            membership_id=membership.id,
            entitlement=entitlement,
        )

    @staticmethod
    def _record_denial(
        principal: Principal,
        permission: str,
        module_key: str | None,
        error: EngineError,
    ) -> None:
        AUTHZ_DECISIONS.labels(outcome=error.code).inc()
        if isinstance(error, UnauthorizedError):
            logger.warning(
                "Authorization denied: user=%s org=%s reason=%s",
                principal.user_id,
                principal.org_id,
                error.message,
            )
        else:
            logger.info(
                "Authorization denied: user=%s org=%s permission=%s module=%s code=%s",
                principal.user_id,
                principal.org_id,
                permission,
                module_key,
                error.code,
            )

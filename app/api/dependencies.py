from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from app.core.errors import ForbiddenError, UnauthorizedError
from app.middleware.request_context import bind_caller
from app.models.principal import Principal
from app.services import token_service
from app.services.authorization_gate import AuthorizationDecision
from app.services.container import Services

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/v1/auth/token")

PLATFORM_ADMIN_PERMISSION = "platform.admin"


def get_services(request: Request) -> Services:
    return request.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]


def _uuid_claim(claims: dict, name: str) -> UUID | None:
    value = claims.get(name)
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning("Token rejected: %s claim is not a UUID", name)
        raise UnauthorizedError(f"Invalid token {name}") from None


async def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Async so the caller binding lands in the request task rather than a
    threadpool copy of its context.

    Used as a FastAPI dependency on any protected endpoint.
    """
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise UnauthorizedError("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise UnauthorizedError("Invalid token") from None

    user_id = _uuid_claim(claims, "sub")
    if user_id is None:
        raise UnauthorizedError("Invalid token subject")
    principal = Principal(
        user_id=user_id,
        org_id=_uuid_claim(claims, "org_id"),
        is_super_admin=bool(claims.get("is_super_admin", False)),
    )
    bind_caller(str(principal.user_id), str(principal.org_id) if principal.org_id else None)
    logger.debug(
        "Token validated for user=%s org=%s super_admin=%s",
        principal.user_id,
        principal.org_id,
        principal.is_super_admin,
    )
    return principal


PrincipalDep = Annotated[Principal, Depends(require_user)]


def require_permission(permission: str, module_key: str | None = None):
    """Dependency factory: run the authorization gate.

    Usage: Depends(require_permission("hr.employees.view", "hr"))
    Returns the AuthorizationDecision; denials surface as engine errors.
    """

    async def _guard(principal: PrincipalDep, services: ServicesDep) -> AuthorizationDecision:
        return await services.gate.authorize(principal, permission, module_key)

    return _guard


def require_super_admin(principal: PrincipalDep) -> Principal:
    if not principal.is_super_admin:
        logger.info("Platform endpoint denied: user=%s", principal.user_id)
        raise ForbiddenError(PLATFORM_ADMIN_PERMISSION)
    return principal


SuperAdminDep = Annotated[Principal, Depends(require_super_admin)]


def org_id_of(decision: AuthorizationDecision) -> UUID:
    """Organization the request acts on.  Super-admins need an org-scoped token."""
    if decision.principal.org_id is None:
        raise UnauthorizedError("Organization context required")
    return decision.principal.org_id

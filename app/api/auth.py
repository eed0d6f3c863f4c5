"""Registration and token endpoints.

Every response carries a bearer token scoped to one organization.  The
token holds identity only; roles and module access are resolved on each
request by the authorization gate.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel

from app.api.dependencies import PrincipalDep, ServicesDep
from app.api.schemas import OrganizationOut, UserOut
from app.services.auth_service import IssuedToken
from app.services.entitlement_service import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


# --- Request / Response schemas -------------------------------------------


class RegisterIn(BaseModel):
    email: str
    password: str
    organization_name: str
    name: str = ""


class TokenIn(BaseModel):
    email: str
    password: str
    org_id: UUID | None = None


class SwitchOrganizationIn(BaseModel):
    org_id: UUID


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut
    organization: OrganizationOut | None = None


class RegisterOut(TokenOut):
    trial_modules: list[str]


def _token_out(issued: IssuedToken) -> TokenOut:
    now = utcnow()
    return TokenOut(
        access_token=issued.access_token,
        expires_in=issued.expires_in,
        user=UserOut.of(issued.user),
        organization=OrganizationOut.of(issued.organization, now) if issued.organization else None,
    )


# --- Endpoints --------------------------------------------------------------


@router.post("/register", response_model=RegisterOut, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterIn, services: ServicesDep) -> RegisterOut:
    """Create a user with a new organization and log them straight in."""
    registration = await services.onboarding.register(
        email=body.email,
        password=body.password,
        org_name=body.organization_name,
        name=body.name,
    )
    issued = await services.auth.login(
        body.email, body.password, org_id=registration.organization.id
    )
    return RegisterOut(
        **_token_out(issued).model_dump(),
        trial_modules=list(registration.trial_modules),
    )


@router.post("/token", response_model=TokenOut)
async def issue_token(body: TokenIn, services: ServicesDep) -> TokenOut:
    issued = await services.auth.login(body.email, body.password, org_id=body.org_id)
    return _token_out(issued)


@router.post("/switch-organization", response_model=TokenOut)
async def switch_organization(
    body: SwitchOrganizationIn,
    principal: PrincipalDep,
    services: ServicesDep,
) -> TokenOut:
    """Re-issue the caller's token for another organization they belong to."""
    issued = await services.auth.switch_organization(principal.user_id, body.org_id)
    return _token_out(issued)

"""Organization member management, subject to the organization's user cap."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import ServicesDep, org_id_of, require_permission
from app.api.schemas import RoleOut
from app.models.organization import Membership
from app.services.authorization_gate import AuthorizationDecision
from app.services.membership_service import MemberView

router = APIRouter(prefix="/v1/org/members", tags=["members"])


class AddMemberIn(BaseModel):
    email: str
    name: str = ""
    password: str | None = None
    role_keys: list[str] = Field(default_factory=lambda: ["member"])


class MemberOut(BaseModel):
    membership_id: str
    user_id: str
    email: str
    name: str
    state: str
    roles: list[RoleOut]


class MembershipStateOut(BaseModel):
    membership_id: str
    user_id: str
    state: str


def _member_out(view: MemberView) -> MemberOut:
    return MemberOut(
        membership_id=str(view.membership.id),
        user_id=str(view.user.id),
        email=view.user.email,
        name=view.user.name,
        state=view.membership.state.value,
        roles=[RoleOut.of(r) for r in view.roles],
    )


def _state_out(membership: Membership) -> MembershipStateOut:
    return MembershipStateOut(
        membership_id=str(membership.id),
        user_id=str(membership.user_id),
        state=membership.state.value,
    )


@router.get("", response_model=list[MemberOut])
async def list_members(
    decision: Annotated[AuthorizationDecision, Depends(require_permission("users.view"))],
    services: ServicesDep,
) -> list[MemberOut]:
    views = await services.memberships.list_members(org_id_of(decision))
    return [_member_out(v) for v in views]


@router.post("", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
async def add_member(
    body: AddMemberIn,
    decision: Annotated[AuthorizationDecision, Depends(require_permission("users.create"))],
    services: ServicesDep,
) -> MemberOut:
    """Invite a user into the organization.  409 when the user cap is reached."""
    view = await services.memberships.add_member(
        org_id_of(decision),
        email=body.email,
        name=body.name,
        password=body.password,
        role_keys=body.role_keys,
    )
    return _member_out(view)


@router.delete("/{membership_id}", response_model=MembershipStateOut)
async def remove_member(
    membership_id: UUID,
    decision: Annotated[AuthorizationDecision, Depends(require_permission("users.delete"))],
    services: ServicesDep,
) -> MembershipStateOut:
    membership = await services.memberships.deactivate_member(
        org_id_of(decision),
        membership_id,
        acting_user_id=decision.principal.user_id,
    )
    return _state_out(membership)


@router.post("/{membership_id}/reactivate", response_model=MembershipStateOut)
async def reactivate_member(
    membership_id: UUID,
    decision: Annotated[AuthorizationDecision, Depends(require_permission("users.manage"))],
    services: ServicesDep,
) -> MembershipStateOut:
    membership = await services.memberships.reactivate_member(org_id_of(decision), membership_id)
    return _state_out(membership)

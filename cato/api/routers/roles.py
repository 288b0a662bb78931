"""Role and approval hierarchy API endpoints."""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cato.api.deps import get_authority_model, get_current_actor
from cato.core.rbac.authority import Actor, AuthorityModel
from cato.core.rbac.permissions import Permission, get_all_permissions

router = APIRouter(prefix="/roles", tags=["roles"])


# Schemas
class RoleResponse(BaseModel):
    role: str
    approval_level: int
    can_approve_exceptions: bool
    description: str
    permissions: List[str]


class PermissionInfo(BaseModel):
    permission: str
    resource: str
    level: str


class ApprovalTierResponse(BaseModel):
    level: int
    roles: List[str]
    description: str


class CurrentActorResponse(RoleResponse):
    user_id: str
    tenant_id: str
    can_delegate: bool
    can_escalate: bool
    accessible_resources: List[str]


def _role_response(authority: AuthorityModel, role) -> dict:
    definition = authority.role_definition(role)
    return {
        "role": definition.role.value,
        "approval_level": definition.approval_level,
        "can_approve_exceptions": definition.can_approve_exceptions,
        "description": definition.description,
        "permissions": authority.permission_strings(role),
    }


# Endpoints
@router.get("", response_model=List[RoleResponse])
async def list_roles(
    authority: AuthorityModel = Depends(get_authority_model),
    actor: Actor = Depends(get_current_actor),
):
    """List the configured roles and their permissions."""
    return [RoleResponse(**_role_response(authority, role)) for role in authority.role_definitions]


@router.get("/hierarchy", response_model=List[ApprovalTierResponse])
async def get_approval_hierarchy(
    authority: AuthorityModel = Depends(get_authority_model),
    actor: Actor = Depends(get_current_actor),
):
    """Get the approval tiers in ascending level order."""
    return [
        ApprovalTierResponse(
            level=tier.level,
            roles=[role.value for role in tier.roles],
            description=tier.description,
        )
        for tier in authority.approval_hierarchy()
    ]


@router.get("/permissions", response_model=List[PermissionInfo])
async def list_all_permissions(
    actor: Actor = Depends(get_current_actor),
):
    """List all available permissions."""
    permissions = [Permission.from_string(p) for p in sorted(get_all_permissions())]
    return [
        PermissionInfo(permission=str(p), resource=p.resource.value, level=p.level.value)
        for p in permissions
    ]


@router.get("/me", response_model=CurrentActorResponse)
async def get_my_role(
    authority: AuthorityModel = Depends(get_authority_model),
    actor: Actor = Depends(get_current_actor),
):
    """Get the caller's role, authority and accessible resources."""
    return CurrentActorResponse(
        user_id=actor.user_id,
        tenant_id=actor.tenant_id,
        can_delegate=authority.can_delegate(actor.role),
        can_escalate=authority.can_escalate(actor.role),
        accessible_resources=[r.value for r in authority.accessible_resources(actor.role)],
        **_role_response(authority, actor.role),
    )

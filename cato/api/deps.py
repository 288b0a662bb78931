from functools import lru_cache
from typing import Callable, Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from cato.core.approval.service import POAMService
from cato.core.config import get_settings
from cato.core.rbac.authority import Actor, AuthorityModel
from cato.core.rbac.permissions import ClearanceLevel, PermissionLevel, Resource
from cato.core.rbac.roles import Role, load_role_definitions
from cato.db.session import SessionLocal
from cato.db.store import SqlAlchemyPOAMStore
from cato.services.audit import SqlAuditTrail


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_authority_model() -> AuthorityModel:
    """Authority model built once from the configured role table."""
    return AuthorityModel(load_role_definitions(get_settings().roles_config_path))


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_tenant_id: Optional[str] = Header(None),
    x_user_clearance: Optional[str] = Header(None),
) -> Actor:
    """Identity resolved by the upstream gateway and passed as headers."""
    if not x_user_id or not x_user_role or not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers (X-User-Id, X-User-Role, X-Tenant-Id)",
        )

    try:
        role = Role(x_user_role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {x_user_role}",
        )

    clearance = None
    if x_user_clearance:
        try:
            clearance = ClearanceLevel(x_user_clearance)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Unknown clearance level: {x_user_clearance}",
            )

    return Actor(user_id=x_user_id, role=role, tenant_id=x_tenant_id, clearance_level=clearance)


def require_permission(resource: Resource, permission: PermissionLevel) -> Callable[..., Actor]:
    """
    Dependency factory enforcing a resource permission.

    Usage:
        @router.get("/poams")
        async def list_poams(actor: Actor = Depends(require_permission(Resource.POAM_ITEMS, PermissionLevel.READ))):
            ...
    """
    def checker(
        actor: Actor = Depends(get_current_actor),
        authority: AuthorityModel = Depends(get_authority_model),
    ) -> Actor:
        decision = authority.validate_access(actor, resource, permission)
        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {decision.reason}",
            )
        if actor.clearance_level and not authority.validate_clearance(actor.clearance_level, resource):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Clearance {actor.clearance_level.value} is insufficient for {resource.value}",
            )
        return actor

    return checker


def get_poam_service(
    db: Session = Depends(get_db),
    authority: AuthorityModel = Depends(get_authority_model),
) -> POAMService:
    """POA&M service bound to the request's database session."""
    return POAMService(SqlAlchemyPOAMStore(db), authority, audit=SqlAuditTrail(db))


require_read = require_permission(Resource.POAM_ITEMS, PermissionLevel.READ)
require_write = require_permission(Resource.POAM_ITEMS, PermissionLevel.WRITE)

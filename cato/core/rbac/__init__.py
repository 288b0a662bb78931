"""Role-based access control for the cATO dashboard.

Holds the DoD role table and the authority model the approval workflow
consults for every decision.
"""

from .permissions import (
    ClearanceLevel,
    Permission,
    PermissionLevel,
    Resource,
    get_all_permissions,
)
from .roles import (
    DEFAULT_ROLE_DEFINITIONS,
    MAX_APPROVAL_LEVEL,
    Role,
    RoleDefinition,
    load_role_definitions,
)
from .authority import AccessDecision, Actor, ApprovalTier, AuthorityModel

__all__ = [
    "AccessDecision",
    "Actor",
    "ApprovalTier",
    "AuthorityModel",
    "ClearanceLevel",
    "DEFAULT_ROLE_DEFINITIONS",
    "MAX_APPROVAL_LEVEL",
    "Permission",
    "PermissionLevel",
    "Resource",
    "Role",
    "RoleDefinition",
    "get_all_permissions",
    "load_role_definitions",
]

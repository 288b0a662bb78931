"""DoD role definitions for the cATO dashboard.

Defines the 7 standard roles of the authorization hierarchy:
1. Engineer - Read-only engineering access (level 0)
2. SecurityEngineer - ISSE, writes controls and POA&Ms (level 1)
3. ISSO - Approves low-risk items (level 2)
4. ISSM - Broad approval authority (level 3)
5. RiskManagementOfficer - Risk assessment and approval (level 4)
6. AuthorizingOfficer - Final authorization (level 5)
7. ReadOnlyUser - View-only access (level 0)

The role table is plain immutable data. It is built once at process start,
optionally overridden from YAML, and handed to ``AuthorityModel``.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional

from cato.common.config import load_config
from .permissions import (
    APPROVER_LEVELS,
    EDITOR_LEVELS,
    FULL_LEVELS,
    READONLY_LEVELS,
    PermissionLevel,
    Resource,
)


class Role(str, Enum):
    """Roles in the DoD authorization hierarchy."""

    ENGINEER = "Engineer"
    SECURITY_ENGINEER = "SecurityEngineer"
    ISSO = "ISSO"
    ISSM = "ISSM"
    RISK_MANAGEMENT_OFFICER = "RiskManagementOfficer"
    AUTHORIZING_OFFICER = "AuthorizingOfficer"
    READ_ONLY_USER = "ReadOnlyUser"


MAX_APPROVAL_LEVEL = 5


@dataclass(frozen=True)
class RoleDefinition:
    """Static authority attached to a role."""

    role: Role
    approval_level: int
    can_approve_exceptions: bool
    description: str = ""
    permissions: Mapping[Resource, FrozenSet[PermissionLevel]] = field(default_factory=dict)

    def __post_init__(self):
        if not 0 <= self.approval_level <= MAX_APPROVAL_LEVEL:
            raise ValueError(
                f"Approval level for {self.role.value} must be between 0 and "
                f"{MAX_APPROVAL_LEVEL}, got {self.approval_level}"
            )
        # Every resource gets an entry so lookups never miss
        perms = {resource: frozenset(self.permissions.get(resource, ())) for resource in Resource}
        object.__setattr__(self, "permissions", MappingProxyType(perms))

    def levels_for(self, resource: Resource) -> FrozenSet[PermissionLevel]:
        return self.permissions[resource]


def _matrix(**levels: FrozenSet[PermissionLevel]) -> Dict[Resource, FrozenSet[PermissionLevel]]:
    """Build a permission matrix from resource-name keyword arguments."""
    return {Resource(name): frozenset(value) for name, value in levels.items()}


ENGINEER = RoleDefinition(
    role=Role.ENGINEER,
    approval_level=0,
    can_approve_exceptions=False,
    description="Basic engineering role with read-only access to most resources",
    permissions=_matrix(
        nist_controls=READONLY_LEVELS,
        zta_activities=READONLY_LEVELS,
        poam_items=READONLY_LEVELS,
        execution_enablers=READONLY_LEVELS,
        sssc_metrics=READONLY_LEVELS,
        compliance_reports=READONLY_LEVELS,
        risk_assessments=READONLY_LEVELS,
        audit_logs=READONLY_LEVELS,
    ),
)

SECURITY_ENGINEER = RoleDefinition(
    role=Role.SECURITY_ENGINEER,
    approval_level=1,
    can_approve_exceptions=False,
    description=(
        "Information Systems Security Engineer (ISSE) with full write access "
        "to security controls and POA&Ms"
    ),
    permissions=_matrix(
        nist_controls=EDITOR_LEVELS,
        zta_activities=EDITOR_LEVELS,
        poam_items=EDITOR_LEVELS,
        execution_enablers=EDITOR_LEVELS,
        sssc_metrics=EDITOR_LEVELS,
        compliance_reports=EDITOR_LEVELS,
        risk_assessments=EDITOR_LEVELS,
        audit_logs=READONLY_LEVELS,
    ),
)

ISSO = RoleDefinition(
    role=Role.ISSO,
    approval_level=2,
    can_approve_exceptions=True,
    description="Information Systems Security Officer with approval authority for low-risk items",
    permissions=_matrix(
        nist_controls=APPROVER_LEVELS,
        zta_activities=APPROVER_LEVELS,
        poam_items=APPROVER_LEVELS,
        execution_enablers=EDITOR_LEVELS,
        sssc_metrics=EDITOR_LEVELS,
        compliance_reports=EDITOR_LEVELS,
        risk_assessments=APPROVER_LEVELS,
        tenant_management=READONLY_LEVELS,
        user_management=READONLY_LEVELS,
        audit_logs=READONLY_LEVELS,
    ),
)

ISSM = RoleDefinition(
    role=Role.ISSM,
    approval_level=3,
    can_approve_exceptions=True,
    description="Information Systems Security Manager with broad approval authority",
    permissions=_matrix(
        nist_controls=APPROVER_LEVELS,
        zta_activities=APPROVER_LEVELS,
        poam_items=APPROVER_LEVELS,
        execution_enablers=APPROVER_LEVELS,
        sssc_metrics=APPROVER_LEVELS,
        compliance_reports=APPROVER_LEVELS,
        risk_assessments=APPROVER_LEVELS,
        tenant_management=EDITOR_LEVELS,
        user_management=READONLY_LEVELS,
        audit_logs=READONLY_LEVELS,
    ),
)

RISK_MANAGEMENT_OFFICER = RoleDefinition(
    role=Role.RISK_MANAGEMENT_OFFICER,
    approval_level=4,
    can_approve_exceptions=True,
    description="Risk Management Officer with comprehensive risk assessment and approval authority",
    permissions=_matrix(
        nist_controls=APPROVER_LEVELS,
        zta_activities=APPROVER_LEVELS,
        poam_items=APPROVER_LEVELS,
        execution_enablers=APPROVER_LEVELS,
        sssc_metrics=APPROVER_LEVELS,
        compliance_reports=APPROVER_LEVELS,
        risk_assessments=APPROVER_LEVELS,
        tenant_management=EDITOR_LEVELS,
        user_management=EDITOR_LEVELS,
        audit_logs=READONLY_LEVELS,
    ),
)

AUTHORIZING_OFFICER = RoleDefinition(
    role=Role.AUTHORIZING_OFFICER,
    approval_level=5,
    can_approve_exceptions=True,
    description="Authorizing Officer with ultimate authority over all system resources and approvals",
    permissions=_matrix(
        nist_controls=FULL_LEVELS,
        zta_activities=FULL_LEVELS,
        poam_items=FULL_LEVELS,
        execution_enablers=FULL_LEVELS,
        sssc_metrics=FULL_LEVELS,
        compliance_reports=FULL_LEVELS,
        risk_assessments=FULL_LEVELS,
        tenant_management=FULL_LEVELS,
        user_management=FULL_LEVELS,
        audit_logs=frozenset([PermissionLevel.READ, PermissionLevel.ADMIN]),
    ),
)

READ_ONLY_USER = RoleDefinition(
    role=Role.READ_ONLY_USER,
    approval_level=0,
    can_approve_exceptions=False,
    description="Read-only user with limited access to view compliance information",
    permissions=_matrix(
        nist_controls=READONLY_LEVELS,
        zta_activities=READONLY_LEVELS,
        poam_items=READONLY_LEVELS,
        execution_enablers=READONLY_LEVELS,
        sssc_metrics=READONLY_LEVELS,
        compliance_reports=READONLY_LEVELS,
        risk_assessments=READONLY_LEVELS,
    ),
)


# Default role table: Role -> RoleDefinition
DEFAULT_ROLE_DEFINITIONS: Mapping[Role, RoleDefinition] = MappingProxyType({
    definition.role: definition
    for definition in (
        ENGINEER,
        SECURITY_ENGINEER,
        ISSO,
        ISSM,
        RISK_MANAGEMENT_OFFICER,
        AUTHORIZING_OFFICER,
        READ_ONLY_USER,
    )
})


def parse_role_definition(role: Role, role_dict: Dict[str, Any]) -> RoleDefinition:
    """Parse one role entry from configuration.

    Missing keys fall back to the role's default definition. A ``permissions``
    mapping, when present, replaces the default matrix entirely.

    Args:
        role: Role the entry configures
        role_dict: Role configuration dictionary

    Returns:
        RoleDefinition instance
    """
    default = DEFAULT_ROLE_DEFINITIONS[role]

    permissions: Mapping[Resource, FrozenSet[PermissionLevel]] = default.permissions
    if "permissions" in role_dict:
        raw = role_dict["permissions"] or {}
        if not isinstance(raw, dict):
            raise TypeError(
                f"Permissions for role {role.value} must be a mapping, got {type(raw).__name__}"
            )
        permissions = {
            Resource(resource): frozenset(PermissionLevel(level) for level in levels or [])
            for resource, levels in raw.items()
        }

    return RoleDefinition(
        role=role,
        approval_level=int(role_dict.get("approval_level", default.approval_level)),
        can_approve_exceptions=bool(
            role_dict.get("can_approve_exceptions", default.can_approve_exceptions)
        ),
        description=role_dict.get("description", default.description),
        permissions=permissions,
    )


def role_definitions_from_config(config_dict: Dict[str, Any]) -> Mapping[Role, RoleDefinition]:
    """Build a complete role table from a configuration dictionary.

    Roles not listed under ``roles`` keep their default definition.

    Args:
        config_dict: Configuration dictionary with an optional ``roles`` mapping

    Returns:
        Read-only mapping covering every Role
    """
    roles = config_dict.get("roles") or {}
    if not isinstance(roles, dict):
        raise TypeError(f"'roles' must be a mapping, got {type(roles).__name__}")

    table = dict(DEFAULT_ROLE_DEFINITIONS)
    for role_name, role_dict in roles.items():
        role = Role(role_name)
        table[role] = parse_role_definition(role, role_dict or {})
    return MappingProxyType(table)


def load_role_definitions(config_path: Optional[str] = None) -> Mapping[Role, RoleDefinition]:
    """Load the role table, applying YAML overrides when a path is given.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If the config file is invalid YAML
    """
    if not config_path:
        return DEFAULT_ROLE_DEFINITIONS
    return role_definitions_from_config(load_config(config_path))

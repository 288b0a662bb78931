"""Permission model for the cATO dashboard RBAC.

Defines the protected resources, the permission levels a role can hold on
them, and clearance requirements per resource.

Permission string format: "resource:level"
Examples:
  - poam_items:approve
  - risk_assessments:write
  - audit_logs:admin
"""

from enum import Enum
from typing import Dict, FrozenSet, NamedTuple


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    # Compliance content
    NIST_CONTROLS = "nist_controls"
    ZTA_ACTIVITIES = "zta_activities"         # Zero-trust architecture activities
    POAM_ITEMS = "poam_items"                 # Plans of Action & Milestones
    EXECUTION_ENABLERS = "execution_enablers" # DOTmLPF-P enablers
    SSSC_METRICS = "sssc_metrics"             # Software supply chain metrics

    # Reporting and risk
    COMPLIANCE_REPORTS = "compliance_reports"
    RISK_ASSESSMENTS = "risk_assessments"

    # Administration
    TENANT_MANAGEMENT = "tenant_management"
    USER_MANAGEMENT = "user_management"
    AUDIT_LOGS = "audit_logs"


class PermissionLevel(str, Enum):
    """Levels of access a role can hold on a resource."""

    READ = "read"
    WRITE = "write"
    APPROVE = "approve"
    ADMIN = "admin"


class ClearanceLevel(str, Enum):
    """Personnel clearance, ordered from lowest to highest."""

    PUBLIC_TRUST = "Public_Trust"
    SECRET = "Secret"
    TOP_SECRET = "Top_Secret"

    @property
    def rank(self) -> int:
        return CLEARANCE_ORDER.index(self)


CLEARANCE_ORDER = [
    ClearanceLevel.PUBLIC_TRUST,
    ClearanceLevel.SECRET,
    ClearanceLevel.TOP_SECRET,
]


class Permission(NamedTuple):
    """A permission is a combination of resource and level."""
    resource: Resource
    level: PermissionLevel

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.level.value}"

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'poam_items:read'."""
        parts = perm_str.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {perm_str}")
        return cls(Resource(parts[0]), PermissionLevel(parts[1]))


# Minimum clearance needed before any permission on the resource applies
RESOURCE_CLEARANCE: Dict[Resource, ClearanceLevel] = {
    Resource.NIST_CONTROLS: ClearanceLevel.PUBLIC_TRUST,
    Resource.ZTA_ACTIVITIES: ClearanceLevel.PUBLIC_TRUST,
    Resource.POAM_ITEMS: ClearanceLevel.PUBLIC_TRUST,
    Resource.EXECUTION_ENABLERS: ClearanceLevel.PUBLIC_TRUST,
    Resource.SSSC_METRICS: ClearanceLevel.PUBLIC_TRUST,
    Resource.COMPLIANCE_REPORTS: ClearanceLevel.PUBLIC_TRUST,
    Resource.RISK_ASSESSMENTS: ClearanceLevel.SECRET,
    Resource.TENANT_MANAGEMENT: ClearanceLevel.SECRET,
    Resource.USER_MANAGEMENT: ClearanceLevel.SECRET,
    Resource.AUDIT_LOGS: ClearanceLevel.SECRET,
}


# Convenience sets for common permission patterns
READONLY_LEVELS: FrozenSet[PermissionLevel] = frozenset([PermissionLevel.READ])
EDITOR_LEVELS: FrozenSet[PermissionLevel] = frozenset([PermissionLevel.READ, PermissionLevel.WRITE])
APPROVER_LEVELS: FrozenSet[PermissionLevel] = frozenset([
    PermissionLevel.READ, PermissionLevel.WRITE, PermissionLevel.APPROVE,
])
FULL_LEVELS: FrozenSet[PermissionLevel] = frozenset(PermissionLevel)


def get_all_permissions() -> list[str]:
    """Get every resource/level combination as permission strings."""
    return [
        str(Permission(resource, level))
        for resource in Resource
        for level in PermissionLevel
    ]

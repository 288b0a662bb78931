"""Authority model for the DoD approval hierarchy.

Answers authorization questions against an injected role table. Every method
is a pure lookup: no storage, no network, no mutation.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, NamedTuple, Optional, Union

from .permissions import (
    RESOURCE_CLEARANCE,
    ClearanceLevel,
    Permission,
    PermissionLevel,
    Resource,
)
from .roles import DEFAULT_ROLE_DEFINITIONS, MAX_APPROVAL_LEVEL, Role, RoleDefinition


APPROVAL_LEVEL_DESCRIPTIONS = {
    1: "Initial security review",
    2: "Security officer approval",
    3: "Security manager approval",
    4: "Risk management assessment",
    5: "Final authorization approval",
}

# ISSM and above may hand their review to someone else
DELEGATION_MIN_LEVEL = 3


class ApprovalTier(NamedTuple):
    """One rung of the approval hierarchy."""
    level: int
    roles: List[Role]
    description: str


class AccessDecision(NamedTuple):
    """Outcome of an access check, with the reason when denied."""
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class Actor:
    """Identity of the user acting on a request, as resolved upstream."""

    user_id: str
    role: Role
    tenant_id: str
    clearance_level: Optional[ClearanceLevel] = None
    account_locked: bool = False


class AuthorityModel:
    """
    Role-based authority lookups for the approval workflow.

    The role table is captured read-only at construction; pass a custom table
    to swap roles in tests or per deployment.
    """

    def __init__(self, role_definitions: Optional[Mapping[Role, RoleDefinition]] = None):
        """
        Initialize the authority model.

        Args:
            role_definitions: Role table; defaults to the standard DoD table

        Raises:
            ValueError: If the table does not define every Role
        """
        table = dict(role_definitions if role_definitions is not None else DEFAULT_ROLE_DEFINITIONS)
        missing = [role.value for role in Role if role not in table]
        if missing:
            raise ValueError(f"Role table is missing definitions for: {', '.join(missing)}")
        for role, definition in table.items():
            if definition.role != role:
                raise ValueError(
                    f"Role table entry {role.value} holds the definition for {definition.role.value}"
                )
        self._definitions = MappingProxyType(table)

    @property
    def role_definitions(self) -> Mapping[Role, RoleDefinition]:
        return self._definitions

    def role_definition(self, role: Role) -> RoleDefinition:
        """Get the static definition for a role."""
        return self._definitions[Role(role)]

    def has_permission(
        self,
        role: Role,
        resource: Resource,
        permission: PermissionLevel,
    ) -> bool:
        """Check if the role holds ``permission`` on ``resource``."""
        return PermissionLevel(permission) in self.role_definition(role).levels_for(Resource(resource))

    def approval_level_of(self, role: Role) -> int:
        """Get the approval level (0-5) for a role."""
        return self.role_definition(role).approval_level

    def can_approve_at_level(self, role: Role, required_level: int) -> bool:
        """Check if the role may approve exceptions at ``required_level``."""
        definition = self.role_definition(role)
        return definition.can_approve_exceptions and definition.approval_level >= required_level

    def next_approval_level(self, current_level: int) -> Optional[int]:
        """Get the smallest approval-eligible level above ``current_level``.

        Returns None when no eligible level is higher, which is always the case
        from the maximum level.
        """
        higher = [level for level in self._eligible_levels() if level > current_level]
        return min(higher) if higher else None

    def roles_for_approval_level(self, min_level: int) -> List[Role]:
        """Get every role that can approve at ``min_level`` or above."""
        return [
            role for role, definition in self._definitions.items()
            if definition.can_approve_exceptions and definition.approval_level >= min_level
        ]

    def approval_hierarchy(self) -> List[ApprovalTier]:
        """Get the approval tiers in ascending level order."""
        tiers = []
        for level in self._eligible_levels():
            roles = [
                role for role, definition in self._definitions.items()
                if definition.can_approve_exceptions and definition.approval_level == level
            ]
            tiers.append(ApprovalTier(
                level=level,
                roles=roles,
                description=APPROVAL_LEVEL_DESCRIPTIONS.get(level, "Unknown approval level"),
            ))
        return tiers

    def can_delegate(self, role: Role) -> bool:
        """Check if the role may hand its review to another user."""
        return self.approval_level_of(role) >= DELEGATION_MIN_LEVEL

    def can_escalate(self, role: Role) -> bool:
        """Check if the role has room to escalate upward."""
        definition = self.role_definition(role)
        return definition.can_approve_exceptions and definition.approval_level < MAX_APPROVAL_LEVEL

    def accessible_resources(self, role: Role) -> List[Resource]:
        """Get resources the role holds at least one permission on."""
        definition = self.role_definition(role)
        return [resource for resource in Resource if definition.levels_for(resource)]

    def permission_strings(self, role: Role) -> List[str]:
        """Get the role's permissions as ``resource:level`` strings."""
        definition = self.role_definition(role)
        return [
            str(Permission(resource, level))
            for resource in Resource
            for level in PermissionLevel
            if level in definition.levels_for(resource)
        ]

    def validate_access(
        self,
        actor: Actor,
        resource: Resource,
        permission: PermissionLevel,
    ) -> AccessDecision:
        """Check whether an actor may perform ``permission`` on ``resource``."""
        if actor.account_locked:
            return AccessDecision(False, "Account is locked")

        if not self.has_permission(actor.role, resource, permission):
            return AccessDecision(
                False,
                f"Role {Role(actor.role).value} does not have "
                f"{PermissionLevel(permission).value} permission for {Resource(resource).value}",
            )

        return AccessDecision(True)

    def required_clearance(self, resource: Resource) -> ClearanceLevel:
        """Get the minimum clearance for a resource."""
        return RESOURCE_CLEARANCE.get(Resource(resource), ClearanceLevel.PUBLIC_TRUST)

    def validate_clearance(
        self,
        clearance: Optional[Union[ClearanceLevel, str]],
        resource: Resource,
    ) -> bool:
        """Check if ``clearance`` meets the resource requirement.

        A missing clearance never qualifies.
        """
        if not clearance:
            return False
        return ClearanceLevel(clearance).rank >= self.required_clearance(resource).rank

    def _eligible_levels(self) -> List[int]:
        return sorted({
            definition.approval_level
            for definition in self._definitions.values()
            if definition.can_approve_exceptions
        })

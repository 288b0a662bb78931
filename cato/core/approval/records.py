"""POA&M record snapshots.

Records are immutable. Every workflow operation returns a new snapshot with
``version`` bumped; stores use that version for optimistic concurrency.
"""

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from cato.core.rbac.roles import Role
from .states import DRAFT_STAGE, ApprovalStage, ApprovalStatus


class Severity(str, Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    VERY_HIGH = "Very_High"


class RiskLevel(str, Enum):
    VERY_LOW = "Very_Low"
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    VERY_HIGH = "Very_High"


class ExceptionType(str, Enum):
    """Kinds of exception a POA&M can ask for."""

    RISK_ACCEPTANCE = "Risk_Acceptance"
    DEVIATION_REQUEST = "Deviation_Request"
    IMPLEMENTATION_DELAY = "Implementation_Delay"
    ALTERNATIVE_IMPLEMENTATION = "Alternative_Implementation"
    COMPENSATING_CONTROL = "Compensating_Control"
    OPERATIONAL_EXCEPTION = "Operational_Exception"


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value) -> Optional[datetime]:
    """Accept a datetime or ISO-8601 string; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class ApprovalHistoryEntry:
    """One successful, status-changing workflow transition."""

    id: str
    timestamp: datetime
    actor_id: str
    actor_role: Role
    action: str
    from_status: ApprovalStatus
    to_status: ApprovalStatus
    comments: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _isoformat(self.timestamp),
            "actor_id": self.actor_id,
            "actor_role": Role(self.actor_role).value,
            "action": self.action,
            "from_status": ApprovalStatus(self.from_status).value,
            "to_status": ApprovalStatus(self.to_status).value,
            "comments": self.comments,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalHistoryEntry":
        return cls(
            id=data["id"],
            timestamp=_parse_datetime(data["timestamp"]),
            actor_id=data["actor_id"],
            actor_role=Role(data["actor_role"]),
            action=data["action"],
            from_status=ApprovalStatus(data["from_status"]),
            to_status=ApprovalStatus(data["to_status"]),
            comments=data.get("comments"),
        )


@dataclass(frozen=True)
class ExceptionRequest:
    """Exception metadata supplied when a POA&M asks for an exception."""

    exception_type: ExceptionType
    justification: str
    risk_acceptance_statement: Optional[str] = None
    compensating_controls: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "exception_type", ExceptionType(self.exception_type))
        object.__setattr__(self, "compensating_controls", tuple(self.compensating_controls))


# Fields the workflow owns; content edits may not touch them
WORKFLOW_FIELDS = frozenset({
    "id",
    "tenant_id",
    "stage",
    "current_approver",
    "submitted_by",
    "approval_history",
    "version",
    "created_at",
    "updated_at",
    "submitted_date",
    "approved_date",
    "last_action_date",
    "exception_type",
    "justification",
    "risk_acceptance_statement",
    "compensating_controls",
})

_TUPLE_FIELDS = ("affected_controls", "compliance_frameworks", "compensating_controls")
_TIMESTAMP_FIELDS = (
    "created_at",
    "updated_at",
    "submitted_date",
    "approved_date",
    "last_action_date",
    "target_approval_date",
)


@dataclass(frozen=True)
class POAMRecord:
    """Snapshot of a Plan of Action & Milestones item."""

    id: str
    tenant_id: str
    title: str
    description: str = ""
    weakness: str = ""
    severity: Severity = Severity.MODERATE
    risk_level: RiskLevel = RiskLevel.MODERATE
    business_impact: Optional[str] = None
    technical_impact: Optional[str] = None
    proposed_solution: Optional[str] = None
    implementation_plan: Optional[str] = None
    affected_controls: Tuple[str, ...] = ()
    compliance_frameworks: Tuple[str, ...] = ()
    assigned_to: Optional[str] = None

    # Workflow
    stage: ApprovalStage = DRAFT_STAGE
    current_approver: Optional[str] = None
    submitted_by: Optional[str] = None

    # Exception metadata
    exception_type: Optional[ExceptionType] = None
    justification: Optional[str] = None
    risk_acceptance_statement: Optional[str] = None
    compensating_controls: Tuple[str, ...] = ()

    approval_history: Tuple[ApprovalHistoryEntry, ...] = ()
    version: int = 1

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    submitted_date: Optional[datetime] = None
    approved_date: Optional[datetime] = None
    last_action_date: Optional[datetime] = None
    target_approval_date: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "severity", Severity(self.severity))
        object.__setattr__(self, "risk_level", RiskLevel(self.risk_level))
        if self.exception_type is not None:
            object.__setattr__(self, "exception_type", ExceptionType(self.exception_type))
        for name in _TUPLE_FIELDS:
            object.__setattr__(self, name, tuple(getattr(self, name) or ()))
        object.__setattr__(self, "approval_history", tuple(self.approval_history))
        for name in _TIMESTAMP_FIELDS:
            object.__setattr__(self, name, _parse_datetime(getattr(self, name)))

    @property
    def approval_status(self) -> ApprovalStatus:
        return self.stage.status

    @property
    def approval_level(self) -> int:
        return self.stage.level

    def evolve(self, **changes) -> "POAMRecord":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "weakness": self.weakness,
            "severity": self.severity.value,
            "risk_level": self.risk_level.value,
            "business_impact": self.business_impact,
            "technical_impact": self.technical_impact,
            "proposed_solution": self.proposed_solution,
            "implementation_plan": self.implementation_plan,
            "affected_controls": list(self.affected_controls),
            "compliance_frameworks": list(self.compliance_frameworks),
            "assigned_to": self.assigned_to,
            "approval_status": self.approval_status.value,
            "approval_level": self.approval_level,
            "current_approver": self.current_approver,
            "submitted_by": self.submitted_by,
            "exception_type": self.exception_type.value if self.exception_type else None,
            "justification": self.justification,
            "risk_acceptance_statement": self.risk_acceptance_statement,
            "compensating_controls": list(self.compensating_controls),
            "approval_history": [entry.to_dict() for entry in self.approval_history],
            "version": self.version,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "submitted_date": _isoformat(self.submitted_date),
            "approved_date": _isoformat(self.approved_date),
            "last_action_date": _isoformat(self.last_action_date),
            "target_approval_date": _isoformat(self.target_approval_date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "POAMRecord":
        """Build a record from the output of ``to_dict``."""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}

        values["stage"] = ApprovalStage(
            ApprovalStatus(data.get("approval_status", ApprovalStatus.DRAFT.value)),
            int(data.get("approval_level", 0)),
        )
        values["approval_history"] = tuple(
            ApprovalHistoryEntry.from_dict(entry) for entry in data.get("approval_history") or ()
        )
        return cls(**values)


EDITABLE_FIELDS = frozenset(f.name for f in fields(POAMRecord)) - WORKFLOW_FIELDS

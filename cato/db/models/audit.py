"""Audit log model for the cATO dashboard.

Entries are only ever inserted. Refused workflow attempts land here with
WARNING severity alongside successful actions.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON

from cato.db.base import Base


class AuditSeverity(str, Enum):
    """Severity levels for audit log entries."""
    DEBUG = "debug"       # Low-level debugging info
    INFO = "info"         # Standard operations
    WARNING = "warning"   # Refused or concerning actions
    ERROR = "error"       # Failed operations
    CRITICAL = "critical" # Security-relevant events


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog(Base):
    """
    Immutable audit log entry.

    Records every workflow action, successful or refused, for compliance review.
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Tenant scope
    tenant_id = Column(String(64), nullable=False, index=True)

    # Actor information
    actor_id = Column(String(64), nullable=True, index=True)
    actor_role = Column(String(40), nullable=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(String(64), nullable=True, index=True)

    # Change tracking
    old_values = Column(JSON, nullable=True)  # Previous state (for updates)
    new_values = Column(JSON, nullable=True)  # New state (for creates/updates)
    details = Column(JSON, nullable=True)     # Additional context

    # Metadata
    severity = Column(String(20), nullable=False, default="info", index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.resource_type} by {self.actor_id}>"

    @classmethod
    def create_entry(
        cls,
        tenant_id: str,
        action: str,
        resource_type: str,
        *,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        resource_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            tenant_id: Tenant the action belongs to
            action: Action performed (e.g., 'create', 'approve', 'approve_denied')
            resource_type: Type of resource (e.g., 'poam')
            actor_id: ID of user performing action (None for system actions)
            actor_role: Role the actor acted under
            resource_id: ID of affected resource
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            details: Additional context
            severity: Log severity level
        """
        return cls(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            action=action,
            resource_type=resource_type,
            actor_id=actor_id,
            actor_role=actor_role.value if isinstance(actor_role, Enum) else actor_role,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
            details=details,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
        )

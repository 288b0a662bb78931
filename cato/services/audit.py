"""Audit trail for POA&M workflow actions.

Successful actions and refused attempts both land in the trail; refused
attempts carry WARNING severity and never touch a record's own history.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cato.db.models.audit import AuditLog, AuditSeverity

logger = logging.getLogger(__name__)


class AuditTrail(ABC):
    """Destination for audit entries."""

    @abstractmethod
    def record(
        self,
        tenant_id: str,
        action: str,
        resource_type: str,
        *,
        resource_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        actor_role=None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        severity=AuditSeverity.INFO,
    ) -> None:
        """Append one audit entry."""

    @abstractmethod
    def list_entries(
        self,
        tenant_id: str,
        *,
        resource_id: Optional[str] = None,
        severity: Optional[AuditSeverity] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        """Get a tenant's entries, oldest first."""


class InMemoryAuditTrail(AuditTrail):
    """Keeps entries in a list; used with the in-memory record store."""

    def __init__(self):
        self.entries: List[AuditLog] = []

    def record(self, tenant_id, action, resource_type, **kwargs) -> None:
        self.entries.append(AuditLog.create_entry(tenant_id, action, resource_type, **kwargs))

    def list_entries(self, tenant_id, *, resource_id=None, severity=None, limit=100) -> List[AuditLog]:
        entries = [
            entry for entry in self.entries
            if entry.tenant_id == tenant_id
            and (not resource_id or entry.resource_id == resource_id)
            and (not severity or entry.severity == AuditSeverity(severity).value)
        ]
        return entries[:limit]


class SqlAuditTrail(AuditTrail):
    """
    Writes entries to the ``audit_logs`` table.

    Entries are flushed into the caller's session; the caller commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(self, tenant_id, action, resource_type, **kwargs) -> None:
        entry = AuditLog.create_entry(tenant_id, action, resource_type, **kwargs)
        self.db.add(entry)
        self.db.flush()
        logger.debug("Audit %s on %s %s", action, resource_type, entry.resource_id)

    def list_entries(
        self,
        tenant_id: str,
        *,
        resource_id: Optional[str] = None,
        severity: Optional[AuditSeverity] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)
        if resource_id:
            query = query.filter(AuditLog.resource_id == resource_id)
        if severity:
            query = query.filter(AuditLog.severity == AuditSeverity(severity).value)
        return query.order_by(AuditLog.created_at.asc()).limit(limit).all()

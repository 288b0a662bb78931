"""Database models for the cATO dashboard."""

from cato.db.models.poam import POAMItem
from cato.db.models.audit import AuditLog, AuditSeverity

__all__ = [
    "POAMItem",
    "AuditLog",
    "AuditSeverity",
]

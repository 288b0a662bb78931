"""Application services for the cATO dashboard."""

from .audit import AuditTrail, InMemoryAuditTrail, SqlAuditTrail

__all__ = ["AuditTrail", "InMemoryAuditTrail", "SqlAuditTrail"]

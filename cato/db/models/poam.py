"""POA&M database model.

Rows are keyed by (id, tenant_id); every read and write is tenant-scoped.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, Text

from cato.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class POAMItem(Base):
    """
    Stored POA&M record.

    ``version`` backs optimistic concurrency: writes are conditioned on the
    version that was read.
    """
    __tablename__ = "poam_items"

    id = Column(String(64), primary_key=True)
    tenant_id = Column(String(64), primary_key=True)

    # Content
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    weakness = Column(Text, nullable=False, default="")
    severity = Column(String(20), nullable=False, default="Moderate")
    risk_level = Column(String(20), nullable=False, default="Moderate", index=True)
    business_impact = Column(Text, nullable=True)
    technical_impact = Column(Text, nullable=True)
    proposed_solution = Column(Text, nullable=True)
    implementation_plan = Column(Text, nullable=True)
    affected_controls = Column(JSON, nullable=False, default=list)
    compliance_frameworks = Column(JSON, nullable=False, default=list)
    assigned_to = Column(String(64), nullable=True)

    # Workflow state
    approval_status = Column(String(32), nullable=False, default="Draft", index=True)
    approval_level = Column(Integer, nullable=False, default=0)
    current_approver = Column(String(64), nullable=True)
    submitted_by = Column(String(64), nullable=True)

    # Exception metadata
    exception_type = Column(String(40), nullable=True)
    justification = Column(Text, nullable=True)
    risk_acceptance_statement = Column(Text, nullable=True)
    compensating_controls = Column(JSON, nullable=False, default=list)

    # Append-only transition history
    approval_history = Column(JSON, nullable=False, default=list)

    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)
    submitted_date = Column(DateTime(timezone=True), nullable=True)
    approved_date = Column(DateTime(timezone=True), nullable=True)
    last_action_date = Column(DateTime(timezone=True), nullable=True)
    target_approval_date = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_poam_items_tenant_status", "tenant_id", "approval_status"),
    )

    def __repr__(self) -> str:
        return f"<POAMItem {self.id} [{self.approval_status}/{self.approval_level}] v{self.version}>"

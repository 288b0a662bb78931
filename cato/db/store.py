"""Record stores for POA&M snapshots.

Both stores honor the same optimistic-concurrency contract: ``replace``
succeeds only when the stored version equals the version the caller read,
and fails with ``VersionConflictError`` otherwise. Neither store retries.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy.orm import Session

from cato.core.approval.errors import NotFoundError, VersionConflictError
from cato.core.approval.records import ApprovalHistoryEntry, POAMRecord
from cato.core.approval.states import ApprovalStage, ApprovalStatus
from cato.db.models.poam import POAMItem

logger = logging.getLogger(__name__)


class POAMStore(ABC):
    """Tenant-partitioned storage keyed by (id, tenant_id)."""

    @abstractmethod
    def get(self, record_id: str, tenant_id: str) -> Optional[POAMRecord]:
        """Get a record, or None if it does not exist in the tenant."""

    @abstractmethod
    def create(self, record: POAMRecord) -> POAMRecord:
        """Insert a new record.

        Raises:
            ValueError: If a record with the same key already exists
        """

    @abstractmethod
    def replace(self, record: POAMRecord, expected_version: int) -> POAMRecord:
        """Overwrite a record if its stored version is ``expected_version``.

        Raises:
            NotFoundError: If the record does not exist
            VersionConflictError: If the stored version differs
        """

    @abstractmethod
    def query_by_tenant(self, tenant_id: str) -> List[POAMRecord]:
        """Get all of a tenant's records, oldest first."""

    @abstractmethod
    def delete(self, record_id: str, tenant_id: str) -> None:
        """Remove a record.

        Raises:
            NotFoundError: If the record does not exist
        """

    @abstractmethod
    def tenant_ids(self) -> List[str]:
        """Get every tenant holding at least one record."""


class InMemoryPOAMStore(POAMStore):
    """Process-local store; compare-and-set runs under a lock."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], POAMRecord] = {}
        self._lock = threading.Lock()

    def get(self, record_id: str, tenant_id: str) -> Optional[POAMRecord]:
        return self._records.get((tenant_id, record_id))

    def create(self, record: POAMRecord) -> POAMRecord:
        key = (record.tenant_id, record.id)
        with self._lock:
            if key in self._records:
                raise ValueError(f"POA&M {record.id} already exists in tenant {record.tenant_id}")
            self._records[key] = record
        return record

    def replace(self, record: POAMRecord, expected_version: int) -> POAMRecord:
        key = (record.tenant_id, record.id)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                raise NotFoundError(record.id, record.tenant_id)
            if current.version != expected_version:
                logger.warning(
                    "Version conflict on POA&M %s: expected %d, stored %d",
                    record.id, expected_version, current.version,
                )
                raise VersionConflictError(record.id, expected_version, current.version)
            self._records[key] = record
        return record

    def query_by_tenant(self, tenant_id: str) -> List[POAMRecord]:
        records = [r for (tenant, _), r in self._records.items() if tenant == tenant_id]
        return sorted(records, key=_created_sort_key)

    def delete(self, record_id: str, tenant_id: str) -> None:
        with self._lock:
            if self._records.pop((tenant_id, record_id), None) is None:
                raise NotFoundError(record_id, tenant_id)

    def tenant_ids(self) -> List[str]:
        return sorted({tenant for tenant, _ in self._records})


class SqlAlchemyPOAMStore(POAMStore):
    """
    Store backed by the ``poam_items`` table.

    Writes are flushed, not committed; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, record_id: str, tenant_id: str) -> Optional[POAMRecord]:
        row = self._query(record_id, tenant_id).first()
        return _row_to_record(row) if row else None

    def create(self, record: POAMRecord) -> POAMRecord:
        if self._query(record.id, record.tenant_id).first() is not None:
            raise ValueError(f"POA&M {record.id} already exists in tenant {record.tenant_id}")
        self.db.add(POAMItem(id=record.id, tenant_id=record.tenant_id, **_record_values(record)))
        self.db.flush()
        return record

    def replace(self, record: POAMRecord, expected_version: int) -> POAMRecord:
        updated = self.db.query(POAMItem).filter(
            and_(
                POAMItem.id == record.id,
                POAMItem.tenant_id == record.tenant_id,
                POAMItem.version == expected_version,
            )
        ).update(_record_values(record))

        if updated == 0:
            current = self.db.query(POAMItem.version).filter(
                and_(
                    POAMItem.id == record.id,
                    POAMItem.tenant_id == record.tenant_id,
                )
            ).scalar()
            if current is None:
                raise NotFoundError(record.id, record.tenant_id)
            logger.warning(
                "Version conflict on POA&M %s: expected %d, stored %d",
                record.id, expected_version, current,
            )
            raise VersionConflictError(record.id, expected_version, current)

        self.db.flush()
        return record

    def query_by_tenant(self, tenant_id: str) -> List[POAMRecord]:
        rows = self.db.query(POAMItem).filter(
            POAMItem.tenant_id == tenant_id
        ).order_by(POAMItem.created_at.asc(), POAMItem.id.asc()).all()
        return [_row_to_record(row) for row in rows]

    def delete(self, record_id: str, tenant_id: str) -> None:
        row = self._query(record_id, tenant_id).first()
        if row is None:
            raise NotFoundError(record_id, tenant_id)
        self.db.delete(row)
        self.db.flush()

    def tenant_ids(self) -> List[str]:
        rows = self.db.query(POAMItem.tenant_id).distinct().order_by(POAMItem.tenant_id).all()
        return [row[0] for row in rows]

    def _query(self, record_id: str, tenant_id: str):
        return self.db.query(POAMItem).filter(
            and_(
                POAMItem.id == record_id,
                POAMItem.tenant_id == tenant_id,
            )
        )


def _created_sort_key(record: POAMRecord):
    created = record.created_at or datetime.min.replace(tzinfo=timezone.utc)
    return created, record.id


def _record_values(record: POAMRecord) -> Dict[str, Any]:
    """Column values for a record, excluding the primary key."""
    return {
        "title": record.title,
        "description": record.description,
        "weakness": record.weakness,
        "severity": record.severity.value,
        "risk_level": record.risk_level.value,
        "business_impact": record.business_impact,
        "technical_impact": record.technical_impact,
        "proposed_solution": record.proposed_solution,
        "implementation_plan": record.implementation_plan,
        "affected_controls": list(record.affected_controls),
        "compliance_frameworks": list(record.compliance_frameworks),
        "assigned_to": record.assigned_to,
        "approval_status": record.approval_status.value,
        "approval_level": record.approval_level,
        "current_approver": record.current_approver,
        "submitted_by": record.submitted_by,
        "exception_type": record.exception_type.value if record.exception_type else None,
        "justification": record.justification,
        "risk_acceptance_statement": record.risk_acceptance_statement,
        "compensating_controls": list(record.compensating_controls),
        "approval_history": [entry.to_dict() for entry in record.approval_history],
        "version": record.version,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "submitted_date": record.submitted_date,
        "approved_date": record.approved_date,
        "last_action_date": record.last_action_date,
        "target_approval_date": record.target_approval_date,
    }


def _row_to_record(row: POAMItem) -> POAMRecord:
    return POAMRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        title=row.title,
        description=row.description or "",
        weakness=row.weakness or "",
        severity=row.severity,
        risk_level=row.risk_level,
        business_impact=row.business_impact,
        technical_impact=row.technical_impact,
        proposed_solution=row.proposed_solution,
        implementation_plan=row.implementation_plan,
        affected_controls=row.affected_controls or (),
        compliance_frameworks=row.compliance_frameworks or (),
        assigned_to=row.assigned_to,
        stage=ApprovalStage(ApprovalStatus(row.approval_status), row.approval_level),
        current_approver=row.current_approver,
        submitted_by=row.submitted_by,
        exception_type=row.exception_type,
        justification=row.justification,
        risk_acceptance_statement=row.risk_acceptance_statement,
        compensating_controls=row.compensating_controls or (),
        approval_history=tuple(
            ApprovalHistoryEntry.from_dict(entry) for entry in row.approval_history or ()
        ),
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
        submitted_date=row.submitted_date,
        approved_date=row.approved_date,
        last_action_date=row.last_action_date,
        target_approval_date=row.target_approval_date,
    )

"""POA&M service for managing approval workflows.

Provides the high-level API over the workflow engine: read a snapshot from
the record store, run the transition, write it back conditioned on the
version that was read, and record the outcome in the audit trail.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from cato.core.rbac.authority import AuthorityModel
from cato.core.rbac.roles import Role
from .actions import WorkflowAction
from .errors import InvalidStateError, NotFoundError, WorkflowError
from .machine import ApprovalWorkflowEngine, POAMStatistics, RejectedAttempt
from .records import ExceptionRequest, POAMRecord
from .states import DELETABLE_STATES, ApprovalStatus

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "poam"


class POAMService:
    """
    High-level service for POA&M approvals.

    Handles:
    - Creating, editing and deleting records
    - Performing workflow transitions with optimistic persistence
    - Pending, status and statistics queries
    - Batch operations
    """

    def __init__(
        self,
        store,
        authority: AuthorityModel,
        *,
        audit=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the POA&M service.

        Args:
            store: Record store honoring the optimistic-concurrency contract
            authority: Authority model for the workflow engine
            audit: Audit trail for successful and refused actions
            clock: Time source shared with the engine
        """
        self.store = store
        self.audit = audit
        self.engine = ApprovalWorkflowEngine(authority, clock=clock)
        self.engine.register_rejection_listener(self._audit_rejection)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def create_record(self, tenant_id: str, actor_id: str, title: str, **fields: Any) -> POAMRecord:
        """Create a Draft record."""
        record = self.engine.create_record(tenant_id, title, **fields)
        self.store.create(record)
        self._audit(record, "create", actor_id, new_values=record.to_dict())
        logger.info("POA&M %s created in tenant %s by %s", record.id, tenant_id, actor_id)
        return record

    def get_record(self, record_id: str, tenant_id: str) -> POAMRecord:
        """
        Get a record by ID.

        Raises:
            NotFoundError: If the record does not exist in the tenant
        """
        record = self.store.get(record_id, tenant_id)
        if record is None:
            raise NotFoundError(record_id, tenant_id)
        return record

    def list_records(
        self,
        tenant_id: str,
        *,
        status: Optional[ApprovalStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[POAMRecord]:
        """List a tenant's records, oldest first."""
        records = self.store.query_by_tenant(tenant_id)
        if status is not None:
            records = [r for r in records if r.approval_status == ApprovalStatus(status)]
        if limit is None:
            return records[offset:]
        return records[offset:offset + limit]

    def update_record(
        self,
        record_id: str,
        tenant_id: str,
        actor_id: str,
        *,
        expected_version: Optional[int] = None,
        **changes: Any,
    ) -> POAMRecord:
        """
        Edit a Draft or Requires_Modification record.

        Args:
            expected_version: Version the caller last read; defaults to the current one

        Raises:
            NotFoundError: If the record does not exist
            InvalidStateError: If the record is under review or terminal
            VersionConflictError: If the record changed since it was read
        """
        record = self.get_record(record_id, tenant_id)
        updated = self.engine.amend_record(record, **changes)
        if updated is record:
            return record

        self.store.replace(updated, expected_version or record.version)
        self._audit(
            updated,
            "update",
            actor_id,
            old_values={key: record.to_dict()[key] for key in changes},
            new_values={key: updated.to_dict()[key] for key in changes},
        )
        return updated

    def delete_record(self, record_id: str, tenant_id: str, actor_id: str) -> None:
        """
        Delete a Draft or Withdrawn record.

        Raises:
            NotFoundError: If the record does not exist
            InvalidStateError: If the record has entered the workflow
        """
        record = self.get_record(record_id, tenant_id)
        if record.approval_status not in DELETABLE_STATES:
            raise InvalidStateError(
                f"Cannot delete a POA&M in status {record.approval_status.value}",
                record.approval_status,
                "delete",
            )
        self.store.delete(record_id, tenant_id)
        self._audit(record, "delete", actor_id, old_values=record.to_dict())
        logger.info("POA&M %s deleted by %s", record_id, actor_id)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def submit_for_approval(
        self,
        record_id: str,
        tenant_id: str,
        actor_id: str,
        actor_role: Role = Role.SECURITY_ENGINEER,
        comments: Optional[str] = None,
    ) -> POAMRecord:
        """Submit a record into review."""
        record = self.get_record(record_id, tenant_id)
        updated = self.engine.submit_for_approval(record, actor_id, actor_role, comments)
        return self._commit_transition(record, updated)

    def request_exception(
        self,
        record_id: str,
        tenant_id: str,
        exception_request: ExceptionRequest,
        actor_id: str,
        actor_role: Role = Role.SECURITY_ENGINEER,
    ) -> POAMRecord:
        """Submit a record as an exception request."""
        record = self.get_record(record_id, tenant_id)
        updated = self.engine.request_exception(record, actor_id, exception_request, actor_role)
        return self._commit_transition(record, updated)

    def process_approval_action(
        self,
        record_id: str,
        tenant_id: str,
        action: WorkflowAction,
        actor_id: str,
        actor_role: Role,
    ) -> POAMRecord:
        """
        Apply a reviewer action.

        Raises:
            NotFoundError: If the record does not exist
            InvalidStateError: If the record is not under review
            InsufficientAuthorityError: If the actor cannot act at the record's level
            NoHigherAuthorityError: If escalating from the top level
            VersionConflictError: If another write won the race; re-read and retry
        """
        record = self.get_record(record_id, tenant_id)
        updated = self.engine.process_approval_action(record, action, actor_id, actor_role)
        return self._commit_transition(record, updated)

    def process_action_request(
        self,
        record_id: str,
        tenant_id: str,
        action: str,
        actor_id: str,
        actor_role: Role,
        comments: Optional[str] = None,
        delegate_to_user_id: Optional[str] = None,
    ) -> POAMRecord:
        """
        Apply a reviewer action given by its wire name.

        Raises:
            MissingDelegateError: If a delegate request names no target
            (plus everything ``process_approval_action`` raises)
        """
        record = self.get_record(record_id, tenant_id)
        variant = self.engine.build_action(
            record, action, actor_id, actor_role, comments, delegate_to_user_id,
        )
        updated = self.engine.process_approval_action(record, variant, actor_id, actor_role)
        return self._commit_transition(record, updated)

    def withdraw(
        self,
        record_id: str,
        tenant_id: str,
        actor_id: str,
        actor_role: Role,
        comments: Optional[str] = None,
    ) -> POAMRecord:
        """Withdraw a record from the workflow."""
        record = self.get_record(record_id, tenant_id)
        updated = self.engine.withdraw(record, actor_id, actor_role, comments)
        return self._commit_transition(record, updated)

    def batch_process(
        self,
        record_ids: List[str],
        tenant_id: str,
        action: Union[WorkflowAction, str],
        actor_id: str,
        actor_role: Role,
        *,
        comments: Optional[str] = None,
        delegate_to_user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply one action to many records.

        Args:
            action: An action variant, or a wire action name built per record
                from ``comments`` and ``delegate_to_user_id``

        Returns:
            Summary of results
        """
        results: Dict[str, Any] = {"processed": [], "failed": []}

        for record_id in record_ids:
            try:
                if isinstance(action, WorkflowAction):
                    self.process_approval_action(record_id, tenant_id, action, actor_id, actor_role)
                else:
                    self.process_action_request(
                        record_id, tenant_id, action, actor_id, actor_role,
                        comments, delegate_to_user_id,
                    )
                results["processed"].append(record_id)
            except WorkflowError as e:
                results["failed"].append({
                    "id": record_id,
                    "error": str(e),
                    "code": e.code,
                })

        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_pending_approvals(self, actor_role: Role, tenant_id: str) -> List[POAMRecord]:
        """Get records waiting at the role's approval level."""
        return self.engine.pending_approvals_for(actor_role, self.store.query_by_tenant(tenant_id))

    def get_workflow_status(self, record_id: str, tenant_id: str) -> Dict[str, Any]:
        return self.engine.workflow_status(self.get_record(record_id, tenant_id))

    def get_statistics(self, tenant_id: str, now: Optional[datetime] = None) -> POAMStatistics:
        return self.engine.statistics(self.store.query_by_tenant(tenant_id), now)

    def overdue_records(self, tenant_id: str, now: Optional[datetime] = None) -> List[POAMRecord]:
        """Get records past their target approval date and not yet approved."""
        now = now or self.engine.now()
        return [
            record for record in self.store.query_by_tenant(tenant_id)
            if self.engine.is_overdue(record, now)
        ]

    def get_audit_trail(self, record_id: str, tenant_id: str, limit: int = 100) -> list:
        """
        Get audit entries for a record, refused attempts included.

        Raises:
            NotFoundError: If the record does not exist
        """
        self.get_record(record_id, tenant_id)
        if self.audit is None:
            return []
        return self.audit.list_entries(tenant_id, resource_id=record_id, limit=limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit_transition(self, record: POAMRecord, updated: POAMRecord) -> POAMRecord:
        stored = self.store.replace(updated, record.version)
        entry = updated.approval_history[-1]
        self._audit(
            updated,
            entry.action,
            entry.actor_id,
            actor_role=entry.actor_role,
            old_values={
                "approval_status": record.approval_status.value,
                "approval_level": record.approval_level,
            },
            new_values={
                "approval_status": updated.approval_status.value,
                "approval_level": updated.approval_level,
                "current_approver": updated.current_approver,
            },
            details={"comments": entry.comments, "version": updated.version},
        )
        return stored

    def _audit(self, record: POAMRecord, action: str, actor_id: str, **kwargs: Any) -> None:
        if self.audit is None:
            return
        self.audit.record(
            record.tenant_id,
            action,
            RESOURCE_TYPE,
            resource_id=record.id,
            actor_id=actor_id,
            **kwargs,
        )

    def _audit_rejection(self, attempt: RejectedAttempt) -> None:
        if self.audit is None:
            return
        self.audit.record(
            attempt.tenant_id,
            f"{attempt.action}_denied",
            RESOURCE_TYPE,
            resource_id=attempt.record_id,
            actor_id=attempt.actor_id,
            actor_role=attempt.actor_role,
            details=attempt.to_dict(),
            severity="warning",
        )

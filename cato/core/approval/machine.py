"""POA&M approval workflow engine.

Validates every transition against the authority model and returns a new
record snapshot. The engine never touches storage; the service layer handles
reading, optimistic writes and auditing.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from cato.core.rbac.authority import AuthorityModel
from cato.core.rbac.roles import Role
from .actions import ApprovalAction, Delegate, HistoryAction, WorkflowAction, parse_action
from .errors import (
    InsufficientAuthorityError,
    InvalidStateError,
    MissingDelegateError,
    NoHigherAuthorityError,
    WorkflowError,
)
from .records import (
    EDITABLE_FIELDS,
    ApprovalHistoryEntry,
    ExceptionRequest,
    POAMRecord,
)
from .states import (
    DRAFT_STAGE,
    EDITABLE_STATES,
    REVIEW_STAGE_FOR_LEVEL,
    SUBMITTABLE_STATES,
    WITHDRAWABLE_STATES,
    ApprovalStage,
    ApprovalStatus,
    next_in_chain,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RejectedAttempt:
    """A workflow attempt the engine refused."""

    record_id: str
    tenant_id: str
    actor_id: str
    actor_role: Role
    action: str
    status: ApprovalStatus
    level: int
    error_code: str
    reason: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "tenant_id": self.tenant_id,
            "actor_id": self.actor_id,
            "actor_role": Role(self.actor_role).value,
            "action": self.action,
            "status": self.status.value,
            "level": self.level,
            "error_code": self.error_code,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class WorkflowProgressStep:
    """Progress of one approval tier for a record."""

    level: int
    roles: List[Role]
    description: str
    status: str  # completed, current or pending
    completed_at: Optional[datetime] = None
    approver: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "roles": [role.value for role in self.roles],
            "description": self.description,
            "status": self.status,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "approver": self.approver,
        }


@dataclass(frozen=True)
class POAMStatistics:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_risk_level: Dict[str, int] = field(default_factory=dict)
    pending_approval: int = 0
    overdue: int = 0
    avg_approval_time_days: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "by_risk_level": dict(self.by_risk_level),
            "pending_approval": self.pending_approval,
            "overdue": self.overdue,
            "avg_approval_time_days": self.avg_approval_time_days,
        }


class ApprovalWorkflowEngine:
    """
    State machine for the POA&M approval workflow.

    Manages transitions between approval stages with:
    - Validation of the current status for each action
    - Authority checks against the injected AuthorityModel
    - An append-only history entry for every status change
    - Listener hooks for refused attempts
    """

    def __init__(
        self,
        authority: AuthorityModel,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the workflow engine.

        Args:
            authority: Authority model consulted for every decision
            clock: Returns the current time; defaults to timezone-aware UTC now
        """
        self.authority = authority
        self._clock = clock or _utcnow
        self._rejection_listeners: List[Callable[[RejectedAttempt], None]] = []

    def register_rejection_listener(self, callback: Callable[[RejectedAttempt], None]) -> None:
        """
        Register a callback invoked for every refused attempt.

        Args:
            callback: Function to call with the RejectedAttempt
        """
        self._rejection_listeners.append(callback)

    def now(self) -> datetime:
        """Current time from the engine clock."""
        return self._clock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_record(
        self,
        tenant_id: str,
        title: str,
        *,
        record_id: Optional[str] = None,
        **fields: Any,
    ) -> POAMRecord:
        """
        Create a fresh Draft record.

        Raises:
            ValueError: If ``fields`` names workflow-owned or unknown fields
        """
        self._check_editable_fields(fields)
        now = self._clock()
        return POAMRecord(
            id=record_id or str(uuid.uuid4()),
            tenant_id=tenant_id,
            title=title,
            stage=DRAFT_STAGE,
            version=1,
            created_at=now,
            updated_at=now,
            **fields,
        )

    def submit_for_approval(
        self,
        record: POAMRecord,
        actor_id: str,
        actor_role: Role = Role.SECURITY_ENGINEER,
        comments: Optional[str] = None,
    ) -> POAMRecord:
        """
        Submit a Draft or reworked record into the first review stage.

        Raises:
            InvalidStateError: If the record is not Draft or Requires_Modification
        """
        self._require_submittable(record, actor_id, actor_role, HistoryAction.SUBMIT)
        return self._enter_review(
            record,
            actor_id,
            actor_role,
            HistoryAction.SUBMIT,
            comments or "Submitted for approval",
        )

    def request_exception(
        self,
        record: POAMRecord,
        actor_id: str,
        exception_request: ExceptionRequest,
        actor_role: Role = Role.SECURITY_ENGINEER,
    ) -> POAMRecord:
        """
        Submit a record as an exception request.

        Same transition as ``submit_for_approval``, with the exception metadata
        stamped onto the record.

        Raises:
            InvalidStateError: If the record is not Draft or Requires_Modification
        """
        self._require_submittable(record, actor_id, actor_role, HistoryAction.REQUEST_EXCEPTION)
        stamped = record.evolve(
            exception_type=exception_request.exception_type,
            justification=exception_request.justification,
            risk_acceptance_statement=exception_request.risk_acceptance_statement,
            compensating_controls=exception_request.compensating_controls,
        )
        return self._enter_review(
            stamped,
            actor_id,
            actor_role,
            HistoryAction.REQUEST_EXCEPTION,
            f"Exception requested: {exception_request.exception_type.value}",
        )

    def process_approval_action(
        self,
        record: POAMRecord,
        action: WorkflowAction,
        actor_id: str,
        actor_role: Role,
    ) -> POAMRecord:
        """
        Apply a reviewer action to a record under review.

        Args:
            record: Current snapshot
            action: Approve, Reject, RequestModification, Escalate or Delegate
            actor_id: ID of the acting user
            actor_role: Role of the acting user

        Returns:
            Updated snapshot

        Raises:
            InvalidStateError: If the record is not in a review stage
            InsufficientAuthorityError: If the actor's level is below the record's,
                or the actor may not delegate
            NoHigherAuthorityError: If escalating from the top level
        """
        actor_role = Role(actor_role)
        kind = action.kind
        self._require_reviewable(record, actor_id, actor_role, kind)

        handler = self._handlers[kind]
        new_stage, current_approver = handler(self, record, action, actor_id, actor_role)

        updated = self._record_transition(
            record,
            new_stage,
            actor_id,
            actor_role,
            kind.value,
            action.comments,
            current_approver=current_approver,
        )
        logger.info(
            "POA&M %s: %s by %s (%s) %s -> %s",
            record.id, kind.value, actor_id, actor_role.value,
            record.approval_status.value, updated.approval_status.value,
        )
        return updated

    def build_action(
        self,
        record: POAMRecord,
        action: str,
        actor_id: str,
        actor_role: Role,
        comments: Optional[str] = None,
        delegate_to_user_id: Optional[str] = None,
    ) -> WorkflowAction:
        """
        Build the action variant a caller requested against ``record``.

        A delegate request without a target goes through the same state,
        level and delegation gates as ``process_approval_action`` and is
        then refused, so it is logged and published like any other refusal.

        Raises:
            ValueError: If ``action`` is not a known action name
            InvalidStateError: If the record is not in a review stage
            InsufficientAuthorityError: If the actor cannot act or delegate here
            MissingDelegateError: If a delegate request names no target
        """
        try:
            return parse_action(action, comments, delegate_to_user_id)
        except MissingDelegateError as error:
            actor_role = Role(actor_role)
            self._require_reviewable(record, actor_id, actor_role, ApprovalAction.DELEGATE)
            self._require_delegator(record, actor_id, actor_role)
            self._refuse(record, actor_id, actor_role, ApprovalAction.DELEGATE.value, error)
            raise

    def withdraw(
        self,
        record: POAMRecord,
        actor_id: str,
        actor_role: Role,
        comments: Optional[str] = None,
    ) -> POAMRecord:
        """
        Withdraw a record from the workflow.

        Only the submitter may withdraw a submitted record.

        Raises:
            InvalidStateError: If the record is already terminal
            InsufficientAuthorityError: If the actor is not the submitter
        """
        actor_role = Role(actor_role)
        action = HistoryAction.WITHDRAW.value

        if record.approval_status not in WITHDRAWABLE_STATES:
            self._refuse(record, actor_id, actor_role, action, InvalidStateError(
                f"Cannot withdraw a POA&M in status {record.approval_status.value}",
                record.approval_status,
                action,
            ))

        if record.submitted_by and record.submitted_by != actor_id:
            self._refuse(record, actor_id, actor_role, action, InsufficientAuthorityError(
                f"Only the submitter ({record.submitted_by}) can withdraw POA&M {record.id}",
                actor_role,
            ))

        updated = self._record_transition(
            record,
            ApprovalStage.for_status(ApprovalStatus.WITHDRAWN),
            actor_id,
            actor_role,
            action,
            comments,
            current_approver=None,
        )
        logger.info("POA&M %s withdrawn by %s", record.id, actor_id)
        return updated

    def amend_record(self, record: POAMRecord, **changes: Any) -> POAMRecord:
        """
        Edit a record's content while it is with its author.

        No history entry is written because the status does not change.

        Raises:
            InvalidStateError: If the record is not Draft or Requires_Modification
            ValueError: If ``changes`` names workflow-owned or unknown fields
        """
        if record.approval_status not in EDITABLE_STATES:
            raise InvalidStateError(
                f"Cannot edit a POA&M in status {record.approval_status.value}",
                record.approval_status,
                "update",
            )
        self._check_editable_fields(changes)
        if not changes:
            return record
        return record.evolve(
            version=record.version + 1,
            updated_at=self._clock(),
            **changes,
        )

    # ------------------------------------------------------------------
    # Derived reads
    # ------------------------------------------------------------------

    def available_actions(
        self,
        record: POAMRecord,
        role: Role,
        actor_id: Optional[str] = None,
    ) -> List[HistoryAction]:
        """Get the actions the engine would accept right now."""
        role = Role(role)
        if record.stage.is_terminal:
            return []

        status = record.approval_status
        actions = []

        if status in SUBMITTABLE_STATES:
            actions.extend([HistoryAction.SUBMIT, HistoryAction.REQUEST_EXCEPTION])

        if record.stage.is_review and self.authority.approval_level_of(role) >= record.approval_level:
            actions.extend([
                HistoryAction.APPROVE,
                HistoryAction.REJECT,
                HistoryAction.REQUEST_MODIFICATION,
            ])
            if self.authority.next_approval_level(record.approval_level) is not None:
                actions.append(HistoryAction.ESCALATE)
            if self.authority.can_delegate(role):
                actions.append(HistoryAction.DELEGATE)

        if status in WITHDRAWABLE_STATES:
            if not record.submitted_by or actor_id is None or record.submitted_by == actor_id:
                actions.append(HistoryAction.WITHDRAW)

        return actions

    def pending_approvals_for(self, role: Role, records: Iterable[POAMRecord]) -> List[POAMRecord]:
        """Get records under review at exactly the role's approval level."""
        level = self.authority.approval_level_of(role)
        return [
            record for record in records
            if record.stage.is_review and record.approval_level == level
        ]

    def workflow_progress(self, record: POAMRecord) -> List[WorkflowProgressStep]:
        """
        Classify each approval tier as completed, current or pending.

        An Approved record has every tier completed.
        """
        steps = []
        approved = record.approval_status == ApprovalStatus.APPROVED

        for tier in self.authority.approval_hierarchy():
            if approved or tier.level < record.approval_level:
                entry = self._approval_entry_for_level(record, tier.level)
                steps.append(WorkflowProgressStep(
                    level=tier.level,
                    roles=tier.roles,
                    description=tier.description,
                    status="completed",
                    completed_at=entry.timestamp if entry else None,
                    approver=entry.actor_id if entry else None,
                ))
            elif tier.level == record.approval_level:
                steps.append(WorkflowProgressStep(tier.level, tier.roles, tier.description, "current"))
            else:
                steps.append(WorkflowProgressStep(tier.level, tier.roles, tier.description, "pending"))

        return steps

    def workflow_status(self, record: POAMRecord) -> Dict[str, Any]:
        """Get current level, who can act next, and tier progress."""
        if record.stage.is_review:
            next_approvers = self.authority.roles_for_approval_level(record.approval_level)
        else:
            next_approvers = []

        return {
            "current_level": record.approval_level,
            "approval_status": record.approval_status.value,
            "current_approver": record.current_approver,
            "next_approvers": [role.value for role in next_approvers],
            "workflow_progress": [step.to_dict() for step in self.workflow_progress(record)],
        }

    def statistics(
        self,
        records: Iterable[POAMRecord],
        now: Optional[datetime] = None,
    ) -> POAMStatistics:
        """Summarize a tenant's records."""
        now = now or self._clock()
        by_status = {status.value: 0 for status in ApprovalStatus}
        by_risk_level: Dict[str, int] = {}
        pending = 0
        overdue = 0
        approval_days = []
        total = 0

        for record in records:
            total += 1
            by_status[record.approval_status.value] += 1
            by_risk_level[record.risk_level.value] = by_risk_level.get(record.risk_level.value, 0) + 1

            if record.stage.is_review:
                pending += 1
            if self.is_overdue(record, now):
                overdue += 1
            if record.submitted_date and record.approved_date:
                elapsed = record.approved_date - record.submitted_date
                approval_days.append(elapsed.total_seconds() / 86400)

        return POAMStatistics(
            total=total,
            by_status=by_status,
            by_risk_level=by_risk_level,
            pending_approval=pending,
            overdue=overdue,
            avg_approval_time_days=sum(approval_days) / len(approval_days) if approval_days else 0.0,
        )

    @staticmethod
    def is_overdue(record: POAMRecord, now: datetime) -> bool:
        """Check if the target approval date has passed without approval."""
        return bool(
            record.target_approval_date
            and record.target_approval_date < now
            and record.approval_status != ApprovalStatus.APPROVED
        )

    # ------------------------------------------------------------------
    # Action handlers: return (new stage, current approver)
    # ------------------------------------------------------------------

    def _approve(self, record, action, actor_id, actor_role):
        next_status = next_in_chain(record.approval_status)
        return ApprovalStage.for_status(next_status), None

    def _reject(self, record, action, actor_id, actor_role):
        return ApprovalStage.for_status(ApprovalStatus.REJECTED), None

    def _request_modification(self, record, action, actor_id, actor_role):
        return ApprovalStage(ApprovalStatus.REQUIRES_MODIFICATION, record.approval_level), None

    def _escalate(self, record, action, actor_id, actor_role):
        next_level = self.authority.next_approval_level(record.approval_level)
        if next_level is None or next_level not in REVIEW_STAGE_FOR_LEVEL:
            self._refuse(
                record, actor_id, actor_role, action.kind.value,
                NoHigherAuthorityError(record.approval_level),
            )
        return ApprovalStage.review(next_level), None

    def _delegate(self, record, action: Delegate, actor_id, actor_role):
        self._require_delegator(record, actor_id, actor_role)
        return record.stage, action.delegate_to_user_id

    _handlers = {
        ApprovalAction.APPROVE: _approve,
        ApprovalAction.REJECT: _reject,
        ApprovalAction.REQUEST_MODIFICATION: _request_modification,
        ApprovalAction.ESCALATE: _escalate,
        ApprovalAction.DELEGATE: _delegate,
    }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_reviewable(self, record, actor_id, actor_role: Role, kind: ApprovalAction) -> None:
        if not record.stage.is_review:
            self._refuse(record, actor_id, actor_role, kind.value, InvalidStateError(
                f"Cannot {kind.value} a POA&M in status {record.approval_status.value}",
                record.approval_status,
                kind.value,
            ))

        actor_level = self.authority.approval_level_of(actor_role)
        if actor_level < record.approval_level:
            self._refuse(record, actor_id, actor_role, kind.value, InsufficientAuthorityError(
                f"Role {actor_role.value} (level {actor_level}) cannot act on a "
                f"level {record.approval_level} review",
                actor_role,
                record.approval_level,
            ))

    def _require_delegator(self, record, actor_id, actor_role: Role) -> None:
        if not self.authority.can_delegate(actor_role):
            self._refuse(record, actor_id, actor_role, ApprovalAction.DELEGATE.value, InsufficientAuthorityError(
                f"Role {actor_role.value} cannot delegate approvals",
                actor_role,
            ))

    def _require_submittable(self, record, actor_id, actor_role, action: HistoryAction) -> None:
        if record.approval_status not in SUBMITTABLE_STATES:
            self._refuse(record, actor_id, Role(actor_role), action.value, InvalidStateError(
                f"Cannot {action.value} a POA&M in status {record.approval_status.value}",
                record.approval_status,
                action.value,
            ))

    def _enter_review(
        self,
        record: POAMRecord,
        actor_id: str,
        actor_role: Role,
        action: HistoryAction,
        comments: str,
    ) -> POAMRecord:
        now = self._clock()
        updated = self._record_transition(
            record.evolve(submitted_date=now, submitted_by=actor_id),
            ApprovalStage.review(1),
            actor_id,
            Role(actor_role),
            action.value,
            comments,
            current_approver=None,
            now=now,
        )
        logger.info("POA&M %s entered review (%s) by %s", record.id, action.value, actor_id)
        return updated

    def _record_transition(
        self,
        record: POAMRecord,
        new_stage: ApprovalStage,
        actor_id: str,
        actor_role: Role,
        action: str,
        comments: Optional[str],
        *,
        current_approver: Optional[str],
        now: Optional[datetime] = None,
    ) -> POAMRecord:
        now = now or self._clock()
        entry = ApprovalHistoryEntry(
            id=str(uuid.uuid4()),
            timestamp=now,
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            from_status=record.approval_status,
            to_status=new_stage.status,
            comments=comments,
        )
        changes: Dict[str, Any] = {
            "stage": new_stage,
            "current_approver": current_approver,
            "approval_history": record.approval_history + (entry,),
            "version": record.version + 1,
            "updated_at": now,
            "last_action_date": now,
        }
        if new_stage.status == ApprovalStatus.APPROVED:
            changes["approved_date"] = now
        return record.evolve(**changes)

    def _refuse(
        self,
        record: POAMRecord,
        actor_id: str,
        actor_role: Role,
        action: str,
        error: WorkflowError,
    ) -> None:
        """Log and publish a refused attempt, then raise ``error``."""
        attempt = RejectedAttempt(
            record_id=record.id,
            tenant_id=record.tenant_id,
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            status=record.approval_status,
            level=record.approval_level,
            error_code=error.code,
            reason=str(error),
            timestamp=self._clock(),
        )
        logger.warning(
            "Refused %s on POA&M %s by %s (%s): %s",
            action, record.id, actor_id, Role(actor_role).value, error,
        )
        for callback in self._rejection_listeners:
            try:
                callback(attempt)
            except Exception:
                # A failing listener must not mask the refusal
                logger.exception("Rejection listener failed for POA&M %s", record.id)
        raise error

    def _approval_entry_for_level(self, record: POAMRecord, level: int) -> Optional[ApprovalHistoryEntry]:
        stage = REVIEW_STAGE_FOR_LEVEL.get(level)
        for entry in reversed(record.approval_history):
            if entry.action != ApprovalAction.APPROVE.value:
                continue
            if entry.from_status == stage or self.authority.approval_level_of(entry.actor_role) == level:
                return entry
        return None

    @staticmethod
    def _check_editable_fields(fields: Dict[str, Any]) -> None:
        rejected = sorted(set(fields) - EDITABLE_FIELDS)
        if rejected:
            raise ValueError(f"Fields cannot be set directly: {', '.join(rejected)}")

"""Approval workflow module for the cATO dashboard.

Implements the POA&M multi-level DoD approval state machine.
"""

from .states import ApprovalStage, ApprovalStatus, REVIEW_STATES, TERMINAL_STATES
from .actions import (
    ApprovalAction,
    Approve,
    Delegate,
    Escalate,
    HistoryAction,
    Reject,
    RequestModification,
    WorkflowAction,
    parse_action,
)
from .errors import (
    InsufficientAuthorityError,
    InvalidStateError,
    MissingDelegateError,
    NoHigherAuthorityError,
    NotFoundError,
    VersionConflictError,
    WorkflowError,
)
from .records import (
    ApprovalHistoryEntry,
    ExceptionRequest,
    ExceptionType,
    POAMRecord,
    RiskLevel,
    Severity,
)
from .machine import ApprovalWorkflowEngine, POAMStatistics, RejectedAttempt, WorkflowProgressStep
from .service import POAMService

__all__ = [
    "ApprovalAction",
    "ApprovalHistoryEntry",
    "ApprovalStage",
    "ApprovalStatus",
    "ApprovalWorkflowEngine",
    "Approve",
    "Delegate",
    "Escalate",
    "ExceptionRequest",
    "ExceptionType",
    "HistoryAction",
    "InsufficientAuthorityError",
    "InvalidStateError",
    "MissingDelegateError",
    "NoHigherAuthorityError",
    "NotFoundError",
    "POAMRecord",
    "POAMService",
    "POAMStatistics",
    "REVIEW_STATES",
    "Reject",
    "RejectedAttempt",
    "RequestModification",
    "RiskLevel",
    "Severity",
    "TERMINAL_STATES",
    "VersionConflictError",
    "WorkflowAction",
    "WorkflowError",
    "WorkflowProgressStep",
    "parse_action",
]

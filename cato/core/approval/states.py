"""POA&M approval workflow states and stages.

State Machine Diagram:

    ┌───────┐ submit / request_exception
    │ Draft │──────────────────────────────┐
    └───────┘                              │
                                     ┌─────▼───────┐
                                     │ ISSE_Review │ (1)
                                     └─────┬───────┘
                                     ┌─────▼───────┐
                                     │ ISSO_Review │ (2)
                                     └─────┬───────┘
                                     ┌─────▼───────┐
                                     │ ISSM_Review │ (3)
                                     └─────┬───────┘
                                     ┌─────▼──────┐
                                     │ RMO_Review │ (4)
                                     └─────┬──────┘
                                     ┌─────▼─────┐
                                     │ AO_Review │ (5)
                                     └─────┬─────┘
                                     ┌─────▼────┐
                                     │ Approved │ (5)
                                     └──────────┘

From any review stage:
- reject → Rejected (0)
- request_modification → Requires_Modification (level kept), which can be
  resubmitted and restarts at ISSE_Review
- escalate → review stage of the next approval-eligible level
- withdraw → Withdrawn (0), also allowed from Draft and Requires_Modification
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set

from cato.core.rbac.roles import MAX_APPROVAL_LEVEL


class ApprovalStatus(str, Enum):
    """Statuses a POA&M passes through."""

    DRAFT = "Draft"
    SUBMITTED = "Submitted"               # Never produced; kept for stored data
    ISSE_REVIEW = "ISSE_Review"
    ISSO_REVIEW = "ISSO_Review"
    ISSM_REVIEW = "ISSM_Review"
    RMO_REVIEW = "RMO_Review"
    AO_REVIEW = "AO_Review"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    REQUIRES_MODIFICATION = "Requires_Modification"
    WITHDRAWN = "Withdrawn"


# Review stage owned by each approval level
REVIEW_STAGE_FOR_LEVEL: Dict[int, ApprovalStatus] = {
    1: ApprovalStatus.ISSE_REVIEW,
    2: ApprovalStatus.ISSO_REVIEW,
    3: ApprovalStatus.ISSM_REVIEW,
    4: ApprovalStatus.RMO_REVIEW,
    5: ApprovalStatus.AO_REVIEW,
}

LEVEL_FOR_REVIEW_STAGE: Dict[ApprovalStatus, int] = {
    status: level for level, status in REVIEW_STAGE_FOR_LEVEL.items()
}

# Fixed approve chain: each review stage hands off to the next one
APPROVAL_CHAIN: Dict[ApprovalStatus, ApprovalStatus] = {
    ApprovalStatus.ISSE_REVIEW: ApprovalStatus.ISSO_REVIEW,
    ApprovalStatus.ISSO_REVIEW: ApprovalStatus.ISSM_REVIEW,
    ApprovalStatus.ISSM_REVIEW: ApprovalStatus.RMO_REVIEW,
    ApprovalStatus.RMO_REVIEW: ApprovalStatus.AO_REVIEW,
    ApprovalStatus.AO_REVIEW: ApprovalStatus.APPROVED,
}

# Statuses whose level is fixed by the status alone
FIXED_LEVELS: Dict[ApprovalStatus, int] = {
    ApprovalStatus.DRAFT: 0,
    ApprovalStatus.SUBMITTED: 0,
    ApprovalStatus.APPROVED: MAX_APPROVAL_LEVEL,
    ApprovalStatus.REJECTED: 0,
    ApprovalStatus.WITHDRAWN: 0,
    **LEVEL_FOR_REVIEW_STAGE,
}

# Statuses awaiting a reviewer's decision
REVIEW_STATES: Set[ApprovalStatus] = set(LEVEL_FOR_REVIEW_STAGE)

# Statuses from which submit / request_exception are allowed
SUBMITTABLE_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.DRAFT,
    ApprovalStatus.REQUIRES_MODIFICATION,
}

# Content edits are allowed only while the record is with its author
EDITABLE_STATES: Set[ApprovalStatus] = SUBMITTABLE_STATES

WITHDRAWABLE_STATES: Set[ApprovalStatus] = REVIEW_STATES | SUBMITTABLE_STATES

# Terminal states (no outgoing transitions)
TERMINAL_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.WITHDRAWN,
}

# Records that may be removed from the store
DELETABLE_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.DRAFT,
    ApprovalStatus.WITHDRAWN,
}


@dataclass(frozen=True)
class ApprovalStage:
    """Status and approval level, which always travel together."""

    status: ApprovalStatus
    level: int

    def __post_init__(self):
        object.__setattr__(self, "status", ApprovalStatus(self.status))
        if self.status == ApprovalStatus.REQUIRES_MODIFICATION:
            if not 1 <= self.level <= MAX_APPROVAL_LEVEL:
                raise ValueError(
                    f"{self.status.value} must keep a review level between 1 and "
                    f"{MAX_APPROVAL_LEVEL}, got {self.level}"
                )
        elif FIXED_LEVELS[self.status] != self.level:
            raise ValueError(
                f"{self.status.value} requires level {FIXED_LEVELS[self.status]}, got {self.level}"
            )

    @classmethod
    def for_status(cls, status: ApprovalStatus, level: Optional[int] = None) -> "ApprovalStage":
        """Build the stage for ``status``; ``level`` is only needed for Requires_Modification."""
        status = ApprovalStatus(status)
        if level is None:
            level = FIXED_LEVELS[status]
        return cls(status, level)

    @classmethod
    def review(cls, level: int) -> "ApprovalStage":
        """Build the review stage owned by ``level``."""
        return cls(REVIEW_STAGE_FOR_LEVEL[level], level)

    @property
    def is_review(self) -> bool:
        return self.status in REVIEW_STATES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


DRAFT_STAGE = ApprovalStage(ApprovalStatus.DRAFT, 0)


def next_in_chain(status: ApprovalStatus) -> Optional[ApprovalStatus]:
    """Get the status an approve moves to from ``status``."""
    return APPROVAL_CHAIN.get(ApprovalStatus(status))

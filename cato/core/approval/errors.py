"""Errors raised by the POA&M approval workflow."""

from typing import Optional


class WorkflowError(Exception):
    """Base class for approval workflow failures."""

    code = "workflow_error"


class NotFoundError(WorkflowError):
    """Raised when a record does not exist in the caller's tenant."""

    code = "not_found"

    def __init__(self, record_id: str, tenant_id: Optional[str] = None):
        super().__init__(f"POA&M {record_id} not found")
        self.record_id = record_id
        self.tenant_id = tenant_id


class InvalidStateError(WorkflowError):
    """Raised when an action is not allowed from the record's current status."""

    code = "invalid_state"

    def __init__(self, message: str, status, action: str):
        super().__init__(message)
        self.status = status
        self.action = action


class InsufficientAuthorityError(WorkflowError):
    """Raised when the actor's role cannot perform the action."""

    code = "insufficient_authority"

    def __init__(self, message: str, role, required_level: Optional[int] = None):
        super().__init__(message)
        self.role = role
        self.required_level = required_level


class NoHigherAuthorityError(WorkflowError):
    """Raised when escalating from the top of the approval hierarchy."""

    code = "no_higher_authority"

    def __init__(self, current_level: int):
        super().__init__(f"No higher approval level above level {current_level}")
        self.current_level = current_level


class MissingDelegateError(WorkflowError):
    """Raised when a delegate action names no delegate."""

    code = "missing_delegate"

    def __init__(self):
        super().__init__("Delegation requires delegate_to_user_id")


class VersionConflictError(WorkflowError):
    """Raised when a record changed between read and write."""

    code = "version_conflict"

    def __init__(self, record_id: str, expected_version: int, actual_version: Optional[int] = None):
        message = f"POA&M {record_id} was modified concurrently (expected version {expected_version}"
        if actual_version is not None:
            message += f", found {actual_version}"
        super().__init__(message + ")")
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version

"""POA&M API schemas."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cato.core.approval.actions import ApprovalAction
from cato.core.approval.records import ExceptionType, RiskLevel, Severity


class POAMContent(BaseModel):
    """Fields an author may set while a POA&M is with them."""
    description: str = ""
    weakness: str = ""
    severity: Severity = Severity.MODERATE
    risk_level: RiskLevel = RiskLevel.MODERATE
    business_impact: Optional[str] = None
    technical_impact: Optional[str] = None
    proposed_solution: Optional[str] = None
    implementation_plan: Optional[str] = None
    affected_controls: List[str] = Field(default_factory=list)
    compliance_frameworks: List[str] = Field(default_factory=list)
    assigned_to: Optional[str] = Field(None, max_length=64)
    target_approval_date: Optional[datetime] = None


class POAMCreate(POAMContent):
    title: str = Field(..., min_length=1, max_length=500)


class POAMUpdate(BaseModel):
    """Partial content update; ``version`` is the version the client last read."""
    version: Optional[int] = Field(None, ge=1)
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    weakness: Optional[str] = None
    severity: Optional[Severity] = None
    risk_level: Optional[RiskLevel] = None
    business_impact: Optional[str] = None
    technical_impact: Optional[str] = None
    proposed_solution: Optional[str] = None
    implementation_plan: Optional[str] = None
    affected_controls: Optional[List[str]] = None
    compliance_frameworks: Optional[List[str]] = None
    assigned_to: Optional[str] = Field(None, max_length=64)
    target_approval_date: Optional[datetime] = None

    @field_validator(
        "title", "description", "weakness", "severity", "risk_level",
        "affected_controls", "compliance_frameworks",
    )
    @classmethod
    def reject_null(cls, v):
        """These fields may be omitted but never cleared."""
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class ApprovalHistoryResponse(BaseModel):
    id: str
    timestamp: datetime
    actor_id: str
    actor_role: str
    action: str
    from_status: str
    to_status: str
    comments: Optional[str] = None


class POAMResponse(POAMContent):
    id: str
    tenant_id: str
    title: str
    approval_status: str
    approval_level: int
    current_approver: Optional[str] = None
    submitted_by: Optional[str] = None
    exception_type: Optional[ExceptionType] = None
    justification: Optional[str] = None
    risk_acceptance_statement: Optional[str] = None
    compensating_controls: List[str] = Field(default_factory=list)
    approval_history: List[ApprovalHistoryResponse] = Field(default_factory=list)
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    submitted_date: Optional[datetime] = None
    approved_date: Optional[datetime] = None
    last_action_date: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "POAMResponse":
        return cls.model_validate(record.to_dict())


class POAMListResponse(BaseModel):
    items: List[POAMResponse]
    total: int
    limit: int
    offset: int


class SubmitRequest(BaseModel):
    comments: Optional[str] = None


class ExceptionRequestBody(BaseModel):
    exception_type: ExceptionType
    justification: str = Field(..., min_length=1)
    risk_acceptance_statement: Optional[str] = None
    compensating_controls: List[str] = Field(default_factory=list)


class ActionRequest(BaseModel):
    action: ApprovalAction
    comments: Optional[str] = None
    delegate_to_user_id: Optional[str] = Field(None, max_length=64)


class WithdrawRequest(BaseModel):
    comments: Optional[str] = None


class BatchActionRequest(ActionRequest):
    record_ids: List[str] = Field(..., min_length=1)


class BatchActionResponse(BaseModel):
    processed: List[str] = []
    failed: List[dict] = []


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: str
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    severity: str
    details: Optional[dict] = None
    created_at: Optional[datetime] = None


class WorkflowStepResponse(BaseModel):
    level: int
    roles: List[str]
    description: str
    status: str
    completed_at: Optional[datetime] = None
    approver: Optional[str] = None


class WorkflowStatusResponse(BaseModel):
    current_level: int
    approval_status: str
    current_approver: Optional[str] = None
    next_approvers: List[str]
    workflow_progress: List[WorkflowStepResponse]
    available_actions: List[str] = []


class StatisticsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_risk_level: Dict[str, int]
    pending_approval: int
    overdue: int
    avg_approval_time_days: float

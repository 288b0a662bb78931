"""POA&M approval workflow API endpoints.

Permission dependencies gate coarse access to ``poam_items``; the workflow
engine makes every approval-level decision, so refused reviewer actions are
audited even when the request fails.
"""

from typing import Callable, List, Optional, TypeVar

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from cato.api.deps import get_db, get_poam_service, require_read, require_write
from cato.api.schemas.poam import (
    ActionRequest,
    ApprovalHistoryResponse,
    AuditEntryResponse,
    BatchActionRequest,
    BatchActionResponse,
    ExceptionRequestBody,
    POAMCreate,
    POAMListResponse,
    POAMResponse,
    POAMUpdate,
    StatisticsResponse,
    SubmitRequest,
    WithdrawRequest,
    WorkflowStatusResponse,
)
from cato.core.approval import ApprovalStatus, ExceptionRequest, POAMService, WorkflowError
from cato.core.rbac.authority import Actor

router = APIRouter(prefix="/poams", tags=["poams"])

T = TypeVar("T")


def _commit(db: Session, operation: Callable[[], T]) -> T:
    """Run a service operation inside the request transaction."""
    try:
        result = operation()
    except WorkflowError:
        # Refused attempts leave audit entries that must persist
        db.commit()
        raise
    except Exception:
        db.rollback()
        raise
    db.commit()
    return result


# Collection endpoints
@router.post("", response_model=POAMResponse, status_code=status.HTTP_201_CREATED)
async def create_poam(
    body: POAMCreate,
    db: Session = Depends(get_db),
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_write),
):
    """Create a Draft POA&M."""
    fields = body.model_dump(exclude={"title"})
    record = _commit(db, lambda: service.create_record(actor.tenant_id, actor.user_id, body.title, **fields))
    return POAMResponse.from_record(record)


@router.get("", response_model=POAMListResponse)
async def list_poams(
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
    approval_status: Optional[ApprovalStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """List POA&Ms in the caller's tenant."""
    records = service.list_records(actor.tenant_id, status=approval_status)
    return POAMListResponse(
        items=[POAMResponse.from_record(r) for r in records[offset:offset + limit]],
        total=len(records),
        limit=limit,
        offset=offset,
    )


@router.get("/pending", response_model=List[POAMResponse])
async def list_pending_poams(
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
):
    """List POA&Ms waiting at the caller's approval level."""
    records = service.get_pending_approvals(actor.role, actor.tenant_id)
    return [POAMResponse.from_record(r) for r in records]


@router.get("/statistics", response_model=StatisticsResponse)
async def get_poam_statistics(
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
):
    """Aggregate workflow statistics for the caller's tenant."""
    return StatisticsResponse(**service.get_statistics(actor.tenant_id).to_dict())


@router.post("/batch/actions", response_model=BatchActionResponse)
async def batch_process_poams(
    body: BatchActionRequest,
    db: Session = Depends(get_db),
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
):
    """Apply one reviewer action to several POA&Ms."""
    results = _commit(db, lambda: service.batch_process(
        body.record_ids, actor.tenant_id, body.action, actor.user_id, actor.role,
        comments=body.comments, delegate_to_user_id=body.delegate_to_user_id,
    ))
    return BatchActionResponse(**results)


# Record endpoints
@router.get("/{record_id}", response_model=POAMResponse)
async def get_poam(
    record_id: str,
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
):
    """Get a specific POA&M."""
    return POAMResponse.from_record(service.get_record(record_id, actor.tenant_id))


@router.patch("/{record_id}", response_model=POAMResponse)
async def update_poam(
    record_id: str,
    body: POAMUpdate,
    db: Session = Depends(get_db),
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_write),
):
    """Edit a Draft or Requires_Modification POA&M."""
    changes = body.model_dump(exclude_unset=True, exclude={"version"})
    record = _commit(db, lambda: service.update_record(
        record_id, actor.tenant_id, actor.user_id, expected_version=body.version, **changes,
    ))
    return POAMResponse.from_record(record)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_poam(
    record_id: str,
    db: Session = Depends(get_db),
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_write),
):
    """Delete a Draft or Withdrawn POA&M."""
    _commit(db, lambda: service.delete_record(record_id, actor.tenant_id, actor.user_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{record_id}/history", response_model=List[ApprovalHistoryResponse])
async def get_poam_history(
    record_id: str,
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
):
    """Get the approval history of a POA&M."""
    record = service.get_record(record_id, actor.tenant_id)
    return [ApprovalHistoryResponse(**entry.to_dict()) for entry in record.approval_history]


@router.get("/{record_id}/audit", response_model=List[AuditEntryResponse])
async def get_poam_audit(
    record_id: str,
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
    limit: int = Query(100, ge=1, le=500),
):
    """Get audit entries for a POA&M, including refused attempts."""
    entries = service.get_audit_trail(record_id, actor.tenant_id, limit=limit)
    return [AuditEntryResponse.model_validate(entry) for entry in entries]


@router.get("/{record_id}/workflow", response_model=WorkflowStatusResponse)
async def get_poam_workflow(
    record_id: str,
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
):
    """Get workflow progress and the actions open to the caller."""
    record = service.get_record(record_id, actor.tenant_id)
    workflow = service.engine.workflow_status(record)
    workflow["available_actions"] = [
        action.value for action in service.engine.available_actions(record, actor.role, actor.user_id)
    ]
    return WorkflowStatusResponse(**workflow)


# Workflow transitions
@router.post("/{record_id}/submit", response_model=POAMResponse)
async def submit_poam(
    record_id: str,
    body: SubmitRequest,
    db: Session = Depends(get_db),
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_write),
):
    """Submit a POA&M for approval."""
    record = _commit(db, lambda: service.submit_for_approval(
        record_id, actor.tenant_id, actor.user_id, actor.role, body.comments,
    ))
    return POAMResponse.from_record(record)


@router.post("/{record_id}/exception", response_model=POAMResponse)
async def request_poam_exception(
    record_id: str,
    body: ExceptionRequestBody,
    db: Session = Depends(get_db),
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_write),
):
    """Submit a POA&M as an exception request."""
    exception_request = ExceptionRequest(
        exception_type=body.exception_type,
        justification=body.justification,
        risk_acceptance_statement=body.risk_acceptance_statement,
        compensating_controls=tuple(body.compensating_controls),
    )
    record = _commit(db, lambda: service.request_exception(
        record_id, actor.tenant_id, exception_request, actor.user_id, actor.role,
    ))
    return POAMResponse.from_record(record)


@router.post("/{record_id}/actions", response_model=POAMResponse)
async def process_poam_action(
    record_id: str,
    body: ActionRequest,
    db: Session = Depends(get_db),
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_read),
):
    """Approve, reject, request modification, escalate or delegate."""
    record = _commit(db, lambda: service.process_action_request(
        record_id, actor.tenant_id, body.action, actor.user_id, actor.role,
        body.comments, body.delegate_to_user_id,
    ))
    return POAMResponse.from_record(record)


@router.post("/{record_id}/withdraw", response_model=POAMResponse)
async def withdraw_poam(
    record_id: str,
    body: WithdrawRequest,
    db: Session = Depends(get_db),
    service: POAMService = Depends(get_poam_service),
    actor: Actor = Depends(require_write),
):
    """Withdraw a POA&M from the workflow."""
    record = _commit(db, lambda: service.withdraw(
        record_id, actor.tenant_id, actor.user_id, actor.role, body.comments,
    ))
    return POAMResponse.from_record(record)

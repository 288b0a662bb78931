"""Celery tasks for POA&M review housekeeping.

Provides periodic processing for:
- Overdue review sweeps per tenant
- Fan-out of the sweep across every tenant
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import logging

from celery import Celery, shared_task

from cato.common.logger import configure_logging
from cato.core.approval.service import POAMService
from cato.core.config import get_settings
from cato.core.rbac.authority import AuthorityModel
from cato.core.rbac.roles import load_role_definitions
from cato.db.models.audit import AuditSeverity
from cato.db.session import SessionLocal
from cato.db.store import SqlAlchemyPOAMStore
from cato.services.audit import SqlAuditTrail

logger = logging.getLogger(__name__)
settings = get_settings()
configure_logging(settings)

# Initialize Celery
celery_app = Celery(
    'cato',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'cato.workers.review_tasks.sweep_overdue_reviews': {'queue': 'reviews'},
    },
    task_default_queue='default',
    beat_schedule={
        'sweep-overdue-reviews': {
            'task': 'cato.workers.review_tasks.sweep_all_tenants',
            'schedule': timedelta(hours=settings.overdue_sweep_interval_hours),
        },
    },
)


def build_service(db) -> POAMService:
    """POA&M service over the SQL store, for use outside a request."""
    authority = AuthorityModel(load_role_definitions(settings.roles_config_path))
    return POAMService(SqlAlchemyPOAMStore(db), authority, audit=SqlAuditTrail(db))


def collect_overdue_reviews(
    service: POAMService,
    tenant_id: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Find a tenant's overdue reviews and flag each one in the audit trail.

    Args:
        service: POA&M service for the tenant's store
        tenant_id: Tenant to sweep
        now: Reference time; defaults to the engine clock

    Returns:
        Sweep summary
    """
    overdue = service.overdue_records(tenant_id, now)
    items = []

    for record in overdue:
        workflow = service.engine.workflow_status(record)
        item = {
            "id": record.id,
            "title": record.title,
            "approval_status": record.approval_status.value,
            "approval_level": record.approval_level,
            "target_approval_date": record.target_approval_date.isoformat(),
            "next_approvers": workflow["next_approvers"],
        }
        items.append(item)
        logger.warning(
            "POA&M %s in tenant %s is overdue (%s, target %s)",
            record.id, tenant_id, record.approval_status.value, item["target_approval_date"],
        )
        if service.audit is not None:
            service.audit.record(
                tenant_id,
                "overdue_review",
                "poam",
                resource_id=record.id,
                details=item,
                severity=AuditSeverity.WARNING,
            )

    return {"tenant_id": tenant_id, "count": len(items), "overdue": items}


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def sweep_overdue_reviews(self, tenant_id: str) -> Dict[str, Any]:
    """
    Task to flag a tenant's overdue reviews.

    Args:
        tenant_id: Tenant to sweep

    Returns:
        Sweep summary
    """
    db = SessionLocal()
    try:
        result = collect_overdue_reviews(build_service(db), tenant_id)
        db.commit()
        logger.info(f"Overdue sweep for tenant {tenant_id}: {result['count']} overdue")
        return result

    except Exception as e:
        db.rollback()
        logger.exception(f"Overdue sweep failed for tenant {tenant_id}")
        # Retry on transient errors
        if "connection" in str(e).lower() or "timeout" in str(e).lower():
            raise self.retry(exc=e)
        raise

    finally:
        db.close()


@shared_task
def sweep_all_tenants() -> Dict[str, Any]:
    """
    Periodic task queueing an overdue sweep for every tenant.

    Returns:
        Tenants that were queued
    """
    db = SessionLocal()
    try:
        tenant_ids = SqlAlchemyPOAMStore(db).tenant_ids()
    finally:
        db.close()

    for tenant_id in tenant_ids:
        sweep_overdue_reviews.delay(tenant_id)

    logger.info(f"Queued overdue sweeps for {len(tenant_ids)} tenants")
    return {"queued": tenant_ids}

"""Celery workers for the cATO dashboard."""

from cato.workers.review_tasks import (
    celery_app,
    sweep_overdue_reviews,
    sweep_all_tenants,
)

__all__ = [
    "celery_app",
    "sweep_overdue_reviews",
    "sweep_all_tenants",
]

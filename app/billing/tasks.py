"""
Celery tasks for billing.

Usage:
    from billing.tasks import mark_overdue_invoices

    mark_overdue_invoices.delay()

The daily schedule is created by migration 0002 as a django-celery-beat
PeriodicTask.
"""

from __future__ import annotations

import logging

from celery import shared_task

from billing.services import InvoiceService

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True)
def mark_overdue_invoices(self) -> dict:
    """
    Move past-due invoices with an outstanding balance to OVERDUE.

    Idempotent: invoices already overdue are not selected again.

    Returns:
        Dict with:
        - updated_count: Number of invoices marked overdue
    """
    logger.info("Starting overdue invoice sweep")
    updated_count = InvoiceService().mark_overdue_invoices()
    return {"updated_count": updated_count}

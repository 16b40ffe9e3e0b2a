"""
Settlement Celery Tasks

Runs the reconciliation sweep on a beat schedule:
- Confirms charges and transfers whose outcome was unknown
- Pays out sellers whose payouts were queued
"""

import logging

from celery import shared_task
from django.db import DatabaseError


logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, queue="payment_tasks")
def run_reconciliation_sweep_task(self, limit=100):
    """
    Process due reconciliation entries.

    Args:
        limit (int): Maximum entries to process in one run

    Returns:
        dict: Counts of processed, resolved, rescheduled and abandoned entries
    """
    from infrastructure.container import container

    try:
        result = container.reconciliation_service().run_sweep(limit=limit)
    except DatabaseError as e:
        logger.error(f"Reconciliation sweep failed: {e}")
        # Retry with exponential backoff
        raise self.retry(exc=e, countdown=60 * (2**self.request.retries))

    if not result.ok:
        logger.error(f"Reconciliation sweep failed: {result.error_detail}")
        return {"success": False, "error": result.error}

    return {"success": True, **result.value}

"""
Payment System Tasks Package

Celery task definitions for the payment system.
"""

# Import tasks to ensure they are registered with Celery
from .settlement_tasks import run_reconciliation_sweep_task

__all__ = [
    "run_reconciliation_sweep_task",
]

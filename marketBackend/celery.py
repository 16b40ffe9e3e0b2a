"""
Celery Configuration for the Market Backend

Runs the settlement reconciliation sweep on a schedule and any other
background payment tasks.
"""

import os

from celery import Celery


# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "marketBackend.settings")

app = Celery("marketBackend")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()

# Task modules live in payment_system.Tasks, not tasks.py
app.autodiscover_tasks(["payment_system.Tasks"])

# Celery Beat configuration for periodic tasks
app.conf.beat_schedule = {
    # Retry queued payouts and confirm unknown outcomes
    "reconcile-settlements": {
        "task": "payment_system.Tasks.settlement_tasks.run_reconciliation_sweep_task",
        "schedule": 5.0 * 60.0,  # Every 5 minutes
        "options": {"expires": 4.0 * 60.0, "queue": "payment_tasks"},
    },
}

app.conf.update(
    task_routes={
        "payment_system.Tasks.settlement_tasks.*": {"queue": "payment_tasks"},
    },
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=60 * 60 * 24,  # Results expire after 24 hours
    worker_max_tasks_per_child=1000,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
)

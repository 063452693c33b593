"""Celery tasks of the reconciliation module."""

import structlog
from celery import shared_task

from modules.reconciliation.services import ReconciliationSweeper

logger = structlog.get_logger(__name__)


@shared_task(name="reconciliation.run_sweep")
def run_sweep():
    """Run one reconciliation pass and return its counters."""
    report = ReconciliationSweeper().run()
    return {**report.model_dump(), "total_corrections": report.total_corrections}

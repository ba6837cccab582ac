"""Scheduled-check API endpoint.

POST /api/internal/check-ab-experiments - Run one scheduler pass

Lets an external cron hit the service instead of running the CLI.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from abfunnel.api.app import get_db_session
from abfunnel.config import get_settings
from abfunnel.db.repo import DbSession
from abfunnel.models.types import CheckSummary
from abfunnel.worker.scheduler import ExperimentScheduler

router = APIRouter()


@router.post("/internal/check-ab-experiments", response_model=CheckSummary)
def check_experiments(session: DbSession = Depends(get_db_session)) -> CheckSummary:
    """Evaluate every running experiment once.

    Returns:
        CheckSummary with checked/completed/reconciled counts.
    """
    settings = get_settings()
    scheduler = ExperimentScheduler(
        session,
        max_retries=settings.scheduler_max_retries,
        retry_base_delay=settings.scheduler_retry_delay,
    )
    return scheduler.run()

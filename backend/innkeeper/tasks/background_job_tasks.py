# backend/innkeeper/tasks/background_job_tasks.py
"""Celery task polling the durable background job table."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..database import SessionLocal
from ..services.background_job_service import BackgroundJobService
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="jobs.process_due", bind=True, max_retries=0)
def process_due_jobs(self: Any, limit: Optional[int] = None) -> Dict[str, int]:
    """Run every job whose ``available_at`` has passed."""
    db = SessionLocal()
    try:
        result = BackgroundJobService(db).process_due_jobs(limit)
        if result["processed"]:
            logger.info("Background jobs processed", extra={"result": result})
        return result
    finally:
        db.close()

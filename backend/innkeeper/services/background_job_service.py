"""
Dispatcher for durable background jobs.

The Celery beat task polls this every minute. Each job type maps to a
handler; a failing handler reschedules its job instead of losing it.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import JOB_ESCALATE_HOUSEKEEPING
from ..core.metrics import BACKGROUND_JOB_FAILURES_TOTAL, BACKGROUND_JOBS_QUEUED
from ..repositories.background_job_repository import RUNNING, SUCCEEDED
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .housekeeping_service import HousekeepingService

JobHandler = Callable[[Dict[str, Any]], None]

logger = logging.getLogger(__name__)


class BackgroundJobService(BaseService):
    def __init__(self, db: Session, handlers: Optional[Dict[str, JobHandler]] = None):
        super().__init__(db)
        self.job_repository = RepositoryFactory.create_background_job_repository(db)
        self.handlers: Dict[str, JobHandler] = handlers or self._default_handlers()
        # Fixed retry delays per job type; others back off exponentially
        self.retry_delays: Dict[str, int] = {
            JOB_ESCALATE_HOUSEKEEPING: settings.housekeeping_escalation_retry_seconds,
        }
        # Retried until they succeed
        self.uncapped_types = {JOB_ESCALATE_HOUSEKEEPING}

    def _default_handlers(self) -> Dict[str, JobHandler]:
        housekeeping = HousekeepingService(self.db)
        return {JOB_ESCALATE_HOUSEKEEPING: housekeeping.handle_escalation_job}

    @BaseService.measure_operation("process_due_jobs")
    def process_due_jobs(
        self, limit: Optional[int] = None, *, now: Optional[datetime] = None
    ) -> Dict[str, int]:
        jobs = self.job_repository.fetch_due(limit=limit or settings.jobs_batch_size, now=now)
        BACKGROUND_JOBS_QUEUED.set(len(jobs))
        succeeded = 0
        failed = 0

        for job in jobs:
            job_id = job.id
            job_type = job.type
            payload = dict(job.payload or {})
            self.job_repository.set_status(job_id, RUNNING)
            self.db.commit()

            handler = self.handlers.get(job_type)
            try:
                if handler is None:
                    raise LookupError(f"No handler registered for job type {job_type}")
                handler(payload)
                self.job_repository.set_status(job_id, SUCCEEDED)
                self.db.commit()
                succeeded += 1
            except Exception as exc:
                self.db.rollback()
                failed += 1
                BACKGROUND_JOB_FAILURES_TOTAL.labels(type=job_type).inc()
                self.logger.exception(
                    "Background job failed",
                    extra={"job_id": job_id, "job_type": job_type},
                )
                self.job_repository.mark_failed(
                    job_id,
                    str(exc),
                    retry_in_seconds=self.retry_delays.get(job_type),
                    capped=job_type not in self.uncapped_types,
                )
                self.db.commit()

        return {"processed": len(jobs), "succeeded": succeeded, "failed": failed}

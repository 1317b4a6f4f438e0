"""Repository for the durable job queue behind housekeeping escalation."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from ..core.config import settings
from ..core.exceptions import RepositoryException
from ..core.timezone_utils import utcnow
from ..models.background_job import BackgroundJob

logger = logging.getLogger(__name__)

QUEUED = "queued"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"


class BackgroundJobRepository:
    def __init__(self, db: Session):
        self.db = db

    def enqueue(
        self, *, type: str, payload: dict[str, Any], available_at: Optional[datetime] = None
    ) -> str:
        job = BackgroundJob(
            id=str(ulid.ULID()),
            type=type,
            payload=payload,
            status=QUEUED,
            attempts=0,
            available_at=available_at or utcnow(),
        )
        try:
            self.db.add(job)
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error enqueuing {type} job: {str(e)}")
            raise RepositoryException(f"Failed to enqueue {type} job: {str(e)}")
        return job.id

    def fetch_due(self, *, limit: int, now: Optional[datetime] = None) -> List[BackgroundJob]:
        """Queued jobs whose ``available_at`` has passed, oldest first."""
        try:
            return (
                self.db.query(BackgroundJob)
                .filter(
                    BackgroundJob.status == QUEUED,
                    BackgroundJob.available_at <= (now or utcnow()),
                )
                .order_by(BackgroundJob.available_at.asc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error fetching due jobs: {str(e)}")
            raise RepositoryException(f"Failed to fetch due jobs: {str(e)}")

    def set_status(self, job_id: str, status: str) -> None:
        try:
            self.db.query(BackgroundJob).filter(BackgroundJob.id == job_id).update(
                {BackgroundJob.status: status, BackgroundJob.updated_at: utcnow()},
                synchronize_session="fetch",
            )
        except SQLAlchemyError as e:
            logger.error(f"Error setting job {job_id} to {status}: {str(e)}")
            raise RepositoryException(f"Failed to update job {job_id}: {str(e)}")

    def mark_failed(
        self,
        job_id: str,
        error: str,
        *,
        retry_in_seconds: Optional[int] = None,
        capped: bool = True,
    ) -> Optional[BackgroundJob]:
        """
        Record a failed attempt and put the job back on the queue.

        ``retry_in_seconds`` pins the delay; without it the delay doubles per
        attempt up to ``jobs_backoff_cap``. A job that reaches
        ``jobs_max_attempts`` stays ``failed`` unless ``capped`` is False.
        """
        try:
            job = self.db.get(BackgroundJob, job_id)
            if job is None:
                logger.warning(f"Job {job_id} vanished before it could be rescheduled")
                return None

            job.attempts = (job.attempts or 0) + 1
            job.last_error = error
            job.updated_at = utcnow()
            if capped and job.attempts >= settings.jobs_max_attempts:
                job.status = FAILED
            else:
                delay = retry_in_seconds
                if delay is None:
                    delay = min(
                        settings.jobs_backoff_cap,
                        settings.jobs_backoff_base * 2 ** (job.attempts - 1),
                    )
                job.status = QUEUED
                job.available_at = job.updated_at + timedelta(seconds=delay)
            self.db.flush()
            return job
        except SQLAlchemyError as e:
            logger.error(f"Error rescheduling job {job_id}: {str(e)}")
            raise RepositoryException(f"Failed to reschedule job {job_id}: {str(e)}")

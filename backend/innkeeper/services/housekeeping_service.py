# backend/innkeeper/services/housekeeping_service.py
"""
Housekeeping tasks raised by check-out, and their priority escalation.

Escalation runs on the durable ``background_jobs`` table: each step
enqueues the next one an hour later, so pending escalations survive a
worker restart.
"""

from datetime import datetime, timedelta
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    CLEANING_TASK_DUE_HOURS,
    CLEANING_TASK_ESTIMATED_MINUTES,
    JOB_ESCALATE_HOUSEKEEPING,
    PRIORITY_LADDER,
)
from ..core.exceptions import NotFoundException
from ..models.staff_task import CLOSED_TASK_STATUSES, StaffTask, TaskPriority, TaskStatus
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


def next_priority(current: str) -> Optional[str]:
    """The next rung on the ladder, or None at the top (or for unknown values)."""
    try:
        index = PRIORITY_LADDER.index(current)
    except ValueError:
        return None
    if index + 1 >= len(PRIORITY_LADDER):
        return None
    return PRIORITY_LADDER[index + 1]


class HousekeepingService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.task_repository = RepositoryFactory.create_staff_task_repository(db)
        self.job_repository = RepositoryFactory.create_background_job_repository(db)

    @BaseService.measure_operation("create_cleaning_task")
    def create_cleaning_task(
        self,
        *,
        room_id: str,
        room_number: str,
        booking_id: Optional[str],
        guest_name: str,
        now: Optional[datetime] = None,
    ) -> StaffTask:
        at = self.resolve_now(now)
        with self.transaction():
            task = self.task_repository.create(
                title=f"Clean room {room_number} after checkout",
                description=f"Room cleaning required after guest checkout. Guest: {guest_name}",
                task_type="cleaning",
                room_id=room_id,
                booking_id=booking_id,
                priority=TaskPriority.HIGH,
                status=TaskStatus.PENDING,
                due_date=at + timedelta(hours=CLEANING_TASK_DUE_HOURS),
                estimated_duration_minutes=CLEANING_TASK_ESTIMATED_MINUTES,
            )
            self.schedule_escalation(task.id, now=at)

        self.log_operation("cleaning_task_created", task_id=task.id, room_id=room_id)
        return task

    def schedule_escalation(
        self, task_id: str, *, now: Optional[datetime] = None, delay_seconds: Optional[int] = None
    ) -> str:
        """Enqueue the next escalation step; flushes only."""
        at = self.resolve_now(now)
        delay = (
            settings.housekeeping_escalation_interval_seconds
            if delay_seconds is None
            else delay_seconds
        )
        return self.job_repository.enqueue(
            type=JOB_ESCALATE_HOUSEKEEPING,
            payload={"task_id": task_id},
            available_at=at + timedelta(seconds=delay),
        )

    def escalate_task_priority(self, task_id: str) -> bool:
        """
        Raise the task one step up the priority ladder.

        Returns True when a further step is still possible.
        """
        task = self.task_repository.get_by_id(task_id)
        if task is None:
            raise NotFoundException(f"Staff task {task_id} not found")

        if task.status in CLOSED_TASK_STATUSES:
            self.logger.info(
                "Task closed; escalation stopped",
                extra={"task_id": task_id, "task_status": task.status},
            )
            return False

        upgraded = next_priority(task.priority)
        if upgraded is None:
            return False

        with self.transaction():
            previous = task.priority
            task.priority = upgraded
            self.task_repository.flush()

        self.logger.info(
            f"Task {task_id} priority {previous} -> {upgraded}",
            extra={"task_id": task_id, "priority": upgraded},
        )
        return next_priority(upgraded) is not None

    def handle_escalation_job(self, payload: Dict[str, Any], *, now: Optional[datetime] = None) -> None:
        """Background job handler: escalate once and chain the next step."""
        task_id = payload["task_id"]
        if self.escalate_task_priority(task_id):
            with self.transaction():
                self.schedule_escalation(task_id, now=now)

    def complete_task(self, task_id: str) -> StaffTask:
        task = self.task_repository.get_by_id(task_id)
        if task is None:
            raise NotFoundException(f"Staff task {task_id} not found")
        with self.transaction():
            task.status = TaskStatus.COMPLETED
            self.task_repository.flush()
        return task

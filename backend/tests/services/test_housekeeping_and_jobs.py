"""Cleaning tasks and their escalation through the durable job queue."""

from datetime import timedelta

import pytest
from tests.factories.hotel import DAY_D

from innkeeper.core.config import settings
from innkeeper.core.constants import JOB_ESCALATE_HOUSEKEEPING
from innkeeper.core.exceptions import NotFoundException
from innkeeper.core.timezone_utils import ensure_utc, utcnow
from innkeeper.models import BackgroundJob, StaffTask, TaskPriority
from innkeeper.services.background_job_service import BackgroundJobService
from innkeeper.services.housekeeping_service import HousekeepingService, next_priority

DUE = DAY_D + timedelta(hours=1, seconds=1)


@pytest.fixture
def housekeeping(db):
    return HousekeepingService(db)


@pytest.fixture
def task(housekeeping, room):
    return housekeeping.create_cleaning_task(
        room_id=room.id, room_number=room.room_number, booking_id=None, guest_name="Ada Guest", now=DAY_D
    )


def queued_jobs(db):
    return db.query(BackgroundJob).filter_by(type=JOB_ESCALATE_HOUSEKEEPING, status="queued").all()


@pytest.mark.parametrize(
    "current, expected",
    [("low", "medium"), ("medium", "high"), ("high", "urgent"), ("urgent", None), ("odd", None)],
)
def test_next_priority(current, expected):
    assert next_priority(current) == expected


def test_cleaning_task_is_high_priority_and_due_in_two_hours(task):
    assert task.priority == TaskPriority.HIGH
    assert task.description == "Room cleaning required after guest checkout. Guest: Ada Guest"
    assert ensure_utc(task.due_date) == DAY_D + timedelta(hours=2)


def test_escalation_waits_an_hour(db, task):
    result = BackgroundJobService(db).process_due_jobs(now=DAY_D + timedelta(minutes=59))

    assert result == {"processed": 0, "succeeded": 0, "failed": 0}
    db.refresh(task)
    assert task.priority == TaskPriority.HIGH


def test_high_escalates_to_urgent_and_stops(db, task):
    result = BackgroundJobService(db).process_due_jobs(now=DUE)

    assert result == {"processed": 1, "succeeded": 1, "failed": 0}
    db.refresh(task)
    assert task.priority == TaskPriority.URGENT
    assert queued_jobs(db) == []


def test_lower_priority_keeps_climbing(db, housekeeping, task):
    task.priority = TaskPriority.LOW
    db.commit()

    BackgroundJobService(db).process_due_jobs(now=DUE)

    db.refresh(task)
    assert task.priority == TaskPriority.MEDIUM
    assert [job.payload for job in queued_jobs(db)] == [{"task_id": task.id}]


def test_completed_task_stops_escalation(db, housekeeping, task):
    housekeeping.complete_task(task.id)

    result = BackgroundJobService(db).process_due_jobs(now=DUE)

    assert result["succeeded"] == 1
    db.refresh(task)
    assert task.priority == TaskPriority.HIGH
    assert queued_jobs(db) == []


def test_failed_escalation_retries_after_an_hour(db, task):
    def broken(payload):
        raise RuntimeError("database hiccup")

    before = utcnow()
    result = BackgroundJobService(db, handlers={JOB_ESCALATE_HOUSEKEEPING: broken}).process_due_jobs(
        now=DUE
    )

    assert result == {"processed": 1, "succeeded": 0, "failed": 1}
    [job] = queued_jobs(db)
    assert job.attempts == 1
    assert job.last_error == "database hiccup"
    assert ensure_utc(job.available_at) >= before + timedelta(seconds=3600)


def test_unknown_job_type_is_rescheduled(db):
    db.add(BackgroundJob(id="job-1", type="mystery", payload={}, status="queued", available_at=DAY_D))
    db.commit()

    result = BackgroundJobService(db).process_due_jobs(now=DUE)

    assert result["failed"] == 1
    job = db.get(BackgroundJob, "job-1")
    assert job.status == "queued"
    assert "No handler registered" in job.last_error


def test_escalation_is_never_abandoned(db, task):
    def broken(payload):
        raise RuntimeError("database hiccup")

    [escalation] = queued_jobs(db)
    escalation.attempts = settings.jobs_max_attempts - 1
    db.add(
        BackgroundJob(
            id="job-1",
            type="mystery",
            payload={},
            status="queued",
            attempts=settings.jobs_max_attempts - 1,
            available_at=DAY_D,
        )
    )
    db.commit()

    BackgroundJobService(db, handlers={JOB_ESCALATE_HOUSEKEEPING: broken}).process_due_jobs(now=DUE)

    db.refresh(escalation)
    assert escalation.status == "queued"
    assert escalation.attempts == settings.jobs_max_attempts
    assert db.get(BackgroundJob, "job-1").status == "failed"


def test_escalating_missing_task(housekeeping):
    with pytest.raises(NotFoundException):
        housekeeping.escalate_task_priority("missing")


def test_room_task_row_is_persisted(db, task):
    stored = db.get(StaffTask, task.id)
    assert stored.title.startswith("Clean room 101")

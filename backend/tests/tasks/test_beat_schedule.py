from celery.schedules import crontab

from innkeeper.core.config import settings
from innkeeper.tasks import (  # noqa: F401
    background_job_tasks,
    beat_schedule,
    booking_hold_tasks,
    key_card_tasks,
)
from innkeeper.tasks.celery_app import celery_app


def test_every_scheduled_task_is_registered():
    for entry in beat_schedule.get_beat_schedule().values():
        assert entry["task"] in celery_app.tasks


def test_hold_check_defaults_to_hourly():
    assert beat_schedule._hold_check_schedule() == crontab(minute=0)


def test_hold_check_interval_below_an_hour(monkeypatch):
    monkeypatch.setattr(settings, "hold_check_interval_minutes", 15)

    assert beat_schedule._hold_check_schedule() == crontab(minute="*/15")


def test_development_routes_everything_to_default_queue():
    schedule = beat_schedule.get_beat_schedule("development")

    assert {entry["options"]["queue"] for entry in schedule.values()} == {"celery"}


def test_production_keeps_dedicated_queues():
    schedule = beat_schedule.get_beat_schedule("production")

    assert schedule["expire-overdue-holds"]["options"]["queue"] == "scheduler"
    assert schedule["cleanup-terminal-bookings"]["options"]["queue"] == "maintenance"
    assert schedule["reconcile-orphaned-key-cards"]["schedule"] == crontab(minute="*/30")

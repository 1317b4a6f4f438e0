# backend/innkeeper/tasks/beat_schedule.py
"""
Celery Beat schedule for Innkeeper.

Hold expiry is hourly by default (``HOLD_CHECK_INTERVAL_MINUTES``), the
durable job poller runs every minute.
"""

from typing import Any, Dict

from celery.schedules import crontab

from ..core.config import settings


def _hold_check_schedule() -> crontab:
    interval = settings.hold_check_interval_minutes
    if interval >= 60:
        return crontab(minute=0)
    return crontab(minute=f"*/{interval}")


CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    "expire-overdue-holds": {
        "task": "holds.expire_overdue",
        "schedule": _hold_check_schedule(),
        "options": {"queue": "scheduler", "priority": 8},
    },
    "send-hold-expiry-reminders": {
        "task": "holds.send_expiry_reminders",
        "schedule": crontab(minute=0, hour="*/6"),
        "kwargs": {"hours_before": settings.hold_reminder_lookahead_hours},
        "options": {"queue": "scheduler", "priority": 5},
    },
    "cleanup-terminal-bookings": {
        "task": "holds.cleanup_terminal_bookings",
        "schedule": crontab(hour=3, minute=15),
        "kwargs": {"retention_days": settings.booking_retention_days},
        "options": {"queue": "maintenance", "priority": 2},
    },
    "process-due-background-jobs": {
        "task": "jobs.process_due",
        "schedule": crontab(minute="*"),
        "options": {"queue": "scheduler", "priority": 7},
    },
    "reconcile-orphaned-key-cards": {
        "task": "key_cards.reconcile_orphans",
        "schedule": crontab(minute="*/30"),
        "options": {"queue": "maintenance", "priority": 4},
    },
}

# Everything on the default queue outside production
SCHEDULE_CONFIG: Dict[str, Dict[str, Dict[str, Any]]] = {
    "development": {
        name: {**entry, "options": {**entry["options"], "queue": "celery"}}
        for name, entry in CELERYBEAT_SCHEDULE.items()
    },
}


def get_beat_schedule(environment: str = "production") -> Dict[str, Dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    Args:
        environment: The environment name (production, development, testing)

    Returns:
        Mapping of schedule entry name to Celery beat configuration dict
    """
    base: Dict[str, Dict[str, Any]] = dict(CELERYBEAT_SCHEDULE)
    overrides = SCHEDULE_CONFIG.get(environment)
    if overrides:
        base.update(overrides)
    return base

# backend/innkeeper/tasks/booking_hold_tasks.py
"""
Celery tasks for the booking hold scheduler.

Each task opens its own session, runs one pass of BookingHoldService and
returns the pass counters.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..database import SessionLocal
from ..services.booking_hold_service import BookingHoldService
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="holds.expire_overdue",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def expire_overdue_holds(self: Any, limit: Optional[int] = None) -> Dict[str, int]:
    """Cancel bookings whose hold deadline has passed."""
    db = SessionLocal()
    try:
        result = BookingHoldService(db).expire_overdue_holds(limit=limit)
        logger.info("Hold expiry pass completed", extra={"result": dict(result)})
        return dict(result)
    except Exception as exc:
        logger.exception("Hold expiry pass failed")
        raise self.retry(exc=exc)
    finally:
        db.close()


@celery_app.task(
    name="holds.send_expiry_reminders",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def send_hold_expiry_reminders(self: Any, hours_before: Optional[int] = None) -> Dict[str, int]:
    db = SessionLocal()
    try:
        result = BookingHoldService(db).send_expiry_reminders(hours_before=hours_before)
        logger.info(
            "Hold reminder pass completed",
            extra={"result": dict(result), "hours_before": hours_before},
        )
        return dict(result)
    except Exception as exc:
        logger.exception("Hold reminder pass failed", extra={"hours_before": hours_before})
        raise self.retry(exc=exc)
    finally:
        db.close()


@celery_app.task(
    name="holds.cleanup_terminal_bookings",
    bind=True,
    max_retries=3,
    default_retry_delay=300,
)
def cleanup_terminal_bookings(self: Any, retention_days: Optional[int] = None) -> Dict[str, int]:
    """Hard-delete cancelled and rejected bookings past retention."""
    db = SessionLocal()
    try:
        result = BookingHoldService(db).cleanup_terminal_bookings(retention_days=retention_days)
        logger.info(
            "Terminal booking cleanup completed",
            extra={"result": dict(result), "retention_days": retention_days},
        )
        return dict(result)
    except Exception as exc:
        logger.exception("Terminal booking cleanup failed")
        raise self.retry(exc=exc)
    finally:
        db.close()

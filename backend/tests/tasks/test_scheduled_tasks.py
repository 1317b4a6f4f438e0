"""Celery task wrappers, called in-process against the test database."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from tests.factories.hotel import create_booking, create_room

from innkeeper.core.timezone_utils import utcnow
from innkeeper.models import BookingStatus, KeyCardStatus
from innkeeper.services.key_card_service import KeyCardService
from innkeeper.tasks import background_job_tasks, booking_hold_tasks, key_card_tasks


@pytest.fixture
def hold_sessions(session_factory):
    with patch.object(booking_hold_tasks, "SessionLocal", session_factory):
        yield


def test_expire_overdue_holds_task(db, guest, hold_sessions):
    booking = create_booking(
        db,
        guest=guest,
        room=create_room(db),
        status=BookingStatus.ON_HOLD,
        hold_until=utcnow() - timedelta(hours=1),
    )

    result = booking_hold_tasks.expire_overdue_holds()

    assert result == {"processed": 1, "errors": 0}
    db.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED


def test_reminder_task_passes_lookahead(db, guest, hold_sessions):
    create_booking(
        db,
        guest=guest,
        room=create_room(db),
        status=BookingStatus.ON_HOLD,
        hold_until=utcnow() + timedelta(hours=3),
    )

    assert booking_hold_tasks.send_hold_expiry_reminders(hours_before=2) == {"sent": 0, "errors": 0}
    assert booking_hold_tasks.send_hold_expiry_reminders(hours_before=4) == {"sent": 1, "errors": 0}


def test_cleanup_task_returns_counts(hold_sessions):
    assert booking_hold_tasks.cleanup_terminal_bookings(retention_days=30) == {
        "deleted": 0,
        "errors": 0,
    }


def test_hold_task_failure_is_raised(hold_sessions):
    with patch.object(
        booking_hold_tasks.BookingHoldService,
        "expire_overdue_holds",
        side_effect=RuntimeError("database unavailable"),
    ):
        with pytest.raises(RuntimeError, match="database unavailable"):
            booking_hold_tasks.expire_overdue_holds()


def test_process_due_jobs_task(session_factory):
    with patch.object(background_job_tasks, "SessionLocal", session_factory):
        assert background_job_tasks.process_due_jobs() == {
            "processed": 0,
            "succeeded": 0,
            "failed": 0,
        }


def test_key_card_sweep_task(db, session_factory, guest, room, key_cards):
    card = KeyCardService(db).allocate(
        guest.id, room.id, utcnow() + timedelta(days=1), now=utcnow() - timedelta(hours=1)
    )
    db.commit()

    with patch.object(key_card_tasks, "SessionLocal", session_factory):
        result = key_card_tasks.reconcile_orphaned_key_cards()

    assert result == {"released": 1, "errors": 0}
    db.refresh(card)
    assert card.status == KeyCardStatus.INACTIVE

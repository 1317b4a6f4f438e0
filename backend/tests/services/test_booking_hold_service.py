"""Tests for the booking hold scheduler passes and refund requests."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from tests.factories.hotel import DAY_D, create_booking, create_invoice, create_room, create_stay

from innkeeper.models import Booking, BookingStatus, Invoice, InvoiceStatus, Notification, Stay
from innkeeper.models.refund import RefundRequest
from innkeeper.services.booking_hold_service import BookingHoldService
from innkeeper.services.refund_service import RefundService


@pytest.fixture
def service(db):
    return BookingHoldService(db)


def hold(db, guest, *, hold_until, **overrides):
    return create_booking(
        db,
        guest=guest,
        room=create_room(db),
        status=BookingStatus.ON_HOLD,
        hold_until=hold_until,
        **overrides,
    )


def notification_types(db, user_id):
    return [n.type for n in db.query(Notification).filter_by(user_id=user_id)]


class TestExpireOverdueHolds:
    def test_expired_hold_is_cancelled_by_system(self, db, service, guest):
        booking = hold(db, guest, hold_until=DAY_D - timedelta(minutes=1))

        result = service.expire_overdue_holds(now=DAY_D)

        assert result == {"processed": 1, "errors": 0}
        db.refresh(booking)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancelled_by == "system"
        assert booking.auto_cancelled is True
        assert booking.hold_until is None
        assert booking.cancellation_reason == "Booking hold period expired"
        assert "booking_expired" in notification_types(db, guest.id)

    def test_hold_still_running_is_untouched(self, db, service, guest):
        booking = hold(db, guest, hold_until=DAY_D + timedelta(minutes=1))

        assert service.expire_overdue_holds(now=DAY_D) == {"processed": 0, "errors": 0}
        db.refresh(booking)
        assert booking.status == BookingStatus.ON_HOLD

    def test_second_pass_is_a_no_op(self, db, service, guest):
        hold(db, guest, hold_until=DAY_D - timedelta(hours=1))

        service.expire_overdue_holds(now=DAY_D)

        assert service.expire_overdue_holds(now=DAY_D) == {"processed": 0, "errors": 0}

    def test_paid_hold_gets_refund_request(self, db, service, guest):
        booking = hold(db, guest, hold_until=DAY_D - timedelta(hours=1))
        invoice = create_invoice(db, booking=booking, status=InvoiceStatus.PAID)

        service.expire_overdue_holds(now=DAY_D)

        refund = db.query(RefundRequest).filter_by(booking_id=booking.id).one()
        assert refund.invoice_id == invoice.id
        assert refund.amount == Decimal("10000.00")
        assert refund.status == "pending"

    def test_unpaid_hold_gets_no_refund(self, db, service, guest):
        booking = hold(db, guest, hold_until=DAY_D - timedelta(hours=1))
        create_invoice(db, booking=booking, status=InvoiceStatus.SENT)

        service.expire_overdue_holds(now=DAY_D)

        assert db.query(RefundRequest).count() == 0

    def test_refund_failure_does_not_undo_cancellation(self, db, guest):
        refunds = MagicMock()
        refunds.create_refund_request.side_effect = RuntimeError("ledger offline")
        service = BookingHoldService(db, refund_service=refunds)
        booking = hold(db, guest, hold_until=DAY_D - timedelta(hours=1))

        result = service.expire_overdue_holds(now=DAY_D)

        assert result == {"processed": 1, "errors": 0}
        db.refresh(booking)
        assert booking.status == BookingStatus.CANCELLED

    def test_limit_caps_the_batch(self, db, service, guest):
        for minutes in (30, 20, 10):
            hold(db, guest, hold_until=DAY_D - timedelta(minutes=minutes))

        assert service.expire_overdue_holds(now=DAY_D, limit=2)["processed"] == 2
        assert service.get_hold_stats(now=DAY_D)["expired_pending"] == 1


class TestExpiryReminders:
    def test_reminds_holds_inside_window(self, db, service, guest, other_guest):
        hold(db, guest, hold_until=DAY_D + timedelta(hours=5))
        hold(db, other_guest, hold_until=DAY_D + timedelta(hours=30))

        result = service.send_expiry_reminders(hours_before=24, now=DAY_D)

        assert result == {"sent": 1, "errors": 0}
        assert "booking_expiry_reminder" in notification_types(db, guest.id)
        assert notification_types(db, other_guest.id) == []

    def test_undelivered_reminder_counts_as_error(self, db, guest):
        notifications = MagicMock()
        notifications.send_notification.return_value = False
        service = BookingHoldService(db, notification_service=notifications)
        hold(db, guest, hold_until=DAY_D + timedelta(hours=1))

        assert service.send_expiry_reminders(now=DAY_D) == {"sent": 0, "errors": 1}


class TestCleanupTerminalBookings:
    def test_old_cancelled_booking_is_purged_with_dependents(self, db, service, guest, room):
        old = create_booking(
            db,
            guest=guest,
            room=room,
            status=BookingStatus.CANCELLED,
            created_at=DAY_D - timedelta(days=120),
        )
        create_invoice(db, booking=old)
        create_stay(db, booking=old)
        recent = create_booking(
            db,
            guest=guest,
            room=create_room(db),
            status=BookingStatus.REJECTED,
            created_at=DAY_D - timedelta(days=10),
        )

        result = service.cleanup_terminal_bookings(retention_days=90, now=DAY_D)

        assert result == {"deleted": 1, "errors": 0}
        assert db.query(Booking).filter_by(id=old.id).count() == 0
        assert db.query(Invoice).filter_by(booking_id=old.id).count() == 0
        assert db.query(Stay).filter_by(booking_id=old.id).count() == 0
        assert db.query(Booking).filter_by(id=recent.id).count() == 1

    def test_active_bookings_are_never_purged(self, db, service, guest, room):
        create_booking(db, guest=guest, room=room, created_at=DAY_D - timedelta(days=400))

        assert service.cleanup_terminal_bookings(retention_days=90, now=DAY_D)["deleted"] == 0

    def test_retention_runs_from_cancellation_not_creation(self, db, service, guest, room):
        booking = create_booking(
            db,
            guest=guest,
            room=room,
            status=BookingStatus.CANCELLED,
            created_at=DAY_D - timedelta(days=120),
            cancelled_at=DAY_D - timedelta(days=5),
        )

        assert service.cleanup_terminal_bookings(retention_days=90, now=DAY_D)["deleted"] == 0
        assert db.query(Booking).filter_by(id=booking.id).count() == 1

    def test_booking_with_refund_request_is_kept(self, db, service, guest):
        booking = hold(
            db,
            guest,
            hold_until=DAY_D - timedelta(minutes=1),
            created_at=DAY_D - timedelta(days=120),
        )
        create_invoice(db, booking=booking, status=InvoiceStatus.PAID)
        service.expire_overdue_holds(now=DAY_D)
        assert db.query(RefundRequest).filter_by(booking_id=booking.id).count() == 1

        result = service.cleanup_terminal_bookings(
            retention_days=0, now=DAY_D + timedelta(hours=1)
        )

        assert result == {"deleted": 0, "errors": 0}
        assert db.query(RefundRequest).filter_by(booking_id=booking.id).count() == 1
        assert db.query(Booking).filter_by(id=booking.id).count() == 1


def test_refund_request_is_raised_once(db, booking):
    create_invoice(db, booking=booking, status=InvoiceStatus.PAID)
    service = RefundService(db)

    first = service.create_refund_request(booking, "guest cancelled", "system")
    second = service.create_refund_request(booking, "guest cancelled", "system")

    assert first.id == second.id
    assert db.query(RefundRequest).count() == 1

from decimal import Decimal

import pytest
from tests.factories.hotel import DAY_D, create_booking, create_invoice, create_stay

from innkeeper.core.exceptions import NotFoundException, ValidationException
from innkeeper.models import (
    BookingStatus,
    InvoiceKind,
    InvoiceStatus,
    Overstay,
    PaymentMethod,
    Stay,
    StayStatus,
)
from innkeeper.repositories.stay_repository import StayRepository
from innkeeper.services.invoice_sync_service import InvoiceSyncService


@pytest.fixture
def service(db):
    return InvoiceSyncService(db)


class TestPrimaryInvoice:
    def test_paid_confirms_and_opens_pre_checkin(self, db, service, guest, room):
        booking = create_booking(
            db, guest=guest, room=room, status=BookingStatus.APPROVED_PAYMENT_PROCESSING
        )
        invoice = create_invoice(db, booking=booking)

        service.apply_status(invoice.id, InvoiceStatus.PAID, now=DAY_D)

        db.refresh(booking)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_status == "paid"
        stays = db.query(Stay).filter_by(booking_id=booking.id).all()
        assert [s.status for s in stays] == [StayStatus.PRE_CHECKIN.value]

    def test_paid_twice_keeps_one_pre_checkin(self, db, service, booking):
        invoice = create_invoice(db, booking=booking)

        service.apply_status(invoice.id, InvoiceStatus.PAID, now=DAY_D)
        service.apply_status(invoice.id, InvoiceStatus.PAID, now=DAY_D)

        assert db.query(Stay).filter_by(booking_id=booking.id).count() == 1

    def test_paid_does_not_demote_checked_in_booking(self, db, service, guest, room):
        booking = create_booking(db, guest=guest, room=room, status=BookingStatus.CHECKED_IN)
        create_stay(db, booking=booking, status=StayStatus.CHECKED_IN)
        invoice = create_invoice(db, booking=booking)

        service.apply_status(invoice.id, InvoiceStatus.PAID, now=DAY_D)

        db.refresh(booking)
        assert booking.status == BookingStatus.CHECKED_IN
        assert db.query(Stay).filter_by(booking_id=booking.id).count() == 1

    @pytest.mark.parametrize(
        "method, expected",
        [
            (PaymentMethod.CASH, BookingStatus.APPROVED_PAYMENT_PENDING),
            (PaymentMethod.CARD, BookingStatus.APPROVED_PAYMENT_PROCESSING),
        ],
    )
    def test_sent_demotes_confirmed_booking(self, db, service, guest, room, method, expected):
        booking = create_booking(db, guest=guest, room=room, payment_method=method)
        invoice = create_invoice(db, booking=booking, status=InvoiceStatus.DRAFT)

        service.apply_status(invoice.id, InvoiceStatus.SENT, now=DAY_D)

        db.refresh(booking)
        assert booking.status == expected

    def test_cancelled_cancels_booking(self, db, service, booking, staff):
        invoice = create_invoice(db, booking=booking)

        service.apply_status(invoice.id, InvoiceStatus.CANCELLED, staff.id, "guest request", now=DAY_D)

        db.refresh(booking)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancellation_reason == "guest request"

    def test_failed_leaves_booking_alone(self, db, service, booking):
        invoice = create_invoice(db, booking=booking)

        service.apply_status(invoice.id, InvoiceStatus.FAILED, now=DAY_D)

        db.refresh(booking)
        assert booking.status == BookingStatus.CONFIRMED

    def test_status_change_is_noted(self, service, db, booking, staff):
        invoice = create_invoice(db, booking=booking)

        updated = service.apply_status(invoice.id, "PAID", staff.id, now=DAY_D)

        assert updated.status == InvoiceStatus.PAID
        assert updated.status_notes[-1]["text"] == "Status SENT -> PAID"

    def test_unknown_status_is_rejected(self, db, service, booking):
        invoice = create_invoice(db, booking=booking)

        with pytest.raises(ValidationException):
            service.apply_status(invoice.id, "REFUNDED")

    def test_missing_invoice(self, service):
        with pytest.raises(NotFoundException):
            service.apply_status("nope", InvoiceStatus.PAID)


class TestOverstayInvoice:
    @pytest.fixture
    def overstay_invoice(self, db, booking):
        stay = create_stay(db, booking=booking, status=StayStatus.CHECKED_IN)
        invoice = create_invoice(
            db,
            booking=booking,
            stay=stay,
            kind=InvoiceKind.OVERSTAY,
            status=InvoiceStatus.AWAITING_APPROVAL,
            amount=Decimal("7500.00"),
        )
        StayRepository(db).save_overstay(
            stay, Overstay(detected=True, days_overstayed=1, invoice_id=invoice.id)
        )
        db.commit()
        return invoice

    def test_paid_opens_gate_without_touching_booking(self, db, service, booking, overstay_invoice):
        service.apply_status(overstay_invoice.id, InvoiceStatus.PAID, now=DAY_D)

        stay = db.get(Stay, overstay_invoice.stay_id)
        overstay = StayRepository.load_overstay(stay)
        assert overstay.can_checkout is True
        assert overstay.payment_status == "approved"
        db.refresh(booking)
        assert booking.status == BookingStatus.CONFIRMED

    def test_failed_closes_gate(self, db, service, overstay_invoice):
        service.apply_status(overstay_invoice.id, InvoiceStatus.FAILED, now=DAY_D)

        overstay = StayRepository.load_overstay(db.get(Stay, overstay_invoice.stay_id))
        assert overstay.can_checkout is False
        assert overstay.payment_status == "rejected"

    def test_other_status_leaves_gate(self, db, service, overstay_invoice):
        service.apply_status(overstay_invoice.id, InvoiceStatus.OVERDUE, now=DAY_D)

        overstay = StayRepository.load_overstay(db.get(Stay, overstay_invoice.stay_id))
        assert overstay.payment_status == "pending_payment"


def test_record_stay_event_notes_primary_invoice(db, service, booking):
    invoice = create_invoice(db, booking=booking)

    service.record_stay_event(booking.id, "Guest checked in to room 101", now=DAY_D)

    db.refresh(invoice)
    assert invoice.status_notes[-1]["text"] == "Guest checked in to room 101"


def test_record_stay_event_without_invoice_is_a_no_op(service, booking):
    assert service.record_stay_event(booking.id, "nothing to annotate", now=DAY_D) is None

"""Overstay billing: detection, invoice growth, payment and staff review."""

from datetime import timedelta
from decimal import Decimal
import logging
from unittest.mock import MagicMock

import pytest
from tests.factories.hotel import DAY_D, create_booking, create_invoice, create_room, create_stay

from innkeeper.core.exceptions import (
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    ValidationException,
)
from innkeeper.integrations.payment_gateway import PaymentGatewayError
from innkeeper.models import InvoiceKind, InvoiceStatus, StayStatus
from innkeeper.repositories.stay_repository import StayRepository
from innkeeper.services.overstay_service import OverstayService

CARD = {"number": "4111111111111111", "expiry": "12/29", "cvv": "123", "holder_name": "Ada Guest"}


@pytest.fixture
def stay(db, booking):
    return create_stay(db, booking=booking, status=StayStatus.CHECKED_IN)


@pytest.fixture
def service(db):
    return OverstayService(db)


class TestCalculateOverstay:
    def test_no_overstay_through_end_of_checkout_day(self, service, booking, room):
        assert service.calculate_overstay(booking, room, DAY_D + timedelta(hours=11)) is None

    def test_started_day_is_charged_in_full(self, service, booking, room):
        result = service.calculate_overstay(booking, room, DAY_D + timedelta(hours=13))

        assert result.days_overstayed == 1
        assert result.daily_rate == Decimal("7500.00")
        assert result.amount == Decimal("7500.00")

    def test_amount_scales_with_days(self, service, booking, room):
        result = service.calculate_overstay(booking, room, DAY_D + timedelta(days=2))

        assert result.days_overstayed == 2
        assert result.amount == Decimal("15000.00")

    def test_missing_room_price_uses_default_rate(self, db, service, guest):
        room = create_room(db, base_price=None)
        booking = create_booking(db, guest=guest, room=room)

        result = service.calculate_overstay(booking, room, DAY_D + timedelta(days=1))

        assert result.base_rate == Decimal("5000.00")
        assert result.amount == Decimal("7500.00")


class TestOverstayInvoice:
    def test_create_sets_gate_and_tracking(self, db, service, stay):
        at = DAY_D + timedelta(days=1)

        invoice = service.create_overstay_invoice(stay.id, 1, Decimal("7500"), now=at)

        assert invoice.kind == InvoiceKind.OVERSTAY
        assert invoice.currency == "LKR"
        assert invoice.status == InvoiceStatus.AWAITING_APPROVAL
        assert invoice.overstay_tracking["days_overstayed"] == 1
        assert invoice.overstay_tracking["admin_adjusted"] is False
        assert invoice.items[0]["type"] == "overstay_charge"
        db.refresh(stay)
        overstay = StayRepository.load_overstay(stay)
        assert overstay.detected is True
        assert overstay.can_checkout is False
        assert overstay.invoice_id == invoice.id

    def test_create_is_idempotent_per_stay(self, db, service, stay):
        first = service.create_overstay_invoice(stay.id, 1, Decimal("7500"), now=DAY_D)
        second = service.create_overstay_invoice(stay.id, 2, Decimal("15000"), now=DAY_D)

        assert first.id == second.id
        assert second.amount == Decimal("7500.00")

    def test_invoice_numbers_are_sequential(self, db, service, stay, guest):
        other = create_stay(
            db,
            booking=create_booking(db, guest=guest, room=create_room(db)),
            status=StayStatus.CHECKED_IN,
        )

        first = service.create_overstay_invoice(stay.id, 1, Decimal("7500"), now=DAY_D)
        second = service.create_overstay_invoice(other.id, 1, Decimal("7500"), now=DAY_D)

        assert first.invoice_number == "OVERSTAY-000001"
        assert second.invoice_number == "OVERSTAY-000002"

    def test_update_only_grows(self, service, stay):
        service.create_overstay_invoice(stay.id, 2, Decimal("15000"), now=DAY_D)

        invoice, changed = service.update_overstay_invoice(stay.id, 1, Decimal("7500"), now=DAY_D)
        assert changed is False
        assert invoice.amount == Decimal("15000.00")

        invoice, changed = service.update_overstay_invoice(
            stay.id, 3, Decimal("22500"), now=DAY_D
        )
        assert changed is True
        assert invoice.amount == Decimal("22500.00")
        assert invoice.overstay_tracking["days_overstayed"] == 3

    def test_growth_keeps_staff_surcharge(self, service, stay, staff):
        invoice = service.create_overstay_invoice(stay.id, 1, Decimal("7500"), now=DAY_D)
        service.adjust_overstay_charges(invoice.id, staff.id, Decimal("20000"), "damages")

        invoice, changed = service.update_overstay_invoice(
            stay.id, 2, Decimal("15000"), now=DAY_D + timedelta(days=1)
        )

        assert changed is True
        assert invoice.amount == Decimal("27500.00")
        assert invoice.overstay_tracking["calculated_charges"] == "15000.00"
        assert invoice.overstay_tracking["admin_adjusted"] is True

    def test_growth_keeps_goodwill_discount(self, service, stay, staff):
        invoice = service.create_overstay_invoice(stay.id, 1, Decimal("7500"), now=DAY_D)
        service.adjust_overstay_charges(invoice.id, staff.id, Decimal("5000"), "loyal guest")

        invoice, _ = service.update_overstay_invoice(
            stay.id, 2, Decimal("15000"), now=DAY_D + timedelta(days=1)
        )

        assert invoice.amount == Decimal("12500.00")

    def test_growth_never_lowers_amount(self, service, stay, staff):
        invoice = service.create_overstay_invoice(stay.id, 1, Decimal("7500"), now=DAY_D)
        service.adjust_overstay_charges(invoice.id, staff.id, Decimal("20000"))

        invoice, _ = service.update_overstay_invoice(
            stay.id, 2, Decimal("1000"), now=DAY_D + timedelta(days=1)
        )

        assert invoice.amount >= Decimal("20000.00")


class TestOverstayPayment:
    def test_card_payment_settles_and_opens_gate(self, service, stay, booking):
        result = service.process_overstay_payment(
            stay.id, booking.user_id, "card", Decimal("15000"), CARD, now=DAY_D + timedelta(days=2)
        )

        assert result.can_checkout is True
        assert result.transaction_id.startswith("mock_txn_")
        assert result.invoice.status == InvoiceStatus.PAID
        assert result.overstay.payment_status == "completed"

    def test_bank_transfer_awaits_verification(self, service, stay, booking):
        result = service.process_overstay_payment(
            stay.id, booking.user_id, "bank", Decimal("7500"), now=DAY_D + timedelta(days=1)
        )

        assert result.can_checkout is False
        assert result.overstay.payment_status == "pending_verification"
        assert result.invoice.status == InvoiceStatus.AWAITING_APPROVAL

    def test_cash_awaits_approval(self, service, stay, booking):
        result = service.process_overstay_payment(
            stay.id, booking.user_id, "cash", Decimal("7500"), now=DAY_D + timedelta(days=1)
        )

        assert result.can_checkout is False
        assert result.overstay.payment_status == "pending_approval"

    def test_card_without_details_is_rejected_first(self, service, booking):
        with pytest.raises(ValidationException) as exc:
            service.process_overstay_payment(
                "missing-stay", booking.user_id, "card", Decimal("1"), {"number": "4111"}
            )
        assert exc.value.code == "CARD_DETAILS_REQUIRED"
        assert set(exc.value.details["missing"]) == {"expiry", "cvv", "holder_name"}

    def test_gateway_refusal_is_a_decline(self, db, stay, booking):
        gateway = MagicMock()
        gateway.authorize_payment.side_effect = PaymentGatewayError("card expired")
        service = OverstayService(db, payment_gateway=gateway)

        with pytest.raises(ValidationException) as exc:
            service.process_overstay_payment(
                stay.id, booking.user_id, "card", Decimal("7500"), CARD,
                now=DAY_D + timedelta(days=1),
            )
        assert exc.value.code == "PAYMENT_DECLINED"

    def test_nothing_owed_is_rejected(self, service, stay, booking):
        with pytest.raises(ValidationException) as exc:
            service.process_overstay_payment(
                stay.id, booking.user_id, "cash", Decimal("1"), now=DAY_D
            )
        assert exc.value.code == "NO_OVERSTAY"

    def test_other_guest_cannot_pay(self, service, stay, other_guest):
        with pytest.raises(ForbiddenException):
            service.process_overstay_payment(
                stay.id, other_guest.id, "cash", Decimal("7500"), now=DAY_D + timedelta(days=1)
            )

    def test_amount_variance_is_logged_and_accepted(self, service, stay, booking, caplog):
        with caplog.at_level(logging.WARNING, logger="OverstayService"):
            result = service.process_overstay_payment(
                stay.id, booking.user_id, "cash", Decimal("100"), now=DAY_D + timedelta(days=1)
            )

        assert result.invoice.amount == Decimal("7500.00")
        assert "differs from invoice" in caplog.text

    def test_payment_grows_invoice_to_current_days(self, service, stay, booking):
        service.create_overstay_invoice(stay.id, 1, Decimal("7500"), now=DAY_D)

        result = service.process_overstay_payment(
            stay.id, booking.user_id, "cash", Decimal("15000"), now=DAY_D + timedelta(days=2)
        )

        assert result.invoice.amount == Decimal("15000.00")
        assert result.overstay.days_overstayed == 2


class TestStaffReview:
    def _pending(self, service, stay, booking):
        return service.process_overstay_payment(
            stay.id, booking.user_id, "cash", Decimal("7500"), now=DAY_D + timedelta(days=1)
        ).invoice

    def test_approve_marks_paid_and_opens_gate(self, db, service, stay, booking, staff):
        invoice = self._pending(service, stay, booking)

        approved = service.approve_overstay_payment(invoice.id, staff.id, "cash counted")

        assert approved.status == InvoiceStatus.PAID
        assert approved.payment_approval["approved_by"] == staff.id
        db.refresh(stay)
        overstay = StayRepository.load_overstay(stay)
        assert overstay.can_checkout is True
        assert overstay.payment_status == "approved"

    def test_reject_marks_failed_and_keeps_gate_closed(self, db, service, stay, booking, staff):
        invoice = self._pending(service, stay, booking)

        rejected = service.reject_overstay_payment(invoice.id, staff.id, "counterfeit")

        assert rejected.status == InvoiceStatus.FAILED
        assert rejected.payment_approval["rejection_reason"] == "counterfeit"
        db.refresh(stay)
        overstay = StayRepository.load_overstay(stay)
        assert overstay.can_checkout is False
        assert overstay.payment_status == "rejected"

    def test_paid_invoice_cannot_be_reviewed_again(self, service, stay, booking, staff):
        invoice = self._pending(service, stay, booking)
        service.approve_overstay_payment(invoice.id, staff.id)

        with pytest.raises(ConflictException) as exc:
            service.approve_overstay_payment(invoice.id, staff.id)
        assert exc.value.code == "INVOICE_ALREADY_PAID"
        with pytest.raises(ConflictException):
            service.reject_overstay_payment(invoice.id, staff.id)

    def test_rejected_invoice_is_not_reviewable(self, service, stay, booking, staff):
        invoice = self._pending(service, stay, booking)
        service.reject_overstay_payment(invoice.id, staff.id)

        with pytest.raises(BusinessRuleException) as exc:
            service.approve_overstay_payment(invoice.id, staff.id)
        assert exc.value.code == "INVOICE_NOT_REVIEWABLE"

    def test_adjust_overrides_charge(self, db, service, stay, booking, staff):
        invoice = self._pending(service, stay, booking)

        adjusted = service.adjust_overstay_charges(
            invoice.id, staff.id, Decimal("5000"), "loyal guest"
        )

        assert adjusted.amount == Decimal("5000.00")
        assert adjusted.overstay_tracking["admin_adjusted"] is True
        assert adjusted.overstay_tracking["adjusted_by"] == staff.id
        db.refresh(stay)
        assert StayRepository.load_overstay(stay).charge_amount == Decimal("5000.00")

    def test_adjust_rejects_negative_amount(self, service, stay, booking, staff):
        invoice = self._pending(service, stay, booking)

        with pytest.raises(ValidationException) as exc:
            service.adjust_overstay_charges(invoice.id, staff.id, Decimal("-1"))
        assert exc.value.code == "INVALID_AMOUNT"

    def test_booking_invoice_is_not_an_overstay_invoice(self, db, service, booking, staff):
        invoice = create_invoice(db, booking=booking)

        with pytest.raises(ValidationException) as exc:
            service.approve_overstay_payment(invoice.id, staff.id)
        assert exc.value.code == "NOT_OVERSTAY_INVOICE"

    def test_queries(self, service, stay, booking, staff):
        invoice = self._pending(service, stay, booking)

        assert [i.id for i in service.get_pending_overstay_invoices()] == [invoice.id]
        assert [i.id for i in service.get_guest_overstay_invoices(booking.user_id)] == [invoice.id]

        service.approve_overstay_payment(invoice.id, staff.id)
        assert service.get_pending_overstay_invoices() == []

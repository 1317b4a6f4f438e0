from datetime import timedelta
from decimal import Decimal

import pytest
from tests.factories.hotel import create_booking, create_invoice, create_stay, headers_for

from innkeeper.core.timezone_utils import utcnow
from innkeeper.models import BookingStatus, InvoiceStatus, Stay, StayStatus
from innkeeper.services.overstay_service import OverstayService


@pytest.fixture
def overdue_stay(db, guest, room):
    now = utcnow()
    booking = create_booking(
        db,
        guest=guest,
        room=room,
        check_in=now - timedelta(days=3),
        check_out=now - timedelta(days=1),
        status=BookingStatus.CHECKED_IN,
    )
    return create_stay(db, booking=booking, status=StayStatus.CHECKED_IN)


@pytest.fixture
def pending_invoice(db, guest, overdue_stay):
    return (
        OverstayService(db)
        .process_overstay_payment(overdue_stay.id, guest.id, "cash", Decimal("7500"))
        .invoice
    )


class TestOverstayPaymentRoute:
    def test_bank_transfer_waits_for_staff(self, client, guest, overdue_stay):
        response = client.post(
            f"/api/v1/overstay/{overdue_stay.id}/payment",
            json={"payment_method": "bank", "amount": 7500},
            headers=headers_for(guest),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["can_checkout"] is False
        assert body["overstay"]["payment_status"] == "pending_verification"
        assert body["invoice"]["status"] == "AWAITING_APPROVAL"
        assert body["invoice"]["amount"] == 7500.0

    def test_card_without_details_is_bad_request(self, client, guest, overdue_stay):
        response = client.post(
            f"/api/v1/overstay/{overdue_stay.id}/payment",
            json={"payment_method": "card", "amount": 7500},
            headers=headers_for(guest),
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "CARD_DETAILS_REQUIRED"

    def test_other_guest_cannot_pay(self, client, other_guest, overdue_stay):
        response = client.post(
            f"/api/v1/overstay/{overdue_stay.id}/payment",
            json={"payment_method": "cash", "amount": 7500},
            headers=headers_for(other_guest),
        )

        assert response.status_code == 403


class TestStaffReviewRoutes:
    def test_pending_list_is_staff_only(self, client, guest, staff, pending_invoice):
        denied = client.get("/api/v1/overstay/invoices/pending", headers=headers_for(guest))
        assert denied.status_code == 403

        response = client.get("/api/v1/overstay/invoices/pending", headers=headers_for(staff))
        assert [i["id"] for i in response.json()] == [pending_invoice.id]

    def test_guest_sees_own_invoices(self, client, guest, other_guest, pending_invoice):
        mine = client.get("/api/v1/overstay/invoices/mine", headers=headers_for(guest)).json()
        theirs = client.get(
            "/api/v1/overstay/invoices/mine", headers=headers_for(other_guest)
        ).json()

        assert [i["id"] for i in mine] == [pending_invoice.id]
        assert theirs == []

    def test_approve_then_approve_again(self, client, db, staff, overdue_stay, pending_invoice):
        url = f"/api/v1/overstay/invoices/{pending_invoice.id}/approve"

        first = client.post(url, json={"notes": "cash counted"}, headers=headers_for(staff))
        second = client.post(url, json={}, headers=headers_for(staff))

        assert first.status_code == 200
        assert first.json()["status"] == "PAID"
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "INVOICE_ALREADY_PAID"

    def test_reject(self, client, staff, pending_invoice):
        response = client.post(
            f"/api/v1/overstay/invoices/{pending_invoice.id}/reject",
            json={"reason": "no cash received"},
            headers=headers_for(staff),
        )

        assert response.status_code == 200
        assert response.json()["payment_approval"]["approval_status"] == "rejected"

    def test_adjust(self, client, staff, pending_invoice):
        response = client.post(
            f"/api/v1/overstay/invoices/{pending_invoice.id}/adjust",
            json={"amount": "5000.00", "notes": "goodwill"},
            headers=headers_for(staff),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["amount"] == 5000.0
        assert body["overstay_tracking"]["admin_adjusted"] is True


class TestInvoiceStatusRoute:
    def test_paid_primary_invoice_confirms_booking(self, client, db, staff, guest, room):
        booking = create_booking(
            db, guest=guest, room=room, status=BookingStatus.APPROVED_PAYMENT_PENDING
        )
        invoice = create_invoice(db, booking=booking)

        response = client.post(
            f"/api/v1/invoices/{invoice.id}/status",
            json={"status": "PAID", "reason": "cash at desk"},
            headers=headers_for(staff),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "PAID"
        db.refresh(booking)
        assert booking.status == BookingStatus.CONFIRMED
        assert db.query(Stay).filter_by(booking_id=booking.id).count() == 1

    def test_overstay_invoice_paid_opens_gate(
        self, client, guest, staff, overdue_stay, pending_invoice
    ):
        client.post(
            f"/api/v1/invoices/{pending_invoice.id}/status",
            json={"status": InvoiceStatus.PAID.value},
            headers=headers_for(staff),
        )

        response = client.get("/api/v1/stays/me", headers=headers_for(guest))
        assert response.json()["can_checkout"] is True

    def test_invalid_status_is_rejected(self, client, db, staff, booking):
        invoice = create_invoice(db, booking=booking)

        response = client.post(
            f"/api/v1/invoices/{invoice.id}/status",
            json={"status": "REFUNDED"},
            headers=headers_for(staff),
        )

        assert response.status_code == 422

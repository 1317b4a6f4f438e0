# backend/innkeeper/services/invoice_sync_service.py
"""
Invoice–Booking Synchronizer.

Applies an invoice status change and propagates it one way into the
booking (primary invoices) or the stay's checkout gate (overstay invoices).
"""

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException
from ..models.booking import Booking, BookingStatus, PaymentMethod
from ..models.invoice import Invoice, InvoiceStatus
from ..models.stay import OverstayPaymentStatus, Stay, StayStatus
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class InvoiceSyncService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.invoice_repository = RepositoryFactory.create_invoice_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.stay_repository = RepositoryFactory.create_stay_repository(db)

    @BaseService.measure_operation("apply_invoice_status")
    def apply_status(
        self,
        invoice_id: str,
        new_status: InvoiceStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """
        Set the invoice status and apply its consequences.

        Primary invoices drive the booking; overstay invoices drive the
        checkout gate of the stay they belong to.
        """
        try:
            new_status = InvoiceStatus(new_status)
        except ValueError:
            raise ValidationException(f"Unknown invoice status: {new_status}")

        invoice = self.invoice_repository.get_by_id(invoice_id, load_relationships=False)
        if invoice is None:
            raise NotFoundException(f"Invoice {invoice_id} not found")

        at = self.resolve_now(now)
        previous = getattr(invoice.status, "value", invoice.status)
        with self.transaction():
            invoice.status = new_status
            if new_status == InvoiceStatus.PAID:
                invoice.paid_at = at
            note = f"Status {previous} -> {new_status.value}"
            if reason:
                note = f"{note}: {reason}"
            invoice.add_status_note(note, at, actor_id)
            self.invoice_repository.flush()

            if invoice.is_overstay:
                self._sync_overstay_gate(invoice, new_status, at)
            else:
                self._sync_booking(invoice, new_status, at, actor_id, reason)

        self.log_operation(
            "invoice_status_applied",
            invoice_id=invoice.id,
            previous_status=previous,
            new_status=new_status.value,
            kind=invoice.kind,
            actor_id=actor_id,
        )
        return invoice

    def _sync_booking(
        self,
        invoice: Invoice,
        new_status: InvoiceStatus,
        at: datetime,
        actor_id: Optional[str],
        reason: Optional[str],
    ) -> None:
        booking: Optional[Booking] = self.booking_repository.get_by_id(
            invoice.booking_id, load_relationships=False
        )
        if booking is None:
            self.logger.warning(
                "Invoice references a missing booking",
                extra={"invoice_id": invoice.id, "booking_id": invoice.booking_id},
            )
            return

        if new_status == InvoiceStatus.PAID:
            if booking.status not in (BookingStatus.CHECKED_IN, BookingStatus.COMPLETED):
                booking.transition_to(BookingStatus.CONFIRMED, at=at)
            booking.paid_at = at
            booking.payment_status = "paid"
            self.booking_repository.flush()
            self._ensure_pre_checkin_stay(booking)
        elif new_status == InvoiceStatus.CANCELLED:
            if not booking.is_terminal:
                booking.cancel(
                    actor_id or "system",
                    reason or f"Invoice {invoice.invoice_number} cancelled",
                    at=at,
                )
                self.booking_repository.flush()
        elif new_status == InvoiceStatus.SENT:
            if booking.status == BookingStatus.CONFIRMED:
                demoted = (
                    BookingStatus.APPROVED_PAYMENT_PENDING
                    if booking.payment_method == PaymentMethod.CASH
                    else BookingStatus.APPROVED_PAYMENT_PROCESSING
                )
                booking.transition_to(demoted, at=at)
                self.booking_repository.flush()
        elif new_status == InvoiceStatus.FAILED:
            self.logger.warning(
                "Primary invoice payment failed; booking left unchanged",
                extra={"invoice_id": invoice.id, "booking_id": booking.id},
            )

    def _ensure_pre_checkin_stay(self, booking: Booking) -> Stay:
        stay = self.stay_repository.get_open_for_booking(booking.id)
        if stay is not None:
            return stay
        stay = self.stay_repository.create(
            booking_id=booking.id,
            guest_id=booking.user_id,
            room_id=booking.room_id,
            status=StayStatus.PRE_CHECKIN,
            special_requests=booking.special_requests,
            preferences={"special_requests": booking.special_requests}
            if booking.special_requests
            else {},
            document_scan={"verified": False},
        )
        self.logger.info(
            "Pre-checkin record created from paid invoice",
            extra={"booking_id": booking.id, "stay_id": stay.id},
        )
        return stay

    def _sync_overstay_gate(self, invoice: Invoice, new_status: InvoiceStatus, at: datetime) -> None:
        if not invoice.stay_id:
            self.logger.warning(
                "Overstay invoice is not linked to a stay", extra={"invoice_id": invoice.id}
            )
            return
        stay = self.stay_repository.get_by_id(invoice.stay_id, load_relationships=False)
        if stay is None:
            return
        overstay = self.stay_repository.load_overstay(stay)
        if overstay is None:
            self.logger.warning(
                "Stay has no overstay record for its overstay invoice",
                extra={"invoice_id": invoice.id, "stay_id": stay.id},
            )
            return

        if new_status == InvoiceStatus.PAID:
            overstay = overstay.evolve(
                payment_status=OverstayPaymentStatus.APPROVED.value, can_checkout=True
            )
        elif new_status == InvoiceStatus.FAILED:
            overstay = overstay.evolve(
                payment_status=OverstayPaymentStatus.REJECTED.value, can_checkout=False
            )
        else:
            self.logger.info(
                "Overstay invoice status change leaves checkout gate unchanged",
                extra={"invoice_id": invoice.id, "invoice_status": new_status.value},
            )
            return
        self.stay_repository.save_overstay(stay, overstay)
        self.stay_repository.stamp(
            stay, at, f"Overstay invoice {invoice.invoice_number} marked {new_status.value}"
        )

    def record_stay_event(
        self, booking_id: str, message: str, *, now: Optional[datetime] = None
    ) -> Optional[Invoice]:
        """Append a stay lifecycle note to the booking's primary invoice."""
        invoice = self.invoice_repository.get_primary_for_booking(booking_id)
        if invoice is None:
            self.logger.debug("No primary invoice to annotate", extra={"booking_id": booking_id})
            return None
        with self.transaction():
            invoice.add_status_note(message, self.resolve_now(now))
            self.invoice_repository.flush()
        return invoice

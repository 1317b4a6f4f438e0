# backend/innkeeper/services/refund_service.py
"""
Refund request creation for cancelled bookings.

A refund request is only raised when the booking's primary invoice was
paid, and at most one request exists per booking.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.booking import Booking
from ..models.refund import RefundRequest
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class RefundService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.refund_repository = RepositoryFactory.create_refund_repository(db)
        self.invoice_repository = RepositoryFactory.create_invoice_repository(db)

    @BaseService.measure_operation("create_refund_request")
    def create_refund_request(
        self, booking: Booking, reason: str, actor: str
    ) -> Optional[RefundRequest]:
        """
        Raise a pending refund for ``booking``.

        Returns the existing request when one was already raised, and None
        when there is nothing to refund (no invoice or invoice not paid).
        """
        existing = self.refund_repository.get_by_booking(booking.id)
        if existing is not None:
            self.logger.info(
                "Refund already requested for booking",
                extra={"booking_id": booking.id, "refund_id": existing.id},
            )
            return existing

        invoice = self.invoice_repository.get_paid_primary_for_booking(booking.id)
        if invoice is None:
            self.logger.info(
                "No paid invoice for booking; no refund required",
                extra={"booking_id": booking.id},
            )
            return None

        with self.transaction():
            refund = self.refund_repository.create(
                booking_id=booking.id,
                invoice_id=invoice.id,
                user_id=booking.user_id,
                amount=invoice.amount,
                currency=invoice.currency or settings.currency,
                reason=reason,
                status="pending",
                requested_by=actor,
            )

        self.log_operation(
            "refund_requested",
            booking_id=booking.id,
            refund_id=refund.id,
            amount=str(refund.amount),
        )
        return refund

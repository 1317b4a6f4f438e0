# backend/innkeeper/repositories/invoice_repository.py
"""Repository for primary and overstay invoices."""

import logging
import re
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.constants import OVERSTAY_INVOICE_PREFIX
from ..core.exceptions import RepositoryException
from ..models.invoice import APPROVABLE_INVOICE_STATUSES, Invoice, InvoiceKind, InvoiceStatus
from .base_repository import BaseRepository

_OVERSTAY_NUMBER = re.compile(rf"^{re.escape(OVERSTAY_INVOICE_PREFIX)}(\d+)$")


class InvoiceRepository(BaseRepository[Invoice]):
    def __init__(self, db: Session):
        super().__init__(db, Invoice)
        self.logger = logging.getLogger(__name__)

    def get_overstay_for_stay(self, stay_id: str) -> Optional[Invoice]:
        try:
            return (
                self.db.query(Invoice)
                .filter(Invoice.stay_id == stay_id, Invoice.kind == InvoiceKind.OVERSTAY)
                .order_by(Invoice.created_at.asc())
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading overstay invoice for stay {stay_id}: {str(e)}")
            raise RepositoryException(f"Failed to load overstay invoice: {str(e)}")

    def get_primary_for_booking(self, booking_id: str) -> Optional[Invoice]:
        try:
            return (
                self.db.query(Invoice)
                .filter(Invoice.booking_id == booking_id, Invoice.kind == InvoiceKind.BOOKING)
                .order_by(Invoice.created_at.asc())
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading invoice for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking invoice: {str(e)}")

    def next_overstay_invoice_number(self) -> str:
        """Next sequential OVERSTAY-NNNNNN number."""
        try:
            numbers = (
                self.db.query(Invoice.invoice_number)
                .filter(Invoice.invoice_number.like(f"{OVERSTAY_INVOICE_PREFIX}%"))
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error generating overstay invoice number: {str(e)}")
            raise RepositoryException(f"Failed to generate invoice number: {str(e)}")

        highest = 0
        for (number,) in numbers:
            match = _OVERSTAY_NUMBER.match(number or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return f"{OVERSTAY_INVOICE_PREFIX}{highest + 1:06d}"

    def list_pending_overstay(self) -> List[Invoice]:
        try:
            return (
                self.db.query(Invoice)
                .filter(
                    Invoice.kind == InvoiceKind.OVERSTAY,
                    Invoice.status.in_(list(APPROVABLE_INVOICE_STATUSES)),
                )
                .order_by(Invoice.created_at.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing pending overstay invoices: {str(e)}")
            raise RepositoryException(f"Failed to list pending overstay invoices: {str(e)}")

    def list_overstay_for_user(self, user_id: str) -> List[Invoice]:
        try:
            return (
                self.db.query(Invoice)
                .filter(Invoice.kind == InvoiceKind.OVERSTAY, Invoice.user_id == user_id)
                .order_by(Invoice.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing overstay invoices for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to list overstay invoices: {str(e)}")

    def get_paid_primary_for_booking(self, booking_id: str) -> Optional[Invoice]:
        invoice = self.get_primary_for_booking(booking_id)
        if invoice is not None and invoice.status == InvoiceStatus.PAID:
            return invoice
        return None

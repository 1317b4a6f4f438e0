"""Invoice model covering primary booking invoices and overstay invoices."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    OVERDUE = "OVERDUE"


class InvoiceKind(str, Enum):
    BOOKING = "booking"
    OVERSTAY = "overstay"


# Statuses from which staff may approve or reject a submitted payment
APPROVABLE_INVOICE_STATUSES = frozenset(
    {
        InvoiceStatus.DRAFT,
        InvoiceStatus.SENT,
        InvoiceStatus.AWAITING_APPROVAL,
        InvoiceStatus.OVERDUE,
    }
)

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in InvoiceStatus)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    invoice_number = Column(String(40), nullable=False, unique=True)
    kind = Column(String(20), nullable=False, default=InvoiceKind.BOOKING)

    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)
    stay_id = Column(String(26), ForeignKey("stays.id"), nullable=True, index=True)
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="LKR")
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    payment_method = Column(String(10), nullable=True)

    items = Column(JSON, nullable=False, default=list)
    overstay_tracking = Column(JSON, nullable=True)
    payment_approval = Column(JSON, nullable=True)
    status_notes = Column(JSON, nullable=False, default=list)

    issued_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    booking = relationship("Booking", foreign_keys=[booking_id])
    stay = relationship("Stay", foreign_keys=[stay_id])

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_invoices_status"),
        CheckConstraint("kind IN ('booking', 'overstay')", name="ck_invoices_kind"),
        CheckConstraint("amount >= 0", name="ck_invoices_amount_non_negative"),
        Index("ix_invoices_stay_kind", "stay_id", "kind"),
    )

    @property
    def is_overstay(self) -> bool:
        return self.kind == InvoiceKind.OVERSTAY

    def add_status_note(self, text: str, at: datetime, author: Optional[str] = None) -> None:
        # JSON columns are not mutation-tracked; reassign
        entry = {"at": at.isoformat(), "by": author, "text": text}
        self.status_notes = [*(self.status_notes or []), entry]

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} kind={self.kind} status={self.status} amount={self.amount}>"

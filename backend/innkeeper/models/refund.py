"""Refund requests raised for cancelled bookings with a paid invoice."""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.sql import func
import ulid

from ..database import Base


class RefundRequest(Base):
    __tablename__ = "refund_requests"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    # One refund per booking
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, unique=True)
    invoice_id = Column(String(26), ForeignKey("invoices.id"), nullable=True)
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="LKR")
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    requested_by = Column(String(26), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<RefundRequest {self.id} booking={self.booking_id} status={self.status}>"

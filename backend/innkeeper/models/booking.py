# backend/innkeeper/models/booking.py
"""
Booking model for the Innkeeper backend.

A booking is a reservation of one room for one date range by one user.
Status changes go through ``transition_to`` so that the hold deadline is
only ever present while the booking is on hold.
"""

from datetime import datetime, timezone
from enum import Enum
import logging
import random
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "PENDING"  # Awaiting payment (cash settled at the desk)
    ON_HOLD = "ON_HOLD"  # Provisional; expires at hold_until
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED_PAYMENT_PENDING = "APPROVED_PAYMENT_PENDING"
    APPROVED_PAYMENT_PROCESSING = "APPROVED_PAYMENT_PROCESSING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    CARD = "card"
    BANK = "bank"
    CASH = "cash"


TERMINAL_BOOKING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.REJECTED})

STAFF_CHECKIN_STATUSES = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.APPROVED_PAYMENT_PENDING,
        BookingStatus.APPROVED_PAYMENT_PROCESSING,
    }
)
# Cash bookings may still be settled at the desk during self check-in
SELF_SERVICE_CHECKIN_STATUSES = STAFF_CHECKIN_STATUSES | {BookingStatus.PENDING}

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in BookingStatus)


def generate_booking_number() -> str:
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"BK{stamp}{random.randint(100, 999)}"


class Booking(Base):
    """Reservation of a room for a date range."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    booking_number = Column(String(32), nullable=False, unique=True, default=generate_booking_number)

    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(String(26), ForeignKey("rooms.id"), nullable=False, index=True)

    check_in = Column(DateTime(timezone=True), nullable=False)
    check_out = Column(DateTime(timezone=True), nullable=False)
    nights = Column(Integer, nullable=True)
    guests = Column(Integer, nullable=False, default=1)
    special_requests = Column(Text, nullable=True)

    # Cost breakdown
    subtotal = Column(Numeric(12, 2), nullable=True)
    tax_amount = Column(Numeric(12, 2), nullable=True)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="LKR")

    payment_method = Column(String(10), nullable=False, default=PaymentMethod.CASH)
    payment_status = Column(String(20), nullable=True)

    status = Column(String(40), nullable=False, default=BookingStatus.PENDING, index=True)
    hold_until = Column(DateTime(timezone=True), nullable=True, index=True)
    last_status_change = Column(DateTime(timezone=True), nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(26), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    auto_cancelled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])
    room = relationship("Room", foreign_keys=[room_id])

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_bookings_status"),
        CheckConstraint("check_out > check_in", name="ck_bookings_dates"),
        CheckConstraint(
            "hold_until IS NULL OR status = 'ON_HOLD'",
            name="ck_bookings_hold_only_on_hold",
        ),
        CheckConstraint(
            "payment_method IN ('card', 'bank', 'cash')", name="ck_bookings_payment_method"
        ),
        CheckConstraint("total_price >= 0", name="ck_bookings_price_non_negative"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.PENDING
        if self.status != BookingStatus.ON_HOLD:
            self.hold_until = None

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: room={self.room_id}, user={self.user_id}, "
            f"{self.check_in}..{self.check_out}, status={self.status}>"
        )

    def transition_to(self, new_status: BookingStatus, *, at: Optional[datetime] = None) -> None:
        """Move to ``new_status``, clearing the hold deadline when leaving ON_HOLD."""
        previous = self.status
        self.status = new_status
        if new_status != BookingStatus.ON_HOLD:
            self.hold_until = None
        self.last_status_change = at or datetime.now(timezone.utc)
        logger.info(
            f"Booking {self.id} status {getattr(previous, 'value', previous)} -> "
            f"{getattr(new_status, 'value', new_status)}"
        )

    def cancel(
        self,
        cancelled_by: str,
        reason: Optional[str] = None,
        *,
        automatic: bool = False,
        at: Optional[datetime] = None,
    ) -> None:
        """Cancel this booking."""
        when = at or datetime.now(timezone.utc)
        self.transition_to(BookingStatus.CANCELLED, at=when)
        self.cancelled_at = when
        self.cancelled_by = cancelled_by
        self.cancellation_reason = reason
        self.auto_cancelled = automatic

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BOOKING_STATUSES

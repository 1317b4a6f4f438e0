# backend/innkeeper/models/stay.py
"""
Stay (check-in/check-out) record and its embedded overstay value type.

The overstay block is persisted as JSON. ``Overstay.to_dict`` and
``Overstay.from_dict`` are the only encode/decode points; repositories call
them when reading or writing ``Stay.overstay``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base


class StayStatus(str, Enum):
    PRE_CHECKIN = "pre_checkin"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    NO_SHOW = "no_show"


OPEN_STAY_STATUSES = frozenset({StayStatus.PRE_CHECKIN, StayStatus.CHECKED_IN})


class OverstayPaymentStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PENDING_APPROVAL = "pending_approval"
    PENDING_VERIFICATION = "pending_verification"
    COMPLETED = "completed"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_in(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _dec_in(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    return Decimal(str(value))


@dataclass(frozen=True)
class Overstay:
    """Overstay state for one stay. ``can_checkout`` is the checkout gate."""

    detected: bool = False
    days_overstayed: int = 0
    scheduled_checkout: Optional[datetime] = None
    actual_checkout: Optional[datetime] = None
    charge_amount: Decimal = Decimal("0")
    payment_method: Optional[str] = None
    payment_status: str = OverstayPaymentStatus.PENDING_PAYMENT.value
    invoice_id: Optional[str] = None
    can_checkout: bool = False
    detected_at: Optional[datetime] = None
    payment_submitted_at: Optional[datetime] = None

    def evolve(self, **changes: Any) -> "Overstay":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["charge_amount"] = str(self.charge_amount)
        for key in ("scheduled_checkout", "actual_checkout", "detected_at", "payment_submitted_at"):
            data[key] = _dt_out(data[key])
        if isinstance(self.payment_status, Enum):
            data["payment_status"] = self.payment_status.value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Overstay"]:
        if not data:
            return None
        return cls(
            detected=bool(data.get("detected", False)),
            days_overstayed=int(data.get("days_overstayed") or 0),
            scheduled_checkout=_dt_in(data.get("scheduled_checkout")),
            actual_checkout=_dt_in(data.get("actual_checkout")),
            charge_amount=_dec_in(data.get("charge_amount")),
            payment_method=data.get("payment_method"),
            payment_status=str(
                data.get("payment_status") or OverstayPaymentStatus.PENDING_PAYMENT.value
            ),
            invoice_id=data.get("invoice_id"),
            can_checkout=bool(data.get("can_checkout", False)),
            detected_at=_dt_in(data.get("detected_at")),
            payment_submitted_at=_dt_in(data.get("payment_submitted_at")),
        )


class Stay(Base):
    """
    Occupancy record linking one booking, one guest, one room and at most one key card.

    Lifecycle: pre_checkin -> checked_in -> checked_out, or pre_checkin -> no_show.
    """

    __tablename__ = "stays"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)
    guest_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(String(26), ForeignKey("rooms.id"), nullable=False, index=True)
    key_card_id = Column(String(26), ForeignKey("key_cards.id"), nullable=True)
    key_card_number = Column(String(32), nullable=True)

    status = Column(String(20), nullable=False, default=StayStatus.PRE_CHECKIN, index=True)
    check_in_time = Column(DateTime(timezone=True), nullable=True)
    check_out_time = Column(DateTime(timezone=True), nullable=True)
    checked_in_by = Column(String(26), nullable=True)
    checked_out_by = Column(String(26), nullable=True)

    document_scan = Column(JSON, nullable=True)
    preferences = Column(JSON, nullable=True)
    emergency_contact = Column(JSON, nullable=True)
    special_requests = Column(Text, nullable=True)
    damage_report = Column(Text, nullable=True)
    key_card_returned = Column(Boolean, nullable=False, default=False)

    overstay = Column(JSON, nullable=True)
    notes = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    booking = relationship("Booking", foreign_keys=[booking_id])
    guest = relationship("User", foreign_keys=[guest_id])
    room = relationship("Room", foreign_keys=[room_id])
    key_card = relationship("KeyCard", foreign_keys=[key_card_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('pre_checkin', 'checked_in', 'checked_out', 'no_show')",
            name="ck_stays_status",
        ),
        CheckConstraint(
            "check_out_time IS NULL OR status = 'checked_out'",
            name="ck_stays_checkout_time_only_when_checked_out",
        ),
    )

    def __repr__(self) -> str:
        return f"<Stay {self.id}: booking={self.booking_id} room={self.room_id} status={self.status}>"

    def get_overstay(self) -> Optional[Overstay]:
        return Overstay.from_dict(self.overstay)

    def add_note(self, text: str, at: datetime, author: Optional[str] = None) -> None:
        # JSON columns are not mutation-tracked; reassign
        self.notes = [*(self.notes or []), {"at": at.isoformat(), "by": author, "text": text}]

"""Key-card pool models: the physical cards and their status audit trail."""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class KeyCardStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    LOST = "lost"
    DAMAGED = "damaged"
    EXPIRED = "expired"


# Statuses that detach a card from whoever held it
ASSIGNMENT_CLEARING_STATUSES = frozenset(
    {KeyCardStatus.INACTIVE, KeyCardStatus.LOST, KeyCardStatus.DAMAGED}
)


class KeyCard(Base):
    """A physical access credential drawn from the hotel's finite pool."""

    __tablename__ = "key_cards"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    card_number = Column(String(32), nullable=False, unique=True)
    card_type = Column(String(20), nullable=False, default="standard")
    status = Column(String(20), nullable=False, default=KeyCardStatus.INACTIVE, index=True)

    assigned_to = Column(String(26), ForeignKey("users.id"), nullable=True, index=True)
    assigned_room = Column(String(26), ForeignKey("rooms.id"), nullable=True, index=True)
    activation_date = Column(DateTime(timezone=True), nullable=True)
    expiration_date = Column(DateTime(timezone=True), nullable=True)

    previous_status = Column(String(20), nullable=True)
    status_changed_by = Column(String(26), nullable=True)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    status_change_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    status_changes = relationship(
        "KeyCardStatusChange",
        back_populates="card",
        cascade="all, delete-orphan",
        order_by="KeyCardStatusChange.changed_at",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'lost', 'damaged', 'expired')",
            name="ck_key_cards_status",
        ),
        CheckConstraint(
            "status <> 'active' OR (assigned_to IS NOT NULL AND assigned_room IS NOT NULL)",
            name="ck_key_cards_active_assigned",
        ),
        CheckConstraint(
            "status <> 'inactive' OR (assigned_to IS NULL AND assigned_room IS NULL)",
            name="ck_key_cards_inactive_unassigned",
        ),
    )

    def __repr__(self) -> str:
        return f"<KeyCard {self.card_number} status={self.status} room={self.assigned_room}>"


class KeyCardStatusChange(Base):
    """Append-only audit row for every key-card status change."""

    __tablename__ = "key_card_status_changes"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    card_id = Column(
        String(26), ForeignKey("key_cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    changed_by = Column(String(26), nullable=True)
    reason = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    card = relationship("KeyCard", back_populates="status_changes")

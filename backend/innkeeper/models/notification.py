"""In-app notifications written by the notification collaborator."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base

NOTIFICATION_CHANNELS = ("in_app", "email", "sms")


class Notification(Base):
    """Delivered (or attempted) notification for a user."""

    __tablename__ = "notifications"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(String(60), nullable=False, index=True)
    channel = Column(String(20), nullable=False, default="in_app")
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

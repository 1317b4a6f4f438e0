"""Room model: a physical unit with an operational status and nightly rate."""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class RoomStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    MAINTENANCE = "MAINTENANCE"
    CLEANING = "CLEANING"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class Room(Base):
    __tablename__ = "rooms"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    room_number = Column(String(20), nullable=False, unique=True)
    room_type = Column(String(50), nullable=False, default="standard")
    floor = Column(Integer, nullable=True)
    base_price = Column(Numeric(12, 2), nullable=True)
    status = Column(String(20), nullable=False, default=RoomStatus.AVAILABLE, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('AVAILABLE', 'BOOKED', 'MAINTENANCE', 'CLEANING', 'OUT_OF_SERVICE')",
            name="ck_rooms_status",
        ),
        CheckConstraint("base_price IS NULL OR base_price >= 0", name="ck_rooms_price"),
    )

    def __repr__(self) -> str:
        return f"<Room {self.room_number} status={self.status}>"

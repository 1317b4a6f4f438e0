"""Persisted hotel configuration documents."""

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from ..database import Base


class HotelConfig(Base):
    """
    One JSON document per configuration key.

    ``version`` increases on every save so readers can tell a stale copy
    from a fresh one. Secret values inside ``value_json`` are Fernet tokens.
    """

    __tablename__ = "hotel_config"

    key = Column(String(64), primary_key=True)
    value_json = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_by = Column(String(26), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<HotelConfig {self.key} v{self.version}>"

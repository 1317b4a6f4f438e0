"""Minimal user identity shared by guests and hotel staff."""

from enum import Enum

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class UserRole(str, Enum):
    GUEST = "guest"
    STAFF = "staff"
    ADMIN = "admin"


class User(Base):
    """
    Guest or staff member.

    Authentication lives outside this service; the row only carries what
    stay, billing, and notification flows need to address a person.
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(40), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.GUEST)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.STAFF, UserRole.ADMIN)

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email} role={self.role}>"

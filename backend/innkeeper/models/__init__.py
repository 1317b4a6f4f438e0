"""
SQLAlchemy models for the Innkeeper backend.

Importing this package registers every table on ``Base.metadata``.
"""

from .background_job import BackgroundJob
from .booking import Booking, BookingStatus, PaymentMethod
from .hotel_config import HotelConfig
from .invoice import Invoice, InvoiceKind, InvoiceStatus
from .key_card import KeyCard, KeyCardStatus, KeyCardStatusChange
from .notification import Notification
from .refund import RefundRequest
from .room import Room, RoomStatus
from .staff_task import StaffTask, TaskPriority, TaskStatus
from .stay import Overstay, OverstayPaymentStatus, Stay, StayStatus
from .user import User, UserRole

__all__ = [
    "BackgroundJob",
    "Booking",
    "BookingStatus",
    "HotelConfig",
    "Invoice",
    "InvoiceKind",
    "InvoiceStatus",
    "KeyCard",
    "KeyCardStatus",
    "KeyCardStatusChange",
    "Notification",
    "Overstay",
    "OverstayPaymentStatus",
    "PaymentMethod",
    "RefundRequest",
    "Room",
    "RoomStatus",
    "StaffTask",
    "Stay",
    "StayStatus",
    "TaskPriority",
    "TaskStatus",
    "User",
    "UserRole",
]

# backend/innkeeper/repositories/factory.py
"""
Repository Factory for the Innkeeper backend.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .background_job_repository import BackgroundJobRepository
    from .booking_repository import BookingRepository
    from .hotel_config_repository import HotelConfigRepository
    from .invoice_repository import InvoiceRepository
    from .key_card_repository import KeyCardRepository
    from .notification_repository import NotificationRepository
    from .refund_repository import RefundRepository
    from .room_repository import RoomRepository
    from .staff_task_repository import StaffTaskRepository
    from .stay_repository import StayRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_room_repository(db: Session) -> "RoomRepository":
        from .room_repository import RoomRepository

        return RoomRepository(db)

    @staticmethod
    def create_key_card_repository(db: Session) -> "KeyCardRepository":
        from .key_card_repository import KeyCardRepository

        return KeyCardRepository(db)

    @staticmethod
    def create_stay_repository(db: Session) -> "StayRepository":
        from .stay_repository import StayRepository

        return StayRepository(db)

    @staticmethod
    def create_invoice_repository(db: Session) -> "InvoiceRepository":
        from .invoice_repository import InvoiceRepository

        return InvoiceRepository(db)

    @staticmethod
    def create_refund_repository(db: Session) -> "RefundRepository":
        from .refund_repository import RefundRepository

        return RefundRepository(db)

    @staticmethod
    def create_staff_task_repository(db: Session) -> "StaffTaskRepository":
        from .staff_task_repository import StaffTaskRepository

        return StaffTaskRepository(db)

    @staticmethod
    def create_background_job_repository(db: Session) -> "BackgroundJobRepository":
        from .background_job_repository import BackgroundJobRepository

        return BackgroundJobRepository(db)

    @staticmethod
    def create_notification_repository(db: Session) -> "NotificationRepository":
        from .notification_repository import NotificationRepository

        return NotificationRepository(db)

    @staticmethod
    def create_hotel_config_repository(db: Session) -> "HotelConfigRepository":
        from .hotel_config_repository import HotelConfigRepository

        return HotelConfigRepository(db)

# backend/innkeeper/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...integrations.payment_gateway import MockPaymentGateway, PaymentGateway
from ...services.housekeeping_service import HousekeepingService
from ...services.invoice_sync_service import InvoiceSyncService
from ...services.key_card_service import KeyCardService
from ...services.notification_service import NotificationService
from ...services.overstay_service import OverstayService
from ...services.settings_cache import SettingsCache, get_settings_cache
from ...services.stay_service import StayService
from .database import get_db

_payment_gateway: PaymentGateway = MockPaymentGateway()


def get_payment_gateway() -> PaymentGateway:
    return _payment_gateway


def get_settings_cache_dep() -> SettingsCache:
    return get_settings_cache()


def get_notification_service(
    db: Session = Depends(get_db),
    settings_cache: SettingsCache = Depends(get_settings_cache_dep),
) -> NotificationService:
    return NotificationService(db, settings_cache)


def get_key_card_service(db: Session = Depends(get_db)) -> KeyCardService:
    return KeyCardService(db)


def get_invoice_sync_service(db: Session = Depends(get_db)) -> InvoiceSyncService:
    return InvoiceSyncService(db)


def get_overstay_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> OverstayService:
    return OverstayService(
        db, notification_service=notification_service, payment_gateway=payment_gateway
    )


def get_stay_service(
    db: Session = Depends(get_db),
    key_card_service: KeyCardService = Depends(get_key_card_service),
    invoice_sync_service: InvoiceSyncService = Depends(get_invoice_sync_service),
    notification_service: NotificationService = Depends(get_notification_service),
    overstay_service: OverstayService = Depends(get_overstay_service),
) -> StayService:
    """
    Get stay service instance with all collaborators sharing one session.
    """
    return StayService(
        db,
        key_card_service=key_card_service,
        invoice_sync_service=invoice_sync_service,
        housekeeping_service=HousekeepingService(db),
        notification_service=notification_service,
        overstay_service=overstay_service,
    )

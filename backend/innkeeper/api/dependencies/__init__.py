"""FastAPI dependencies."""

from .auth import get_current_user, require_staff
from .database import get_db
from .services import (
    get_invoice_sync_service,
    get_key_card_service,
    get_overstay_service,
    get_stay_service,
)

__all__ = [
    "get_current_user",
    "get_db",
    "get_invoice_sync_service",
    "get_key_card_service",
    "get_overstay_service",
    "get_stay_service",
    "require_staff",
]

"""
Hotel settings with a TTL cache.

Settings are persisted as one JSON document in ``hotel_config``. Secret
fields are Fernet-encrypted on the way in and decrypted on the way out;
those two functions are the only place the encoding happens.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..core.config import settings as app_settings
from ..core.constants import HOTEL_SETTINGS_KEY, SECRET_SETTING_FIELDS
from ..core.crypto import decrypt_str, encrypt_str
from ..core.timezone_utils import utcnow
from ..repositories.factory import RepositoryFactory

logger = logging.getLogger(__name__)


class HotelSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hotel_name: str = "Innkeeper Hotel"
    currency: str = Field(default_factory=lambda: app_settings.currency)
    notification_channels: List[str] = Field(default_factory=lambda: ["in_app"])
    notifications_enabled: bool = True
    smtp_host: Optional[str] = None
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    payment_gateway_secret: Optional[str] = None


def encode_settings(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Prepare a settings document for storage, encrypting secret fields."""
    encoded = dict(values)
    for name in SECRET_SETTING_FIELDS:
        raw = encoded.get(name)
        if isinstance(raw, str) and raw:
            encoded[name] = encrypt_str(raw)
    return encoded


def decode_settings(document: Mapping[str, Any]) -> HotelSettings:
    """Rebuild settings from storage, decrypting secret fields."""
    decoded = dict(document)
    for name in SECRET_SETTING_FIELDS:
        raw = decoded.get(name)
        if isinstance(raw, str) and raw:
            decoded[name] = decrypt_str(raw)
    return HotelSettings(**decoded)


class SettingsCache:
    """
    Single owner of cached hotel settings.

    ``get()`` serves the cached copy until ``ttl_seconds`` elapse; ``invalidate()``
    drops it immediately. ``persist()`` writes and invalidates in one step.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = app_settings.settings_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[HotelSettings] = None
        self._loaded_at: float = 0.0

    def get(self) -> HotelSettings:
        with self._lock:
            if self._value is not None and (self._clock() - self._loaded_at) < self._ttl:
                return self._value

        value = self._load()
        with self._lock:
            self._value = value
            self._loaded_at = self._clock()
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._loaded_at = 0.0
        logger.debug("Hotel settings cache invalidated")

    def persist(
        self, values: Mapping[str, Any], updated_by: Optional[str] = None
    ) -> HotelSettings:
        validated = HotelSettings(**dict(values))
        db = self._session_factory()
        try:
            RepositoryFactory.create_hotel_config_repository(db).save_document(
                HOTEL_SETTINGS_KEY,
                encode_settings(validated.model_dump()),
                updated_at=utcnow(),
                updated_by=updated_by,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        self.invalidate()
        logger.info("Hotel settings persisted", extra={"key": HOTEL_SETTINGS_KEY})
        return validated

    def _load(self) -> HotelSettings:
        db = self._session_factory()
        try:
            document = RepositoryFactory.create_hotel_config_repository(db).get_document(HOTEL_SETTINGS_KEY)
        finally:
            db.close()
        if document is None:
            return HotelSettings()
        return decode_settings(document)


_default_cache: Optional[SettingsCache] = None


def get_settings_cache() -> SettingsCache:
    """Process-wide cache bound to the application session factory."""
    global _default_cache
    if _default_cache is None:
        from ..database import SessionLocal

        _default_cache = SettingsCache(SessionLocal)
    return _default_cache

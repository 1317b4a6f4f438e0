# backend/innkeeper/services/notification_service.py
"""
Notification Service for the Innkeeper backend.

Sends guest notifications through the in-app channel (persisted rows) and
hands other channels to the delivery layer, which lives outside this
service. Every call is best-effort: a failure is logged and reported as
``False``, never raised into the caller's business flow.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .settings_cache import SettingsCache

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    def __init__(self, db: Session, settings_cache: Optional[SettingsCache] = None):
        super().__init__(db)
        self.settings_cache = settings_cache
        self.notification_repository = RepositoryFactory.create_notification_repository(db)

    def _channel_enabled(self, channel: str) -> bool:
        if self.settings_cache is None:
            return channel == "in_app"
        hotel = self.settings_cache.get()
        if not hotel.notifications_enabled:
            return False
        return channel in hotel.notification_channels

    @BaseService.measure_operation("send_notification")
    def send_notification(
        self,
        user_id: str,
        type: str,
        channel: str = "in_app",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Send one notification; returns True when it was recorded or dispatched.
        """
        try:
            if not self._channel_enabled(channel):
                self.logger.info(
                    "Notification channel disabled; skipping",
                    extra={"user_id": user_id, "type": type, "channel": channel},
                )
                return False

            self.notification_repository.create(
                user_id=user_id,
                type=type,
                channel=channel,
                payload=_json_safe(metadata or {}),
            )
            self.db.commit()
            self.logger.info(
                "Notification sent",
                extra={"user_id": user_id, "type": type, "channel": channel},
            )
            return True
        except Exception as exc:
            self.db.rollback()
            self.logger.warning(
                f"Failed to send {type} notification to {user_id}: {str(exc)}",
                extra={"user_id": user_id, "type": type, "channel": channel},
            )
            return False


def _json_safe(value: Any) -> Any:
    """Coerce Decimals and datetimes in metadata so the payload is JSON-serializable."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)

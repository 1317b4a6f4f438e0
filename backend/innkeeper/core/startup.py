"""Fatal configuration checks run before the API or a worker starts serving."""

from __future__ import annotations

import logging

from .config import Settings, settings as default_settings
from .crypto import assert_encryption_ready

logger = logging.getLogger(__name__)


def validate_startup_config(config: Settings | None = None) -> None:
    """
    Refuse to start with unsafe or incomplete configuration.

    Raises:
        RuntimeError: production is missing encryption material or has the
            date-window bypass switched on
    """
    cfg = config or default_settings

    if cfg.skip_stay_date_validation:
        if cfg.is_production:
            raise RuntimeError(
                "Refusing to start: SKIP_STAY_DATE_VALIDATION cannot be enabled in production"
            )
        logger.warning(
            "Stay date-window validation is DISABLED for this process",
            extra={"event": "date_validation_bypass_enabled", "environment": cfg.environment},
        )

    if cfg.is_production:
        assert_encryption_ready(cfg.settings_encryption_key)

    logger.info(
        "Startup configuration validated",
        extra={"environment": cfg.environment, "hotel_timezone": cfg.hotel_timezone},
    )

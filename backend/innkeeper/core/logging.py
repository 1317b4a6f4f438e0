"""Process-wide logging setup shared by the API and Celery workers."""

from __future__ import annotations

import logging
import logging.config
import os
from typing import Any, Dict

_CONFIGURED = False

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_logging_config(level: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level,
            }
        },
        "root": {"handlers": ["console"], "level": level},
        "loggers": {
            # SQL echo is far too chatty at INFO
            "sqlalchemy.engine": {"level": "WARNING"},
            "celery": {"level": "INFO"},
        },
    }


def setup_logging(level: str | None = None) -> None:
    """Configure root logging once per process."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(build_logging_config(resolved))
    _CONFIGURED = True

# backend/innkeeper/tasks/key_card_tasks.py
"""Periodic key-card consistency sweep."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..database import SessionLocal
from ..services.key_card_service import KeyCardService
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="key_cards.reconcile_orphans",
    bind=True,
    max_retries=3,
    default_retry_delay=120,
)
def reconcile_orphaned_key_cards(self: Any) -> Dict[str, int]:
    db = SessionLocal()
    try:
        return KeyCardService(db).reconcile_orphaned_cards()
    except Exception as exc:
        logger.exception("Key card sweep failed")
        raise self.retry(exc=exc)
    finally:
        db.close()

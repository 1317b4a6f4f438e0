"""Persistence for hotel configuration documents keyed by name."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.hotel_config import HotelConfig

logger = logging.getLogger(__name__)


class HotelConfigRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, key: str) -> Optional[HotelConfig]:
        try:
            return self.db.get(HotelConfig, key)
        except SQLAlchemyError as e:
            logger.error(f"Error loading hotel config {key}: {str(e)}")
            raise RepositoryException(f"Failed to load hotel config {key}: {str(e)}")

    def get_document(self, key: str) -> Optional[Dict[str, Any]]:
        """Stored JSON for ``key`` as a fresh dict; None when never saved."""
        record = self.get(key)
        return dict(record.value_json or {}) if record is not None else None

    def save_document(
        self,
        key: str,
        value: Mapping[str, Any],
        *,
        updated_at: datetime,
        updated_by: Optional[str] = None,
    ) -> HotelConfig:
        record = self.get(key)
        try:
            if record is None:
                record = HotelConfig(key=key, version=1)
                self.db.add(record)
            else:
                record.version = (record.version or 0) + 1
            record.value_json = dict(value)
            record.updated_at = updated_at
            record.updated_by = updated_by
            self.db.flush()
            return record
        except SQLAlchemyError as e:
            logger.error(f"Error saving hotel config {key}: {str(e)}")
            raise RepositoryException(f"Failed to save hotel config {key}: {str(e)}")

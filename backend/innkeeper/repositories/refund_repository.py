"""Repository for refund requests."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.refund import RefundRequest
from .base_repository import BaseRepository


class RefundRepository(BaseRepository[RefundRequest]):
    def __init__(self, db: Session):
        super().__init__(db, RefundRequest)
        self.logger = logging.getLogger(__name__)

    def get_by_booking(self, booking_id: str) -> Optional[RefundRequest]:
        return self.find_one_by(booking_id=booking_id)

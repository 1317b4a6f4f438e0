# backend/innkeeper/repositories/stay_repository.py
"""Repository for stay (check-in/check-out) records."""

from datetime import datetime
import logging
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.stay import OPEN_STAY_STATUSES, Overstay, Stay, StayStatus
from .base_repository import BaseRepository


class StayRepository(BaseRepository[Stay]):
    def __init__(self, db: Session):
        super().__init__(db, Stay)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            joinedload(Stay.booking),
            joinedload(Stay.room),
            joinedload(Stay.guest),
        )

    def get_open_for_booking(self, booking_id: str) -> Optional[Stay]:
        """The pre_checkin or checked_in stay for a booking, if any."""
        try:
            return (
                self.db.query(Stay)
                .filter(Stay.booking_id == booking_id, Stay.status.in_(list(OPEN_STAY_STATUSES)))
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading open stay for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load stay: {str(e)}")

    def get_checked_in_for_room(self, room_id: str) -> Optional[Stay]:
        try:
            return (
                self.db.query(Stay)
                .filter(Stay.room_id == room_id, Stay.status == StayStatus.CHECKED_IN)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading in-house stay for room {room_id}: {str(e)}")
            raise RepositoryException(f"Failed to load in-house stay: {str(e)}")

    def list_checked_in(self) -> List[Stay]:
        try:
            return (
                self._apply_eager_loading(self.db.query(Stay))
                .filter(Stay.status == StayStatus.CHECKED_IN)
                .order_by(Stay.check_in_time.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing current guests: {str(e)}")
            raise RepositoryException(f"Failed to list current guests: {str(e)}")

    def get_latest_for_guest(self, guest_id: str) -> Optional[Stay]:
        try:
            return (
                self.db.query(Stay)
                .filter(Stay.guest_id == guest_id)
                .order_by(Stay.created_at.desc(), Stay.id.desc())
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading stays for guest {guest_id}: {str(e)}")
            raise RepositoryException(f"Failed to load guest stay: {str(e)}")

    def transition_status(self, stay_id: str, expected: Any, new_status: StayStatus, **values: Any) -> bool:
        return self.compare_and_set_status(stay_id, expected, new_status, **values)

    def save_overstay(self, stay: Stay, overstay: Optional[Overstay]) -> Stay:
        """Encode the overstay value onto the stay row."""
        try:
            stay.overstay = overstay.to_dict() if overstay is not None else None
            self.db.flush()
            return stay
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving overstay for stay {stay.id}: {str(e)}")
            raise RepositoryException(f"Failed to save overstay: {str(e)}")

    @staticmethod
    def load_overstay(stay: Stay) -> Optional[Overstay]:
        """Decode the overstay value from the stay row."""
        return Overstay.from_dict(stay.overstay)

    def stamp(self, stay: Stay, at: datetime, text: str, author: Optional[str] = None) -> None:
        stay.add_note(text, at, author)
        self.flush()

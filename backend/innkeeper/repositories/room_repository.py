"""Repository for rooms."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.room import Room, RoomStatus
from .base_repository import BaseRepository


class RoomRepository(BaseRepository[Room]):
    def __init__(self, db: Session):
        super().__init__(db, Room)
        self.logger = logging.getLogger(__name__)

    def set_status(self, room: Room, status: RoomStatus) -> Room:
        try:
            room.status = status
            self.db.flush()
            return room
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating room {room.id} status: {str(e)}")
            raise RepositoryException(f"Failed to update room status: {str(e)}")

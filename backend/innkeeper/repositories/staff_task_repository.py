"""Repository for housekeeping staff tasks."""

import logging

from sqlalchemy.orm import Session

from ..models.staff_task import StaffTask
from .base_repository import BaseRepository


class StaffTaskRepository(BaseRepository[StaffTask]):
    def __init__(self, db: Session):
        super().__init__(db, StaffTask)
        self.logger = logging.getLogger(__name__)

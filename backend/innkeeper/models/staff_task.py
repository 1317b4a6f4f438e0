"""Housekeeping tasks created by the stay lifecycle."""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func
import ulid

from ..database import Base


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


CLOSED_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})


class StaffTask(Base):
    __tablename__ = "staff_tasks"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    task_type = Column(String(30), nullable=False, default="cleaning")
    room_id = Column(String(26), ForeignKey("rooms.id"), nullable=True, index=True)
    booking_id = Column(String(26), nullable=True, index=True)
    priority = Column(String(10), nullable=False, default=TaskPriority.MEDIUM)
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING, index=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    estimated_duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')", name="ck_staff_tasks_priority"
        ),
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'cancelled')",
            name="ck_staff_tasks_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<StaffTask {self.id} {self.task_type} priority={self.priority} status={self.status}>"

# backend/innkeeper/repositories/booking_repository.py
"""
Booking Repository for the Innkeeper backend.

This repository handles:
- Hold scheduler queries (expired holds, holds expiring soon, stats)
- Optimistic status transitions guarded on the current status
- Retention cleanup of terminal bookings and their dependent rows
- Guest-facing booking lookups for check-in eligibility
"""

from datetime import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, exists, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.booking import TERMINAL_BOOKING_STATUSES, Booking, BookingStatus
from ..models.invoice import Invoice
from ..models.refund import RefundRequest
from ..models.stay import Stay
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Booking.room), joinedload(Booking.user))

    # Hold scheduler queries

    def get_expired_holds(self, now: datetime, limit: Optional[int] = None) -> List[Booking]:
        """On-hold bookings whose deadline has passed, oldest deadline first."""
        try:
            query = (
                self.db.query(Booking)
                .filter(
                    and_(
                        Booking.status == BookingStatus.ON_HOLD,
                        Booking.hold_until.isnot(None),
                        Booking.hold_until <= now,
                    )
                )
                .order_by(Booking.hold_until.asc())
            )
            if limit:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading expired holds: {str(e)}")
            raise RepositoryException(f"Failed to load expired holds: {str(e)}")

    def get_holds_expiring_between(self, start: datetime, end: datetime) -> List[Booking]:
        try:
            return (
                self.db.query(Booking)
                .filter(
                    and_(
                        Booking.status == BookingStatus.ON_HOLD,
                        Booking.hold_until > start,
                        Booking.hold_until <= end,
                    )
                )
                .order_by(Booking.hold_until.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading expiring holds: {str(e)}")
            raise RepositoryException(f"Failed to load expiring holds: {str(e)}")

    def get_hold_stats(self, now: datetime) -> Dict[str, Any]:
        try:
            row = (
                self.db.query(
                    func.count(Booking.id),
                    func.min(Booking.hold_until),
                    func.max(Booking.hold_until),
                )
                .filter(
                    Booking.status == BookingStatus.ON_HOLD,
                    Booking.hold_until <= now,
                )
                .one()
            )
            return {
                "expired_pending": int(row[0] or 0),
                "oldest_hold_until": row[1],
                "newest_hold_until": row[2],
            }
        except SQLAlchemyError as e:
            self.logger.error(f"Error computing hold stats: {str(e)}")
            raise RepositoryException(f"Failed to compute hold stats: {str(e)}")

    # Status transitions

    def transition_status(
        self,
        booking_id: str,
        expected: Any,
        new_status: BookingStatus,
        *,
        at: datetime,
        **values: Any,
    ) -> bool:
        """
        Move a booking from ``expected`` to ``new_status`` only if it is still there.

        The hold deadline is cleared on every move out of ON_HOLD.
        """
        if new_status != BookingStatus.ON_HOLD:
            values["hold_until"] = None
        values["last_status_change"] = at
        return self.compare_and_set_status(booking_id, expected, new_status, **values)

    # Retention cleanup

    def get_terminal_booking_ids_older_than(
        self, cutoff: datetime, statuses: Iterable[BookingStatus] = TERMINAL_BOOKING_STATUSES
    ) -> List[str]:
        """
        Terminal bookings whose last status change predates ``cutoff``.

        Bookings with a refund request are kept so the refund record keeps
        its booking.
        """
        settled_at = func.coalesce(
            Booking.cancelled_at, Booking.last_status_change, Booking.created_at
        )
        has_refund = exists().where(RefundRequest.booking_id == Booking.id)
        try:
            rows = (
                self.db.query(Booking.id)
                .filter(
                    Booking.status.in_(list(statuses)),
                    settled_at < cutoff,
                    ~has_refund,
                )
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error selecting bookings for cleanup: {str(e)}")
            raise RepositoryException(f"Failed to select bookings for cleanup: {str(e)}")

    def delete_with_dependents(self, booking_id: str) -> bool:
        """Hard-delete a booking together with its invoices and stays."""
        try:
            self.db.query(Invoice).filter(Invoice.booking_id == booking_id).delete(
                synchronize_session=False
            )
            self.db.query(Stay).filter(Stay.booking_id == booking_id).delete(
                synchronize_session=False
            )
            deleted = (
                self.db.query(Booking)
                .filter(Booking.id == booking_id)
                .delete(synchronize_session=False)
            )
            self.db.flush()
            return bool(deleted)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to delete booking: {str(e)}")

    # Guest lookups

    def get_user_bookings_in_statuses(
        self, user_id: str, statuses: Iterable[BookingStatus]
    ) -> List[Booking]:
        try:
            return (
                self.db.query(Booking)
                .options(joinedload(Booking.room))
                .filter(Booking.user_id == user_id, Booking.status.in_(list(statuses)))
                .order_by(Booking.check_in.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading bookings for user {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to load user bookings: {str(e)}")

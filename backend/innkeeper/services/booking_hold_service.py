# backend/innkeeper/services/booking_hold_service.py
"""
Booking Hold Scheduler.

Periodic passes over provisional bookings:
- expire holds whose deadline has passed (cancel, refund if paid, notify)
- remind guests of holds about to expire
- purge long-terminal bookings past the retention window

Each booking is handled in isolation; one failure is logged and counted
and the pass moves on.
"""

from datetime import datetime, timedelta
import logging
from typing import Any, Dict, Optional, TypedDict

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import HOLD_EXPIRED_REASON, HOLD_EXPIRED_REFUND_REASON, SYSTEM_ACTOR
from ..core.metrics import HOLDS_EXPIRED_TOTAL
from ..core.timezone_utils import ensure_utc
from ..models.booking import Booking, BookingStatus
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .notification_service import NotificationService
from .refund_service import RefundService

logger = logging.getLogger(__name__)


class HoldPassResult(TypedDict):
    processed: int
    errors: int


class ReminderPassResult(TypedDict):
    sent: int
    errors: int


class CleanupPassResult(TypedDict):
    deleted: int
    errors: int


class BookingHoldService(BaseService):
    def __init__(
        self,
        db: Session,
        refund_service: Optional[RefundService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.refund_service = refund_service or RefundService(db)
        self.notification_service = notification_service or NotificationService(db)

    @BaseService.measure_operation("expire_overdue_holds")
    def expire_overdue_holds(
        self, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> HoldPassResult:
        """
        Cancel every on-hold booking whose hold deadline has passed.

        A booking that another worker already moved off ON_HOLD counts as
        handled; running the pass twice changes nothing the second time.
        """
        at = self.resolve_now(now)
        processed = 0
        errors = 0

        for booking in self.booking_repository.get_expired_holds(at, limit=limit):
            booking_id = booking.id
            try:
                if self._expire_one(booking, at):
                    processed += 1
                    HOLDS_EXPIRED_TOTAL.labels(outcome="cancelled").inc()
                else:
                    HOLDS_EXPIRED_TOTAL.labels(outcome="already_handled").inc()
            except Exception:
                errors += 1
                HOLDS_EXPIRED_TOTAL.labels(outcome="error").inc()
                self.db.rollback()
                self.logger.exception(
                    "Failed to expire booking hold", extra={"booking_id": booking_id}
                )

        if processed or errors:
            self.logger.info(
                "Hold expiry pass finished", extra={"processed": processed, "errors": errors}
            )
        return {"processed": processed, "errors": errors}

    def _expire_one(self, booking: Booking, at: datetime) -> bool:
        with self.transaction():
            changed = self.booking_repository.transition_status(
                booking.id,
                BookingStatus.ON_HOLD,
                BookingStatus.CANCELLED,
                at=at,
                cancelled_at=at,
                cancelled_by=SYSTEM_ACTOR,
                cancellation_reason=HOLD_EXPIRED_REASON,
                auto_cancelled=True,
            )
        if not changed:
            self.logger.info(
                "Hold already resolved by another worker", extra={"booking_id": booking.id}
            )
            return False

        self.log_operation("booking_hold_expired", booking_id=booking.id)

        with self.best_effort("create_refund_request", booking_id=booking.id):
            self.refund_service.create_refund_request(
                booking, HOLD_EXPIRED_REFUND_REASON, SYSTEM_ACTOR
            )
        with self.best_effort("notify", booking_id=booking.id):
            self.notification_service.send_notification(
                booking.user_id,
                "booking_expired",
                metadata={
                    "booking_id": booking.id,
                    "booking_number": booking.booking_number,
                    "reason": HOLD_EXPIRED_REASON,
                },
            )
        return True

    @BaseService.measure_operation("send_hold_expiry_reminders")
    def send_expiry_reminders(
        self, hours_before: Optional[int] = None, now: Optional[datetime] = None
    ) -> ReminderPassResult:
        """Remind guests whose hold expires within the lookahead window."""
        at = self.resolve_now(now)
        lookahead = settings.hold_reminder_lookahead_hours if hours_before is None else hours_before
        window_end = at + timedelta(hours=lookahead)
        sent = 0
        errors = 0

        for booking in self.booking_repository.get_holds_expiring_between(at, window_end):
            try:
                hold_until = ensure_utc(booking.hold_until)
                hours_left = max(int((hold_until - at).total_seconds() // 3600), 0)
                delivered = self.notification_service.send_notification(
                    booking.user_id,
                    "booking_expiry_reminder",
                    metadata={
                        "booking_id": booking.id,
                        "booking_number": booking.booking_number,
                        "hold_until": hold_until,
                        "hours_remaining": hours_left,
                    },
                )
                if delivered:
                    sent += 1
                else:
                    errors += 1
            except Exception:
                errors += 1
                self.logger.exception(
                    "Failed to send hold expiry reminder", extra={"booking_id": booking.id}
                )

        return {"sent": sent, "errors": errors}

    @BaseService.measure_operation("cleanup_terminal_bookings")
    def cleanup_terminal_bookings(
        self, retention_days: Optional[int] = None, now: Optional[datetime] = None
    ) -> CleanupPassResult:
        """Hard-delete cancelled and rejected bookings past the retention window."""
        at = self.resolve_now(now)
        days = settings.booking_retention_days if retention_days is None else retention_days
        cutoff = at - timedelta(days=days)
        deleted = 0
        errors = 0

        for booking_id in self.booking_repository.get_terminal_booking_ids_older_than(cutoff):
            try:
                with self.transaction():
                    if self.booking_repository.delete_with_dependents(booking_id):
                        deleted += 1
            except Exception:
                errors += 1
                self.logger.exception(
                    "Failed to delete terminal booking", extra={"booking_id": booking_id}
                )

        if deleted or errors:
            self.logger.info(
                "Terminal booking cleanup finished",
                extra={"deleted": deleted, "errors": errors, "retention_days": days},
            )
        return {"deleted": deleted, "errors": errors}

    def get_hold_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return self.booking_repository.get_hold_stats(self.resolve_now(now))

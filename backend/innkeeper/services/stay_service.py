# backend/innkeeper/services/stay_service.py
"""
Stay State Machine for the Innkeeper backend.

Drives a stay through pre_checkin -> checked_in -> checked_out (or
no_show), keeping the booking, the room and the guest's key card in step.

Check-in and check-out each run their state changes in one transaction.
Invoice notes, notifications and housekeeping run after the commit and
never undo it.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    BookingPeriodExpiredException,
    ConflictException,
    EarlyCheckInException,
    ForbiddenException,
    InvalidStatusTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.metrics import CHECKOUTS_TOTAL
from ..core.timezone_utils import ensure_utc, hotel_date
from ..models.booking import (
    SELF_SERVICE_CHECKIN_STATUSES,
    STAFF_CHECKIN_STATUSES,
    Booking,
    BookingStatus,
)
from ..models.key_card import KeyCard, KeyCardStatus
from ..models.room import Room, RoomStatus
from ..models.stay import OPEN_STAY_STATUSES, Stay, StayStatus
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .housekeeping_service import HousekeepingService
from .invoice_sync_service import InvoiceSyncService
from .key_card_service import KeyCardService
from .notification_service import NotificationService
from .overstay_service import OverstayService, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckInResult:
    stay: Stay
    key_card: KeyCard


@dataclass(frozen=True)
class CheckoutCompleted:
    stay: Stay
    is_early_checkout: bool
    cleaning_task_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentRequired:
    """Check-out is blocked until the overstay invoice is settled."""

    days_overstayed: int
    invoice_id: str
    amount: Decimal


CheckoutResult = Union[CheckoutCompleted, PaymentRequired]


class StayService(BaseService):
    def __init__(
        self,
        db: Session,
        key_card_service: Optional[KeyCardService] = None,
        invoice_sync_service: Optional[InvoiceSyncService] = None,
        housekeeping_service: Optional[HousekeepingService] = None,
        notification_service: Optional[NotificationService] = None,
        overstay_service: Optional[OverstayService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.room_repository = RepositoryFactory.create_room_repository(db)
        self.stay_repository = RepositoryFactory.create_stay_repository(db)
        self.key_card_repository = RepositoryFactory.create_key_card_repository(db)
        self.invoice_repository = RepositoryFactory.create_invoice_repository(db)

        self.notification_service = notification_service or NotificationService(db)
        self.key_card_service = key_card_service or KeyCardService(db)
        self.invoice_sync_service = invoice_sync_service or InvoiceSyncService(db)
        self.housekeeping_service = housekeeping_service or HousekeepingService(db)
        self.overstay_service = overstay_service or OverstayService(
            db, notification_service=self.notification_service
        )

    # Validation helpers

    def validate_stay_window(self, booking: Booking, now: datetime) -> None:
        """
        Check-in is allowed from the first booked day through the checkout day,
        in hotel-local dates.

        Raises:
            EarlyCheckInException: before the check-in day
            BookingPeriodExpiredException: after the checkout day
        """
        if settings.skip_stay_date_validation:
            self.logger.warning(
                "Stay date validation bypassed",
                extra={"booking_id": booking.id, "flag": "SKIP_STAY_DATE_VALIDATION"},
            )
            return

        today = hotel_date(now)
        check_in_day = hotel_date(booking.check_in)
        check_out_day = hotel_date(booking.check_out)
        if today < check_in_day:
            raise EarlyCheckInException(
                days_until_check_in=(check_in_day - today).days,
                check_in_date=check_in_day.isoformat(),
            )
        if today > check_out_day:
            raise BookingPeriodExpiredException(check_out_date=check_out_day.isoformat())

    def _within_window(self, booking: Booking, now: datetime) -> bool:
        if settings.skip_stay_date_validation:
            return True
        today = hotel_date(now)
        return hotel_date(booking.check_in) <= today <= hotel_date(booking.check_out)

    @staticmethod
    def _validate_document(document: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        document = dict(document or {})
        doc_type = (document.get("type") or "").strip()
        doc_number = (document.get("number") or "").strip()
        if not doc_type or not doc_number:
            raise ValidationException(
                "Document type and number are required", code="DOCUMENT_REQUIRED"
            )
        document["type"] = doc_type
        document["number"] = doc_number
        return document

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found")
        return booking

    def _get_stay(self, stay_id: str) -> Stay:
        stay = self.stay_repository.get_by_id(stay_id)
        if stay is None:
            raise NotFoundException(f"Stay {stay_id} not found")
        return stay

    def _check_room_free(self, room_id: str) -> Room:
        room = self.room_repository.get_by_id(room_id, load_relationships=False)
        if room is None:
            raise NotFoundException(f"Room {room_id} not found")
        if room.status != RoomStatus.AVAILABLE:
            raise ConflictException(
                f"Room {room.room_number} is not available",
                code="ROOM_NOT_AVAILABLE",
                details={"room_status": getattr(room.status, "value", room.status)},
            )
        if self.stay_repository.get_checked_in_for_room(room.id) is not None:
            raise ConflictException(
                f"Room {room.room_number} already has a guest checked in",
                code="ROOM_OCCUPIED",
            )
        return room

    # Lifecycle

    @BaseService.measure_operation("create_pre_checkin_record")
    def create_pre_checkin_record(self, booking_id: str) -> Stay:
        """Open the stay record for a booking; returns the open one if it exists."""
        booking = self._get_booking(booking_id)
        existing = self.stay_repository.get_open_for_booking(booking.id)
        if existing is not None:
            return existing

        with self.transaction():
            stay = self.stay_repository.create(
                booking_id=booking.id,
                guest_id=booking.user_id,
                room_id=booking.room_id,
                status=StayStatus.PRE_CHECKIN,
                special_requests=booking.special_requests,
                preferences=(
                    {"special_requests": booking.special_requests}
                    if booking.special_requests
                    else {}
                ),
                document_scan={"verified": False},
            )
        self.log_operation("pre_checkin_created", booking_id=booking.id, stay_id=stay.id)
        return stay

    def _perform_check_in(
        self,
        *,
        booking: Booking,
        room: Room,
        stay: Optional[Stay],
        guest_id: str,
        actor_id: Optional[str],
        document_scan: Dict[str, Any],
        expected_booking_statuses: FrozenSet[BookingStatus],
        preferences: Optional[Mapping[str, Any]],
        emergency_contact: Optional[Mapping[str, Any]],
        at: datetime,
    ) -> CheckInResult:
        with self.transaction():
            card = self.key_card_service.allocate(
                guest_id, room.id, ensure_utc(booking.check_out), actor_id, now=at
            )

            merged_preferences = {**((stay.preferences if stay else None) or {})}
            merged_preferences.update(preferences or {})
            values: Dict[str, Any] = {
                "check_in_time": at,
                "checked_in_by": actor_id,
                "key_card_id": card.id,
                "key_card_number": card.card_number,
                "key_card_returned": False,
                "document_scan": document_scan,
                "preferences": merged_preferences,
            }
            if emergency_contact is not None:
                values["emergency_contact"] = dict(emergency_contact)

            if stay is None:
                stay = self.stay_repository.create(
                    booking_id=booking.id,
                    guest_id=guest_id,
                    room_id=room.id,
                    status=StayStatus.CHECKED_IN,
                    special_requests=booking.special_requests,
                    **values,
                )
            elif not self.stay_repository.transition_status(
                stay.id, StayStatus.PRE_CHECKIN, StayStatus.CHECKED_IN, **values
            ):
                raise ConflictException(
                    "Stay was checked in by another request", code="ALREADY_CHECKED_IN"
                )

            self.room_repository.set_status(room, RoomStatus.BOOKED)
            if not self.booking_repository.transition_status(
                booking.id, expected_booking_statuses, BookingStatus.CHECKED_IN, at=at
            ):
                raise ConflictException(
                    "Booking status changed during check-in", code="BOOKING_STATUS_CHANGED"
                )

        self.log_operation(
            "guest_checked_in",
            stay_id=stay.id,
            booking_id=booking.id,
            room_id=room.id,
            card_id=card.id,
            actor_id=actor_id,
        )
        with self.best_effort("sync_invoice", booking_id=booking.id):
            self.invoice_sync_service.record_stay_event(
                booking.id, f"Guest checked in to room {room.room_number}", now=at
            )
        with self.best_effort("notify", booking_id=booking.id):
            self.notification_service.send_notification(
                guest_id,
                "guest_checked_in",
                metadata={
                    "stay_id": stay.id,
                    "room_number": room.room_number,
                    "key_card_number": card.card_number,
                    "check_out": booking.check_out,
                },
            )
        return CheckInResult(stay=stay, key_card=card)

    @BaseService.measure_operation("check_in")
    def check_in(
        self,
        booking_id: str,
        guest_id: str,
        room_id: str,
        document: Mapping[str, Any],
        attachments: Optional[Sequence[str]] = None,
        actor_id: Optional[str] = None,
        preferences: Optional[Mapping[str, Any]] = None,
        emergency_contact: Optional[Mapping[str, Any]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> CheckInResult:
        """
        Staff check-in at the front desk.

        Issues a key card, marks the room booked and the booking checked in.

        Raises:
            ValidationException: missing document, guest or room mismatch
            EarlyCheckInException / BookingPeriodExpiredException: outside the booked dates
            ConflictException: room unavailable or occupied, no key card left
        """
        document = self._validate_document(document)
        at = self.resolve_now(now)

        booking = self._get_booking(booking_id)
        if booking.user_id != guest_id:
            raise ValidationException(
                "Booking does not belong to this guest", code="GUEST_MISMATCH"
            )
        if booking.room_id != room_id:
            raise ValidationException("Booking is for a different room", code="ROOM_MISMATCH")
        if booking.status not in STAFF_CHECKIN_STATUSES:
            raise InvalidStatusTransitionException(
                "Booking", booking.status, STAFF_CHECKIN_STATUSES
            )
        self.validate_stay_window(booking, at)

        existing = self.stay_repository.get_open_for_booking(booking.id)
        if existing is not None and existing.status == StayStatus.CHECKED_IN:
            raise ConflictException("Guest is already checked in", code="ALREADY_CHECKED_IN")
        room = self._check_room_free(room_id)

        document_scan = {
            **document,
            "attachments": list(attachments or []),
            "verified": True,
            "verified_by": actor_id,
            "verified_at": at.isoformat(),
        }
        return self._perform_check_in(
            booking=booking,
            room=room,
            stay=existing,
            guest_id=guest_id,
            actor_id=actor_id,
            document_scan=document_scan,
            expected_booking_statuses=STAFF_CHECKIN_STATUSES,
            preferences=preferences,
            emergency_contact=emergency_contact,
            at=at,
        )

    @BaseService.measure_operation("complete_guest_check_in")
    def complete_guest_check_in(
        self,
        stay_id: str,
        guest_id: str,
        document: Mapping[str, Any],
        *,
        now: Optional[datetime] = None,
    ) -> CheckInResult:
        """Guest self-service check-in from an existing pre-checkin record."""
        document = self._validate_document(document)
        at = self.resolve_now(now)

        stay = self._get_stay(stay_id)
        if stay.guest_id != guest_id:
            raise ForbiddenException("This stay belongs to another guest")
        if stay.status != StayStatus.PRE_CHECKIN:
            raise InvalidStatusTransitionException("Stay", stay.status, StayStatus.PRE_CHECKIN)

        booking = self._get_booking(stay.booking_id)
        if booking.status not in SELF_SERVICE_CHECKIN_STATUSES:
            raise InvalidStatusTransitionException(
                "Booking", booking.status, SELF_SERVICE_CHECKIN_STATUSES
            )
        self.validate_stay_window(booking, at)
        room = self._check_room_free(stay.room_id)

        document_scan = {
            **(stay.document_scan or {}),
            **document,
            "verified": True,
            "auto_verified": True,
            "verified_at": at.isoformat(),
        }
        return self._perform_check_in(
            booking=booking,
            room=room,
            stay=stay,
            guest_id=guest_id,
            actor_id=guest_id,
            document_scan=document_scan,
            expected_booking_statuses=SELF_SERVICE_CHECKIN_STATUSES,
            preferences=None,
            emergency_contact=None,
            at=at,
        )

    def _evaluate_overstay(
        self, stay: Stay, booking: Booking, room: Room, at: datetime
    ) -> Optional[PaymentRequired]:
        """Checkout gate: None when the guest may leave, else what is owed."""
        if settings.skip_stay_date_validation:
            self.logger.warning(
                "Overstay detection bypassed at checkout",
                extra={"stay_id": stay.id, "flag": "SKIP_STAY_DATE_VALIDATION"},
            )
            return None

        overstay = self.stay_repository.load_overstay(stay)
        if overstay is not None and overstay.detected and overstay.can_checkout:
            return None

        calculation = self.overstay_service.calculate_overstay(booking, room, at)
        if overstay is None or not overstay.detected:
            if calculation is None:
                return None
            invoice = self.overstay_service.create_overstay_invoice(
                stay.id, calculation.days_overstayed, calculation.amount, now=at
            )
            days = calculation.days_overstayed
        else:
            days = overstay.days_overstayed
            invoice = self.invoice_repository.get_overstay_for_stay(stay.id)
            if invoice is None:
                if calculation is not None:
                    days = max(days, calculation.days_overstayed)
                amount = (
                    calculation.amount
                    if calculation is not None and calculation.days_overstayed >= days
                    else overstay.charge_amount
                )
                invoice = self.overstay_service.create_overstay_invoice(
                    stay.id, days, amount, now=at
                )
            elif calculation is not None and calculation.days_overstayed > days:
                invoice, _ = self.overstay_service.update_overstay_invoice(
                    stay.id, calculation.days_overstayed, calculation.amount, now=at
                )
                days = calculation.days_overstayed

        CHECKOUTS_TOTAL.labels(outcome="payment_required").inc()
        self.logger.info(
            "Checkout blocked pending overstay payment",
            extra={"stay_id": stay.id, "invoice_id": invoice.id, "days_overstayed": days},
        )
        return PaymentRequired(
            days_overstayed=days, invoice_id=invoice.id, amount=to_money(invoice.amount)
        )

    def _release_card(self, stay: Stay, actor_id: Optional[str], at: datetime) -> None:
        card = (
            self.key_card_repository.get_by_id(stay.key_card_id, load_relationships=False)
            if stay.key_card_id
            else None
        )
        if (
            card is not None
            and card.status == KeyCardStatus.ACTIVE
            and card.assigned_to == stay.guest_id
        ):
            self.key_card_service.release(card, actor_id, now=at)
        else:
            self.key_card_service.fallback_release(stay.guest_id, stay.room_id, actor_id, now=at)

    @BaseService.measure_operation("check_out")
    def check_out(
        self,
        stay_id: str,
        actor_id: Optional[str],
        damage_report: Optional[str] = None,
        key_card_returned: bool = True,
        *,
        now: Optional[datetime] = None,
    ) -> CheckoutResult:
        """
        Check a guest out.

        Returns ``PaymentRequired`` while an overstay invoice is unsettled;
        nothing is changed in that case apart from raising or growing the
        invoice.
        """
        stay = self._get_stay(stay_id)
        if stay.status != StayStatus.CHECKED_IN:
            raise InvalidStatusTransitionException("Stay", stay.status, StayStatus.CHECKED_IN)

        at = self.resolve_now(now)
        booking = self._get_booking(stay.booking_id)
        room = self.room_repository.get_by_id(stay.room_id, load_relationships=False)
        if room is None:
            raise NotFoundException(f"Room {stay.room_id} not found")

        blocked = self._evaluate_overstay(stay, booking, room, at)
        if blocked is not None:
            return blocked

        booked_check_out = ensure_utc(booking.check_out)
        is_early_checkout = at < booked_check_out

        with self.transaction():
            if not self.stay_repository.transition_status(
                stay.id,
                StayStatus.CHECKED_IN,
                StayStatus.CHECKED_OUT,
                check_out_time=at,
                checked_out_by=actor_id,
                damage_report=damage_report,
                key_card_returned=key_card_returned,
            ):
                raise ConflictException(
                    "Stay was checked out by another request", code="ALREADY_CHECKED_OUT"
                )
            overstay = self.stay_repository.load_overstay(stay)
            if overstay is not None:
                self.stay_repository.save_overstay(stay, overstay.evolve(actual_checkout=at))

            self._release_card(stay, actor_id, at)

            booking_values: Dict[str, Any] = {}
            if is_early_checkout and at > ensure_utc(booking.check_in):
                booking_values["check_out"] = at
            if not self.booking_repository.transition_status(
                booking.id, BookingStatus.CHECKED_IN, BookingStatus.COMPLETED, at=at, **booking_values
            ):
                self.logger.warning(
                    "Booking was not checked in at checkout; status left unchanged",
                    extra={"booking_id": booking.id, "booking_status": booking.status},
                )

            self.room_repository.set_status(
                room, RoomStatus.AVAILABLE if is_early_checkout else RoomStatus.CLEANING
            )

        CHECKOUTS_TOTAL.labels(outcome="early" if is_early_checkout else "completed").inc()
        self.log_operation(
            "guest_checked_out",
            stay_id=stay.id,
            booking_id=booking.id,
            room_id=room.id,
            is_early_checkout=is_early_checkout,
            actor_id=actor_id,
        )

        with self.best_effort("sync_invoice", booking_id=booking.id):
            self.invoice_sync_service.record_stay_event(
                booking.id, f"Guest checked out of room {room.room_number}", now=at
            )

        cleaning_task_id: Optional[str] = None
        with self.best_effort("create_cleaning_task", room_id=room.id, stay_id=stay.id):
            guest = stay.guest
            task = self.housekeeping_service.create_cleaning_task(
                room_id=room.id,
                room_number=room.room_number,
                booking_id=booking.id,
                guest_name=guest.full_name if guest is not None else "Unknown guest",
                now=at,
            )
            cleaning_task_id = task.id

        return CheckoutCompleted(
            stay=stay, is_early_checkout=is_early_checkout, cleaning_task_id=cleaning_task_id
        )

    def mark_no_show(
        self, stay_id: str, actor_id: Optional[str], *, now: Optional[datetime] = None
    ) -> Stay:
        stay = self._get_stay(stay_id)
        at = self.resolve_now(now)
        with self.transaction():
            if not self.stay_repository.transition_status(
                stay.id, StayStatus.PRE_CHECKIN, StayStatus.NO_SHOW
            ):
                raise InvalidStatusTransitionException("Stay", stay.status, StayStatus.PRE_CHECKIN)
            self.stay_repository.stamp(stay, at, "Marked as no-show", actor_id)
        self.log_operation("stay_marked_no_show", stay_id=stay.id, actor_id=actor_id)
        return stay

    # Guest and front-desk queries

    def get_eligible_bookings(self, guest_id: str, now: Optional[datetime] = None) -> List[Booking]:
        """Bookings the guest could check in to today."""
        at = self.resolve_now(now)
        eligible = []
        for booking in self.booking_repository.get_user_bookings_in_statuses(
            guest_id, SELF_SERVICE_CHECKIN_STATUSES
        ):
            if not self._within_window(booking, at):
                continue
            open_stay = self.stay_repository.get_open_for_booking(booking.id)
            if open_stay is not None and open_stay.status == StayStatus.CHECKED_IN:
                continue
            eligible.append(booking)
        return eligible

    def list_current_guests(self) -> List[Stay]:
        return self.stay_repository.list_checked_in()

    def update_guest_preferences(
        self, stay_id: str, guest_id: str, preferences: Mapping[str, Any]
    ) -> Stay:
        stay = self._get_stay(stay_id)
        if stay.guest_id != guest_id:
            raise ForbiddenException("This stay belongs to another guest")
        if stay.status not in OPEN_STAY_STATUSES:
            raise InvalidStatusTransitionException("Stay", stay.status, OPEN_STAY_STATUSES)
        with self.transaction():
            stay.preferences = {**(stay.preferences or {}), **dict(preferences)}
            self.stay_repository.flush()
        return stay

    def get_guest_stay_status(
        self, guest_id: str, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Latest stay of a guest with its overstay position."""
        stay = self.stay_repository.get_latest_for_guest(guest_id)
        if stay is None:
            return {"stay": None, "overstay": None, "can_checkout": False}

        overstay = self.stay_repository.load_overstay(stay)
        current = None
        if stay.status == StayStatus.CHECKED_IN and not settings.skip_stay_date_validation:
            booking = self._get_booking(stay.booking_id)
            room = self.room_repository.get_by_id(stay.room_id, load_relationships=False)
            current = self.overstay_service.calculate_overstay(
                booking, room, self.resolve_now(now)
            )

        if stay.status != StayStatus.CHECKED_IN:
            can_checkout = False
        elif overstay is not None and overstay.detected:
            can_checkout = overstay.can_checkout
        else:
            can_checkout = current is None

        return {
            "stay": stay,
            "overstay": overstay.to_dict() if overstay is not None else None,
            "current_overstay": (
                {
                    "days_overstayed": current.days_overstayed,
                    "amount": current.amount,
                    "scheduled_checkout": current.scheduled_checkout,
                }
                if current is not None
                else None
            ),
            "can_checkout": can_checkout,
        }

    def generate_receipt(self, stay_id: str) -> Dict[str, Any]:
        """Itemized receipt: room nights, tax and any overstay charges."""
        stay = self._get_stay(stay_id)
        booking = self._get_booking(stay.booking_id)
        room = self.room_repository.get_by_id(stay.room_id, load_relationships=False)

        nights = booking.nights or max(
            (hotel_date(booking.check_out) - hotel_date(booking.check_in)).days, 1
        )
        room_rate = to_money(room.base_price if room and room.base_price is not None else 0)
        subtotal = to_money(room_rate * nights)
        tax = to_money(subtotal * Decimal(str(settings.receipt_tax_rate)))

        overstay_invoice = self.invoice_repository.get_overstay_for_stay(stay.id)
        overstay_charges = to_money(overstay_invoice.amount) if overstay_invoice else Decimal("0.00")

        guest = stay.guest
        return {
            "stay_id": stay.id,
            "guest_id": stay.guest_id,
            "booking_number": booking.booking_number,
            "guest_name": guest.full_name if guest is not None else None,
            "room_number": room.room_number if room else None,
            "check_in_time": stay.check_in_time,
            "check_out_time": stay.check_out_time,
            "nights": nights,
            "room_rate": room_rate,
            "subtotal": subtotal,
            "tax_rate": Decimal(str(settings.receipt_tax_rate)),
            "tax": tax,
            "overstay_charges": overstay_charges,
            "overstay_invoice_number": (
                overstay_invoice.invoice_number if overstay_invoice else None
            ),
            "total": to_money(subtotal + tax + overstay_charges),
            "currency": booking.currency or settings.currency,
        }

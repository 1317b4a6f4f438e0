# backend/innkeeper/services/overstay_service.py
"""
Overstay Billing Engine.

Detects a stay running past the booked checkout day, issues one overstay
invoice per stay, grows it as the stay keeps running, takes payment and
lets staff approve, reject or adjust the charge. The stay's overstay
record carries ``can_checkout``, the gate that check-out consults.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import OVERSTAY_LINE_ITEM_TYPE
from ..core.exceptions import (
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    InvalidStatusTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.metrics import OVERSTAY_INVOICES_TOTAL
from ..core.timezone_utils import end_of_hotel_day, ensure_utc
from ..integrations.payment_gateway import (
    REQUIRED_CARD_FIELDS,
    MockPaymentGateway,
    PaymentGateway,
    PaymentGatewayError,
)
from ..models.booking import Booking, PaymentMethod
from ..models.invoice import APPROVABLE_INVOICE_STATUSES, Invoice, InvoiceKind, InvoiceStatus
from ..models.room import Room
from ..models.stay import Overstay, OverstayPaymentStatus, Stay, StayStatus
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ONE_DAY_SECONDS = 24 * 60 * 60


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OverstayCalculation:
    """Overstay measured at one instant."""

    days_overstayed: int
    scheduled_checkout: datetime
    base_rate: Decimal
    daily_rate: Decimal
    amount: Decimal


@dataclass(frozen=True)
class OverstayPaymentResult:
    invoice: Invoice
    overstay: Overstay
    transaction_id: Optional[str] = None

    @property
    def can_checkout(self) -> bool:
        return self.overstay.can_checkout


class OverstayService(BaseService):
    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        payment_gateway: Optional[PaymentGateway] = None,
    ):
        super().__init__(db)
        self.stay_repository = RepositoryFactory.create_stay_repository(db)
        self.invoice_repository = RepositoryFactory.create_invoice_repository(db)
        self.notification_service = notification_service or NotificationService(db)
        self.payment_gateway = payment_gateway or MockPaymentGateway()

    # Calculation

    @staticmethod
    def base_rate_for(room: Optional[Room]) -> Decimal:
        if room is not None and room.base_price is not None and Decimal(room.base_price) > 0:
            return to_money(room.base_price)
        return to_money(settings.overstay_default_base_rate)

    @staticmethod
    def multiplier() -> Decimal:
        return Decimal(str(settings.overstay_multiplier))

    def calculate_overstay(
        self, booking: Booking, room: Optional[Room], now: datetime
    ) -> Optional[OverstayCalculation]:
        """
        Overstay at ``now``, or None while the guest is still within the booked days.

        The booked stay ends at the last instant of the checkout day in the
        hotel timezone; every started day past that is charged in full.
        """
        scheduled = end_of_hotel_day(booking.check_out)
        at = ensure_utc(now)
        if at <= scheduled:
            return None
        days = math.ceil((at - scheduled).total_seconds() / ONE_DAY_SECONDS)
        base_rate = self.base_rate_for(room)
        daily_rate = to_money(base_rate * self.multiplier())
        return OverstayCalculation(
            days_overstayed=days,
            scheduled_checkout=scheduled,
            base_rate=base_rate,
            daily_rate=daily_rate,
            amount=to_money(daily_rate * days),
        )

    # Invoice lifecycle

    def _line_items(self, days: int, amount: Decimal, base_rate: Decimal) -> List[Dict[str, Any]]:
        multiplier = self.multiplier()
        return [
            {
                "type": OVERSTAY_LINE_ITEM_TYPE,
                "description": f"Overstay charges ({days} day(s) at {multiplier}x room rate)",
                "quantity": days,
                "unit_price": str(to_money(base_rate * multiplier)),
                "amount": str(to_money(amount)),
                "metadata": {
                    "days_overstayed": days,
                    "base_rate": str(base_rate),
                    "multiplier": str(multiplier),
                },
            }
        ]

    def _load_stay(self, stay_id: str) -> Stay:
        stay = self.stay_repository.get_by_id(stay_id)
        if stay is None:
            raise NotFoundException(f"Stay {stay_id} not found")
        return stay

    def _load_overstay_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.invoice_repository.get_by_id(invoice_id, load_relationships=False)
        if invoice is None:
            raise NotFoundException(f"Invoice {invoice_id} not found")
        if not invoice.is_overstay:
            raise ValidationException(
                f"Invoice {invoice.invoice_number} is not an overstay invoice",
                code="NOT_OVERSTAY_INVOICE",
            )
        return invoice

    def _stay_for_invoice(self, invoice: Invoice) -> Optional[Stay]:
        if not invoice.stay_id:
            return None
        return self.stay_repository.get_by_id(invoice.stay_id, load_relationships=False)

    @BaseService.measure_operation("create_overstay_invoice")
    def create_overstay_invoice(
        self,
        stay_id: str,
        days: int,
        amount: Decimal,
        *,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """
        Issue the overstay invoice for a stay.

        Returns the existing invoice when the stay already has one.
        """
        stay = self._load_stay(stay_id)
        existing = self.invoice_repository.get_overstay_for_stay(stay.id)
        if existing is not None:
            self.logger.info(
                "Overstay invoice already exists for stay",
                extra={"stay_id": stay.id, "invoice_id": existing.id},
            )
            return existing

        at = self.resolve_now(now)
        booking = stay.booking
        base_rate = self.base_rate_for(stay.room)
        amount = to_money(amount)
        scheduled = end_of_hotel_day(booking.check_out)

        with self.transaction():
            invoice = self.invoice_repository.create(
                invoice_number=self.invoice_repository.next_overstay_invoice_number(),
                kind=InvoiceKind.OVERSTAY,
                booking_id=booking.id,
                stay_id=stay.id,
                user_id=stay.guest_id,
                amount=amount,
                currency=settings.currency,
                status=InvoiceStatus.AWAITING_APPROVAL,
                payment_method=PaymentMethod.CASH.value,
                items=self._line_items(days, amount, base_rate),
                overstay_tracking={
                    "original_checkout": ensure_utc(booking.check_out).isoformat(),
                    "current_checkout": at.isoformat(),
                    "days_overstayed": days,
                    "daily_rate": str(to_money(base_rate * self.multiplier())),
                    "calculated_charges": str(amount),
                    "accumulated_charges": str(amount),
                    "last_updated_at": at.isoformat(),
                    "admin_adjusted": False,
                    "adjustment_delta": "0.00",
                    "adjusted_by": None,
                    "adjustment_notes": None,
                },
                issued_at=at,
                due_date=at + timedelta(hours=settings.overstay_invoice_due_hours),
                status_notes=[
                    {
                        "at": at.isoformat(),
                        "by": None,
                        "text": f"Overstay of {days} day(s) detected; charge {amount}",
                    }
                ],
            )
            overstay = self.stay_repository.load_overstay(stay) or Overstay(
                detected=True, detected_at=at, scheduled_checkout=scheduled
            )
            overstay = overstay.evolve(
                detected=True,
                days_overstayed=days,
                scheduled_checkout=overstay.scheduled_checkout or scheduled,
                charge_amount=amount,
                payment_method=PaymentMethod.CASH.value,
                payment_status=OverstayPaymentStatus.PENDING_APPROVAL.value,
                invoice_id=invoice.id,
                can_checkout=False,
            )
            self.stay_repository.save_overstay(stay, overstay)

        OVERSTAY_INVOICES_TOTAL.labels(action="created").inc()
        self.log_operation(
            "overstay_invoice_created",
            stay_id=stay.id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            days_overstayed=days,
            amount=str(amount),
        )
        self._notify(
            stay.guest_id,
            "overstay_charges_created",
            {
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "days_overstayed": days,
                "amount": amount,
                "currency": invoice.currency,
            },
        )
        return invoice

    @BaseService.measure_operation("update_overstay_invoice")
    def update_overstay_invoice(
        self,
        stay_id: str,
        new_days: int,
        new_amount: Decimal,
        *,
        now: Optional[datetime] = None,
    ) -> Tuple[Invoice, bool]:
        """
        Grow the overstay invoice when the stay has run more days.

        Charges never shrink here; a count at or below the recorded one is a
        no-op and returns ``(invoice, False)``. A staff adjustment is carried
        forward as a delta on top of the recalculated daily-rate charge.
        """
        invoice = self.invoice_repository.get_overstay_for_stay(stay_id)
        if invoice is None:
            raise NotFoundException(f"No overstay invoice for stay {stay_id}")

        tracking = dict(invoice.overstay_tracking or {})
        recorded_days = int(tracking.get("days_overstayed") or 0)
        if new_days <= recorded_days:
            return invoice, False
        if invoice.status == InvoiceStatus.PAID:
            self.logger.info(
                "Overstay invoice already paid; not extending",
                extra={"invoice_id": invoice.id, "stay_id": stay_id},
            )
            return invoice, False

        at = self.resolve_now(now)
        stay = self._load_stay(stay_id)
        base_rate = self.base_rate_for(stay.room)
        previous_amount = to_money(invoice.amount)
        calculated = to_money(new_amount)
        new_amount = calculated
        if tracking.get("admin_adjusted"):
            new_amount = to_money(calculated + Decimal(tracking.get("adjustment_delta") or "0"))
        new_amount = max(new_amount, previous_amount)

        with self.transaction():
            invoice.amount = new_amount
            invoice.items = self._line_items(new_days, new_amount, base_rate)
            tracking.update(
                {
                    "current_checkout": at.isoformat(),
                    "days_overstayed": new_days,
                    "calculated_charges": str(calculated),
                    "accumulated_charges": str(new_amount),
                    "last_updated_at": at.isoformat(),
                }
            )
            invoice.overstay_tracking = tracking
            invoice.add_status_note(
                f"Overstay extended from {recorded_days} to {new_days} day(s); "
                f"charge {previous_amount} -> {new_amount}",
                at,
            )
            overstay = self.stay_repository.load_overstay(stay)
            if overstay is not None:
                self.stay_repository.save_overstay(
                    stay, overstay.evolve(days_overstayed=new_days, charge_amount=new_amount)
                )
            self.invoice_repository.flush()

        OVERSTAY_INVOICES_TOTAL.labels(action="updated").inc()
        self.log_operation(
            "overstay_invoice_updated",
            invoice_id=invoice.id,
            previous_days=recorded_days,
            days_overstayed=new_days,
            amount=str(new_amount),
        )
        self._notify(
            invoice.user_id,
            "overstay_charges_updated",
            {
                "invoice_id": invoice.id,
                "days_overstayed": new_days,
                "previous_amount": previous_amount,
                "amount": new_amount,
            },
        )
        return invoice, True

    # Payment

    @BaseService.measure_operation("process_overstay_payment")
    def process_overstay_payment(
        self,
        stay_id: str,
        guest_id: str,
        payment_method: str,
        amount: Decimal,
        card: Optional[Mapping[str, Any]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> OverstayPaymentResult:
        """
        Take a guest's overstay payment.

        Card payments settle immediately and open the checkout gate. Bank
        transfers and cash wait for staff approval.
        """
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationException(
                f"Unsupported payment method: {payment_method}", code="INVALID_PAYMENT_METHOD"
            )
        if method == PaymentMethod.CARD:
            missing = [name for name in REQUIRED_CARD_FIELDS if not (card or {}).get(name)]
            if missing:
                raise ValidationException(
                    f"Card details missing: {', '.join(missing)}",
                    code="CARD_DETAILS_REQUIRED",
                    details={"missing": missing},
                )

        stay = self._load_stay(stay_id)
        if stay.guest_id != guest_id:
            raise ForbiddenException("This stay belongs to another guest")
        if stay.status != StayStatus.CHECKED_IN:
            raise InvalidStatusTransitionException("Stay", stay.status, StayStatus.CHECKED_IN)

        at = self.resolve_now(now)
        calculation = self.calculate_overstay(stay.booking, stay.room, at)
        if calculation is None:
            raise ValidationException("No overstay charges apply to this stay", code="NO_OVERSTAY")

        invoice = self.invoice_repository.get_overstay_for_stay(stay.id)
        if invoice is None:
            invoice = self.create_overstay_invoice(
                stay.id, calculation.days_overstayed, calculation.amount, now=at
            )
        else:
            invoice, _ = self.update_overstay_invoice(
                stay.id, calculation.days_overstayed, calculation.amount, now=at
            )
        if invoice.status == InvoiceStatus.PAID:
            raise ConflictException(
                f"Overstay invoice {invoice.invoice_number} is already paid",
                code="INVOICE_ALREADY_PAID",
            )

        expected = to_money(invoice.amount)
        submitted = to_money(amount)
        if expected > 0 and abs(submitted - expected) / expected > Decimal(
            str(settings.overstay_amount_variance)
        ):
            self.logger.warning(
                "Submitted overstay amount differs from invoice",
                extra={
                    "stay_id": stay.id,
                    "invoice_id": invoice.id,
                    "submitted": str(submitted),
                    "expected": str(expected),
                },
            )

        transaction_id: Optional[str] = None
        if method == PaymentMethod.CARD:
            try:
                result = self.payment_gateway.authorize_payment(
                    amount=expected,
                    currency=invoice.currency,
                    method=method.value,
                    details=card,
                )
            except PaymentGatewayError as e:
                raise ValidationException(str(e), code="PAYMENT_DECLINED")
            if not result.approved:
                raise BusinessRuleException(
                    "Card payment was not authorized", code="PAYMENT_DECLINED"
                )
            transaction_id = result.transaction_id
            payment_status = OverstayPaymentStatus.COMPLETED
            invoice_status = InvoiceStatus.PAID
            can_checkout = True
        elif method == PaymentMethod.BANK:
            payment_status = OverstayPaymentStatus.PENDING_VERIFICATION
            invoice_status = InvoiceStatus.AWAITING_APPROVAL
            can_checkout = False
        else:
            payment_status = OverstayPaymentStatus.PENDING_APPROVAL
            invoice_status = InvoiceStatus.AWAITING_APPROVAL
            can_checkout = False

        with self.transaction():
            invoice.status = invoice_status
            invoice.payment_method = method.value
            if invoice_status == InvoiceStatus.PAID:
                invoice.paid_at = at
            invoice.add_status_note(
                f"{method.value} payment of {submitted} submitted"
                + (f" (transaction {transaction_id})" if transaction_id else ""),
                at,
                guest_id,
            )
            overstay = self.stay_repository.load_overstay(stay) or Overstay(detected=True)
            overstay = overstay.evolve(
                payment_method=method.value,
                payment_status=payment_status.value,
                invoice_id=invoice.id,
                can_checkout=can_checkout,
                payment_submitted_at=at,
            )
            self.stay_repository.save_overstay(stay, overstay)
            self.invoice_repository.flush()

        self.log_operation(
            "overstay_payment_submitted",
            stay_id=stay.id,
            invoice_id=invoice.id,
            method=method.value,
            payment_status=payment_status.value,
        )
        self._notify(
            guest_id,
            "overstay_payment_submitted",
            {
                "invoice_id": invoice.id,
                "payment_method": method.value,
                "payment_status": payment_status.value,
                "amount": submitted,
            },
        )
        return OverstayPaymentResult(invoice=invoice, overstay=overstay, transaction_id=transaction_id)

    # Staff review

    def _check_reviewable(self, invoice: Invoice) -> None:
        if invoice.status == InvoiceStatus.PAID:
            raise ConflictException(
                f"Overstay invoice {invoice.invoice_number} is already approved",
                code="INVOICE_ALREADY_PAID",
            )
        if invoice.status not in APPROVABLE_INVOICE_STATUSES:
            raise BusinessRuleException(
                f"Overstay invoice {invoice.invoice_number} cannot be reviewed "
                f"in status {getattr(invoice.status, 'value', invoice.status)}",
                code="INVOICE_NOT_REVIEWABLE",
            )

    def _update_gate(self, invoice: Invoice, **changes: Any) -> Optional[Overstay]:
        stay = self._stay_for_invoice(invoice)
        if stay is None:
            self.logger.warning(
                "Overstay invoice has no stay to update", extra={"invoice_id": invoice.id}
            )
            return None
        overstay = (self.stay_repository.load_overstay(stay) or Overstay(detected=True)).evolve(
            invoice_id=invoice.id, **changes
        )
        self.stay_repository.save_overstay(stay, overstay)
        return overstay

    @BaseService.measure_operation("approve_overstay_payment")
    def approve_overstay_payment(
        self,
        invoice_id: str,
        actor_id: str,
        notes: str = "",
        *,
        now: Optional[datetime] = None,
    ) -> Invoice:
        invoice = self._load_overstay_invoice(invoice_id)
        self._check_reviewable(invoice)

        at = self.resolve_now(now)
        with self.transaction():
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = at
            invoice.payment_approval = {
                **(invoice.payment_approval or {}),
                "approval_status": "approved",
                "approved_by": actor_id,
                "approved_at": at.isoformat(),
                "approval_notes": notes or None,
            }
            invoice.add_status_note("Overstay payment approved", at, actor_id)
            self._update_gate(
                invoice, payment_status=OverstayPaymentStatus.APPROVED.value, can_checkout=True
            )
            self.invoice_repository.flush()

        OVERSTAY_INVOICES_TOTAL.labels(action="approved").inc()
        self.log_operation("overstay_payment_approved", invoice_id=invoice.id, actor_id=actor_id)
        self._notify(
            invoice.user_id,
            "overstay_payment_approved",
            {"invoice_id": invoice.id, "amount": invoice.amount, "notes": notes},
        )
        return invoice

    @BaseService.measure_operation("reject_overstay_payment")
    def reject_overstay_payment(
        self,
        invoice_id: str,
        actor_id: str,
        reason: str = "",
        *,
        now: Optional[datetime] = None,
    ) -> Invoice:
        invoice = self._load_overstay_invoice(invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            raise ConflictException(
                f"Overstay invoice {invoice.invoice_number} is paid; "
                "correct it through an invoice status change",
                code="INVOICE_ALREADY_PAID",
            )
        self._check_reviewable(invoice)

        at = self.resolve_now(now)
        with self.transaction():
            invoice.status = InvoiceStatus.FAILED
            invoice.payment_approval = {
                **(invoice.payment_approval or {}),
                "approval_status": "rejected",
                "rejected_by": actor_id,
                "rejection_reason": reason or None,
                "rejected_at": at.isoformat(),
            }
            invoice.add_status_note(
                f"Overstay payment rejected{': ' + reason if reason else ''}", at, actor_id
            )
            self._update_gate(
                invoice, payment_status=OverstayPaymentStatus.REJECTED.value, can_checkout=False
            )
            self.invoice_repository.flush()

        OVERSTAY_INVOICES_TOTAL.labels(action="rejected").inc()
        self.log_operation("overstay_payment_rejected", invoice_id=invoice.id, actor_id=actor_id)
        self._notify(
            invoice.user_id,
            "overstay_payment_rejected",
            {"invoice_id": invoice.id, "reason": reason},
        )
        return invoice

    @BaseService.measure_operation("adjust_overstay_charges")
    def adjust_overstay_charges(
        self,
        invoice_id: str,
        actor_id: str,
        new_amount: Decimal,
        notes: str = "",
        *,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """Staff override of the overstay charge."""
        if new_amount is None or Decimal(str(new_amount)) < 0:
            raise ValidationException("Adjusted amount must not be negative", code="INVALID_AMOUNT")
        invoice = self._load_overstay_invoice(invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            raise ConflictException(
                f"Overstay invoice {invoice.invoice_number} is already paid",
                code="INVOICE_ALREADY_PAID",
            )

        at = self.resolve_now(now)
        amount = to_money(new_amount)
        previous_amount = to_money(invoice.amount)
        tracking = dict(invoice.overstay_tracking or {})
        days = int(tracking.get("days_overstayed") or 0)
        calculated = to_money(Decimal(str(tracking.get("calculated_charges") or previous_amount)))
        stay = self._stay_for_invoice(invoice)

        with self.transaction():
            invoice.amount = amount
            invoice.items = self._line_items(
                days, amount, self.base_rate_for(stay.room if stay is not None else None)
            )
            tracking.update(
                {
                    "accumulated_charges": str(amount),
                    "last_updated_at": at.isoformat(),
                    "admin_adjusted": True,
                    "adjustment_delta": str(amount - calculated),
                    "adjusted_by": actor_id,
                    "adjustment_notes": notes or None,
                }
            )
            invoice.overstay_tracking = tracking
            invoice.add_status_note(
                f"Overstay charge adjusted {previous_amount} -> {amount}", at, actor_id
            )
            self._update_gate(invoice, charge_amount=amount)
            self.invoice_repository.flush()

        OVERSTAY_INVOICES_TOTAL.labels(action="adjusted").inc()
        self.log_operation(
            "overstay_charges_adjusted",
            invoice_id=invoice.id,
            actor_id=actor_id,
            previous_amount=str(previous_amount),
            amount=str(amount),
        )
        self._notify(
            invoice.user_id,
            "overstay_charges_adjusted",
            {
                "invoice_id": invoice.id,
                "previous_amount": previous_amount,
                "amount": amount,
                "notes": notes,
            },
        )
        return invoice

    # Queries

    def get_pending_overstay_invoices(self) -> List[Invoice]:
        return self.invoice_repository.list_pending_overstay()

    def get_guest_overstay_invoices(self, user_id: str) -> List[Invoice]:
        return self.invoice_repository.list_overstay_for_user(user_id)

    def _notify(self, user_id: str, notification_type: str, metadata: Dict[str, Any]) -> None:
        with self.best_effort("notify", user_id=user_id, notification_type=notification_type):
            self.notification_service.send_notification(
                user_id, notification_type, metadata=metadata
            )

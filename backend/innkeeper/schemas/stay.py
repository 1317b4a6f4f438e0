"""Request and response schemas for check-in, check-out and stay queries."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import Money, StandardizedModel, StrictModel
from .key_card import KeyCardResponse


class DocumentInput(StrictModel):
    type: str = Field(min_length=1, description="Identity document type, e.g. passport")
    number: str = Field(min_length=1)
    issuing_country: Optional[str] = None
    expiry_date: Optional[str] = None


class CheckInRequest(StrictModel):
    booking_id: str
    guest_id: str
    room_id: str
    document: DocumentInput
    attachments: List[str] = Field(default_factory=list)
    preferences: Optional[Dict[str, Any]] = None
    emergency_contact: Optional[Dict[str, Any]] = None


class GuestCheckInRequest(StrictModel):
    document: DocumentInput


class CheckOutRequest(StrictModel):
    damage_report: Optional[str] = None
    key_card_returned: bool = True


class PreferencesUpdateRequest(StrictModel):
    preferences: Dict[str, Any]


class StayResponse(StandardizedModel):
    id: str
    booking_id: str
    guest_id: str
    room_id: str
    status: str
    key_card_id: Optional[str] = None
    key_card_number: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    checked_out_by: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None
    emergency_contact: Optional[Dict[str, Any]] = None
    special_requests: Optional[str] = None
    damage_report: Optional[str] = None
    key_card_returned: bool = False
    overstay: Optional[Dict[str, Any]] = None


class CheckInResponse(StandardizedModel):
    stay: StayResponse
    key_card: KeyCardResponse


class CheckOutResponse(StandardizedModel):
    stay: StayResponse
    is_early_checkout: bool
    cleaning_task_id: Optional[str] = None


class PaymentRequiredResponse(StandardizedModel):
    message: str = "Overstay charges must be settled before check-out"
    code: str = "PAYMENT_REQUIRED"
    days_overstayed: int
    invoice_id: str
    amount: Money


class EligibleBookingResponse(StandardizedModel):
    id: str
    booking_number: str
    room_id: str
    check_in: datetime
    check_out: datetime
    status: str
    nights: Optional[int] = None


class ReceiptResponse(StandardizedModel):
    stay_id: str
    guest_id: str
    booking_number: str
    guest_name: Optional[str] = None
    room_number: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    nights: int
    room_rate: Money
    subtotal: Money
    tax_rate: Money
    tax: Money
    overstay_charges: Money
    overstay_invoice_number: Optional[str] = None
    total: Money
    currency: str

"""Overstay payment and review schemas."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from ..models.booking import PaymentMethod
from .base import Money, StandardizedModel, StrictModel
from .invoice import InvoiceResponse


class CardDetails(StrictModel):
    number: str = Field(min_length=12, max_length=19)
    expiry: str
    cvv: str = Field(min_length=3, max_length=4)
    holder_name: str = Field(min_length=1)


class OverstayPaymentRequest(StrictModel):
    payment_method: PaymentMethod
    amount: Money
    card: Optional[CardDetails] = None


class OverstayApprovalRequest(StrictModel):
    notes: str = ""


class OverstayRejectionRequest(StrictModel):
    reason: str = ""


class OverstayAdjustmentRequest(StrictModel):
    amount: Money
    notes: str = ""


class OverstayPaymentResponse(StandardizedModel):
    invoice: InvoiceResponse
    overstay: Dict[str, Any]
    can_checkout: bool
    transaction_id: Optional[str] = None

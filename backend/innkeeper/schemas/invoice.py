"""Invoice schemas shared by the synchronizer and overstay routes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from ..models.invoice import InvoiceStatus
from .base import Money, StandardizedModel, StrictModel


class InvoiceStatusUpdateRequest(StrictModel):
    status: InvoiceStatus
    reason: Optional[str] = None


class InvoiceResponse(StandardizedModel):
    id: str
    invoice_number: str
    kind: str
    booking_id: str
    stay_id: Optional[str] = None
    user_id: str
    amount: Money
    currency: str
    status: str
    payment_method: Optional[str] = None
    items: List[Dict[str, Any]] = Field(default_factory=list)
    overstay_tracking: Optional[Dict[str, Any]] = None
    payment_approval: Optional[Dict[str, Any]] = None
    status_notes: List[Dict[str, Any]] = Field(default_factory=list)
    issued_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    paid_at: Optional[datetime] = None

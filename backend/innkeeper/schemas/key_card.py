"""Key card schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..models.key_card import KeyCardStatus
from .base import StandardizedModel, StrictModel


class KeyCardCreateRequest(StrictModel):
    card_number: str = Field(min_length=1, max_length=32)
    card_type: str = "standard"


class KeyCardStatusUpdateRequest(StrictModel):
    status: KeyCardStatus
    reason: Optional[str] = None


class KeyCardResponse(StandardizedModel):
    id: str
    card_number: str
    card_type: str
    status: str
    assigned_to: Optional[str] = None
    assigned_room: Optional[str] = None
    activation_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    previous_status: Optional[str] = None
    status_changed_by: Optional[str] = None
    status_changed_at: Optional[datetime] = None
    status_change_reason: Optional[str] = None


class KeyCardStatusChangeResponse(StandardizedModel):
    previous_status: Optional[str] = None
    new_status: str
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    changed_at: Optional[datetime] = None


class KeyCardDetailResponse(StandardizedModel):
    card: KeyCardResponse
    history: List[KeyCardStatusChangeResponse] = Field(default_factory=list)
    stay_id: Optional[str] = None
    guest_id: Optional[str] = None

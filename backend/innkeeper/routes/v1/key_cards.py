"""
Key card routes - API v1

Staff-only inventory endpoints under /api/v1/key-cards.

Endpoints:
    GET   /                    → List cards, optionally by status
    POST  /                    → Register a new (inactive) card
    GET   /available           → Cards free to issue
    GET   /{card_id}           → Card, audit history and current holder
    PATCH /{card_id}/status    → Audited status change
"""

import asyncio
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies.auth import require_staff
from ...api.dependencies.services import get_key_card_service
from ...core.exceptions import DomainException
from ...models.key_card import KeyCardStatus
from ...models.user import User
from ...schemas.key_card import (
    KeyCardCreateRequest,
    KeyCardDetailResponse,
    KeyCardResponse,
    KeyCardStatusChangeResponse,
    KeyCardStatusUpdateRequest,
)
from ...services.key_card_service import KeyCardService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["key-cards-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("", response_model=List[KeyCardResponse])
async def list_key_cards(
    card_status: Optional[KeyCardStatus] = Query(default=None, alias="status"),
    staff: User = Depends(require_staff),
    service: KeyCardService = Depends(get_key_card_service),
) -> List[KeyCardResponse]:
    cards = await asyncio.to_thread(service.list_cards, card_status)
    return [KeyCardResponse.model_validate(card) for card in cards]


@router.post("", response_model=KeyCardResponse, status_code=status.HTTP_201_CREATED)
async def create_key_card(
    payload: KeyCardCreateRequest,
    staff: User = Depends(require_staff),
    service: KeyCardService = Depends(get_key_card_service),
) -> KeyCardResponse:
    try:
        card = await asyncio.to_thread(service.create_card, payload.card_number, payload.card_type)
        return KeyCardResponse.model_validate(card)
    except DomainException as exc:
        handle_domain_exception(exc)


@router.get("/available", response_model=List[KeyCardResponse])
async def list_available_key_cards(
    staff: User = Depends(require_staff),
    service: KeyCardService = Depends(get_key_card_service),
) -> List[KeyCardResponse]:
    cards = await asyncio.to_thread(service.list_available)
    return [KeyCardResponse.model_validate(card) for card in cards]


@router.get("/{card_id}", response_model=KeyCardDetailResponse)
async def get_key_card(
    card_id: str,
    staff: User = Depends(require_staff),
    service: KeyCardService = Depends(get_key_card_service),
) -> KeyCardDetailResponse:
    try:
        details = await asyncio.to_thread(service.get_card_details, card_id)
    except DomainException as exc:
        handle_domain_exception(exc)

    stay = details["stay"]
    return KeyCardDetailResponse(
        card=KeyCardResponse.model_validate(details["card"]),
        history=[KeyCardStatusChangeResponse.model_validate(row) for row in details["history"]],
        stay_id=stay.id if stay else None,
        guest_id=stay.guest_id if stay else None,
    )


@router.patch("/{card_id}/status", response_model=KeyCardResponse)
async def update_key_card_status(
    card_id: str,
    payload: KeyCardStatusUpdateRequest,
    staff: User = Depends(require_staff),
    service: KeyCardService = Depends(get_key_card_service),
) -> KeyCardResponse:
    """Mark a card lost, damaged, expired or inactive."""
    try:
        card = await asyncio.to_thread(
            service.set_status, card_id, payload.status, staff.id, payload.reason
        )
        return KeyCardResponse.model_validate(card)
    except DomainException as exc:
        handle_domain_exception(exc)

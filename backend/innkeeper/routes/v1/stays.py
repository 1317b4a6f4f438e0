"""
Stay routes - API v1

Front-desk and guest endpoints under /api/v1/stays.
All business logic delegated to StayService.

Endpoints:
    POST /check-in                     → Staff check-in at the desk
    GET  /current                      → Guests currently in house (staff)
    GET  /eligible-bookings            → Bookings the caller can check in to today
    GET  /me                           → Caller's latest stay and overstay position
    POST /{stay_id}/complete-check-in  → Guest self-service check-in
    POST /{stay_id}/check-out          → Check-out; 402 while overstay charges are unpaid
    POST /{stay_id}/no-show            → Close a pre-checkin stay as no-show (staff)
    PUT  /{stay_id}/preferences        → Update guest preferences
    GET  /{stay_id}/receipt            → Itemized receipt
"""

import asyncio
import logging
from typing import Any, Dict, List, NoReturn, Union

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from ...api.dependencies.auth import get_current_user, require_staff
from ...api.dependencies.services import get_stay_service
from ...core.exceptions import DomainException
from ...models.user import User
from ...schemas.key_card import KeyCardResponse
from ...schemas.stay import (
    CheckInRequest,
    CheckInResponse,
    CheckOutRequest,
    CheckOutResponse,
    EligibleBookingResponse,
    GuestCheckInRequest,
    PaymentRequiredResponse,
    PreferencesUpdateRequest,
    ReceiptResponse,
    StayResponse,
)
from ...services.stay_service import CheckInResult, PaymentRequired, StayService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["stays-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _internal_error(operation: str, exc: Exception) -> HTTPException:
    logger.error("Unexpected error in %s: %s", operation, exc, exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"An error occurred during {operation.replace('_', ' ')}",
    )


def _check_in_response(result: CheckInResult) -> CheckInResponse:
    return CheckInResponse(
        stay=StayResponse.model_validate(result.stay),
        key_card=KeyCardResponse.model_validate(result.key_card),
    )


@router.post("/check-in", response_model=CheckInResponse, status_code=status.HTTP_201_CREATED)
async def check_in(
    payload: CheckInRequest,
    staff: User = Depends(require_staff),
    service: StayService = Depends(get_stay_service),
) -> CheckInResponse:
    """Check a guest in at the front desk and issue a key card."""
    try:
        result = await asyncio.to_thread(
            service.check_in,
            payload.booking_id,
            payload.guest_id,
            payload.room_id,
            payload.document.model_dump(),
            payload.attachments,
            staff.id,
            payload.preferences,
            payload.emergency_contact,
        )
        return _check_in_response(result)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("check_in", e)


@router.get("/current", response_model=List[StayResponse])
async def list_current_guests(
    staff: User = Depends(require_staff),
    service: StayService = Depends(get_stay_service),
) -> List[StayResponse]:
    try:
        stays = await asyncio.to_thread(service.list_current_guests)
        return [StayResponse.model_validate(stay) for stay in stays]
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("list_current_guests", e)


@router.get("/eligible-bookings", response_model=List[EligibleBookingResponse])
async def get_eligible_bookings(
    current_user: User = Depends(get_current_user),
    service: StayService = Depends(get_stay_service),
) -> List[EligibleBookingResponse]:
    try:
        bookings = await asyncio.to_thread(service.get_eligible_bookings, current_user.id)
        return [EligibleBookingResponse.model_validate(booking) for booking in bookings]
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("get_eligible_bookings", e)


@router.get("/me")
async def get_my_stay_status(
    current_user: User = Depends(get_current_user),
    service: StayService = Depends(get_stay_service),
) -> Dict[str, Any]:
    """Latest stay of the caller, the recorded overstay and whether check-out is open."""
    try:
        result = await asyncio.to_thread(service.get_guest_stay_status, current_user.id)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("get_guest_stay_status", e)

    stay = result["stay"]
    current = result.get("current_overstay")
    return {
        "stay": StayResponse.model_validate(stay).model_dump(mode="json") if stay else None,
        "overstay": result["overstay"],
        "current_overstay": (
            {
                "days_overstayed": current["days_overstayed"],
                "amount": float(current["amount"]),
                "scheduled_checkout": current["scheduled_checkout"].isoformat(),
            }
            if current
            else None
        ),
        "can_checkout": result["can_checkout"],
    }


@router.post("/{stay_id}/complete-check-in", response_model=CheckInResponse)
async def complete_guest_check_in(
    stay_id: str,
    payload: GuestCheckInRequest,
    current_user: User = Depends(get_current_user),
    service: StayService = Depends(get_stay_service),
) -> CheckInResponse:
    """Guest self-service check-in from the pre-checkin record."""
    try:
        result = await asyncio.to_thread(
            service.complete_guest_check_in,
            stay_id,
            current_user.id,
            payload.document.model_dump(),
        )
        return _check_in_response(result)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("complete_guest_check_in", e)


@router.post(
    "/{stay_id}/check-out",
    response_model=CheckOutResponse,
    responses={402: {"model": PaymentRequiredResponse}},
)
async def check_out(
    stay_id: str,
    payload: CheckOutRequest,
    staff: User = Depends(require_staff),
    service: StayService = Depends(get_stay_service),
) -> Union[CheckOutResponse, JSONResponse]:
    """
    Check a guest out.

    Responds 402 with the overstay amount while the overstay invoice is
    unpaid; the stay stays checked in.
    """
    try:
        result = await asyncio.to_thread(
            service.check_out,
            stay_id,
            staff.id,
            payload.damage_report,
            payload.key_card_returned,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("check_out", e)

    if isinstance(result, PaymentRequired):
        body = PaymentRequiredResponse(
            days_overstayed=result.days_overstayed,
            invoice_id=result.invoice_id,
            amount=result.amount,
        )
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content=body.model_dump(mode="json"),
        )

    return CheckOutResponse(
        stay=StayResponse.model_validate(result.stay),
        is_early_checkout=result.is_early_checkout,
        cleaning_task_id=result.cleaning_task_id,
    )


@router.post("/{stay_id}/no-show", response_model=StayResponse)
async def mark_no_show(
    stay_id: str,
    staff: User = Depends(require_staff),
    service: StayService = Depends(get_stay_service),
) -> StayResponse:
    try:
        stay = await asyncio.to_thread(service.mark_no_show, stay_id, staff.id)
        return StayResponse.model_validate(stay)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("mark_no_show", e)


@router.put("/{stay_id}/preferences", response_model=StayResponse)
async def update_preferences(
    stay_id: str,
    payload: PreferencesUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: StayService = Depends(get_stay_service),
) -> StayResponse:
    try:
        stay = await asyncio.to_thread(
            service.update_guest_preferences, stay_id, current_user.id, payload.preferences
        )
        return StayResponse.model_validate(stay)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("update_guest_preferences", e)


@router.get("/{stay_id}/receipt", response_model=ReceiptResponse)
async def get_receipt(
    stay_id: str,
    current_user: User = Depends(get_current_user),
    service: StayService = Depends(get_stay_service),
) -> ReceiptResponse:
    try:
        receipt = await asyncio.to_thread(service.generate_receipt, stay_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("generate_receipt", e)

    if not current_user.is_staff and receipt["guest_id"] != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This stay belongs to another guest",
        )
    return ReceiptResponse(**receipt)

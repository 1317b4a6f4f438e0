"""
Overstay routes - API v1

Overstay payment and staff review endpoints under /api/v1/overstay.
All business logic delegated to OverstayService.

Endpoints:
    GET  /invoices/pending                 → Overstay invoices awaiting review (staff)
    GET  /invoices/mine                    → Caller's overstay invoices
    POST /invoices/{invoice_id}/approve    → Approve a submitted payment (staff)
    POST /invoices/{invoice_id}/reject     → Reject a submitted payment (staff)
    POST /invoices/{invoice_id}/adjust     → Override the overstay charge (staff)
    POST /{stay_id}/payment                → Guest submits an overstay payment
"""

import asyncio
import logging
from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, status

from ...api.dependencies.auth import get_current_user, require_staff
from ...api.dependencies.services import get_overstay_service
from ...core.exceptions import DomainException
from ...models.user import User
from ...schemas.invoice import InvoiceResponse
from ...schemas.overstay import (
    OverstayAdjustmentRequest,
    OverstayApprovalRequest,
    OverstayPaymentRequest,
    OverstayPaymentResponse,
    OverstayRejectionRequest,
)
from ...services.overstay_service import OverstayService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["overstay-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/invoices/pending", response_model=List[InvoiceResponse])
async def list_pending_overstay_invoices(
    staff: User = Depends(require_staff),
    service: OverstayService = Depends(get_overstay_service),
) -> List[InvoiceResponse]:
    try:
        invoices = await asyncio.to_thread(service.get_pending_overstay_invoices)
        return [InvoiceResponse.model_validate(invoice) for invoice in invoices]
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error listing pending overstay invoices: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred retrieving overstay invoices",
        )


@router.get("/invoices/mine", response_model=List[InvoiceResponse])
async def list_my_overstay_invoices(
    current_user: User = Depends(get_current_user),
    service: OverstayService = Depends(get_overstay_service),
) -> List[InvoiceResponse]:
    try:
        invoices = await asyncio.to_thread(service.get_guest_overstay_invoices, current_user.id)
        return [InvoiceResponse.model_validate(invoice) for invoice in invoices]
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error listing guest overstay invoices: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred retrieving overstay invoices",
        )


@router.post("/invoices/{invoice_id}/approve", response_model=InvoiceResponse)
async def approve_overstay_payment(
    invoice_id: str,
    payload: OverstayApprovalRequest,
    staff: User = Depends(require_staff),
    service: OverstayService = Depends(get_overstay_service),
) -> InvoiceResponse:
    """Approve a bank-transfer or cash payment; opens the checkout gate."""
    try:
        invoice = await asyncio.to_thread(
            service.approve_overstay_payment, invoice_id, staff.id, payload.notes
        )
        return InvoiceResponse.model_validate(invoice)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error approving overstay payment: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred approving the payment",
        )


@router.post("/invoices/{invoice_id}/reject", response_model=InvoiceResponse)
async def reject_overstay_payment(
    invoice_id: str,
    payload: OverstayRejectionRequest,
    staff: User = Depends(require_staff),
    service: OverstayService = Depends(get_overstay_service),
) -> InvoiceResponse:
    try:
        invoice = await asyncio.to_thread(
            service.reject_overstay_payment, invoice_id, staff.id, payload.reason
        )
        return InvoiceResponse.model_validate(invoice)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error rejecting overstay payment: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred rejecting the payment",
        )


@router.post("/invoices/{invoice_id}/adjust", response_model=InvoiceResponse)
async def adjust_overstay_charges(
    invoice_id: str,
    payload: OverstayAdjustmentRequest,
    staff: User = Depends(require_staff),
    service: OverstayService = Depends(get_overstay_service),
) -> InvoiceResponse:
    try:
        invoice = await asyncio.to_thread(
            service.adjust_overstay_charges, invoice_id, staff.id, payload.amount, payload.notes
        )
        return InvoiceResponse.model_validate(invoice)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error adjusting overstay charges: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred adjusting the charges",
        )


@router.post("/{stay_id}/payment", response_model=OverstayPaymentResponse)
async def submit_overstay_payment(
    stay_id: str,
    payload: OverstayPaymentRequest,
    current_user: User = Depends(get_current_user),
    service: OverstayService = Depends(get_overstay_service),
) -> OverstayPaymentResponse:
    """
    Pay overstay charges.

    Card payments settle at once. Bank transfers and cash wait for staff
    approval before the guest can check out.
    """
    try:
        result = await asyncio.to_thread(
            service.process_overstay_payment,
            stay_id,
            current_user.id,
            payload.payment_method,
            payload.amount,
            payload.card.model_dump() if payload.card else None,
        )
        return OverstayPaymentResponse(
            invoice=InvoiceResponse.model_validate(result.invoice),
            overstay=result.overstay.to_dict(),
            can_checkout=result.can_checkout,
            transaction_id=result.transaction_id,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error processing overstay payment: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred processing the payment",
        )

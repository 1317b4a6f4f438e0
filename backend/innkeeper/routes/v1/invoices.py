"""
Invoice routes - API v1

Endpoints:
    POST /{invoice_id}/status  → Set invoice status and sync the booking or checkout gate (staff)
"""

import asyncio
import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, status

from ...api.dependencies.auth import require_staff
from ...api.dependencies.services import get_invoice_sync_service
from ...core.exceptions import DomainException
from ...models.user import User
from ...schemas.invoice import InvoiceResponse, InvoiceStatusUpdateRequest
from ...services.invoice_sync_service import InvoiceSyncService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["invoices-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/{invoice_id}/status", response_model=InvoiceResponse)
async def update_invoice_status(
    invoice_id: str,
    payload: InvoiceStatusUpdateRequest,
    staff: User = Depends(require_staff),
    service: InvoiceSyncService = Depends(get_invoice_sync_service),
) -> InvoiceResponse:
    try:
        invoice = await asyncio.to_thread(
            service.apply_status, invoice_id, payload.status, staff.id, payload.reason
        )
        return InvoiceResponse.model_validate(invoice)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error updating invoice status: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred updating the invoice",
        )

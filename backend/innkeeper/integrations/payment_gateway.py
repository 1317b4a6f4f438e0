"""
Payment gateway contract used by overstay billing.

Only the contract lives here. ``MockPaymentGateway`` approves card
authorizations that carry complete card details and leaves bank and cash
payments pending for manual verification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from typing import Any, Dict, Mapping, Optional, Protocol
from uuid import uuid4

REQUIRED_CARD_FIELDS = ("number", "expiry", "cvv", "holder_name")


class PaymentGatewayError(Exception):
    """Raised when the gateway refuses or cannot process a request."""


@dataclass(frozen=True)
class PaymentResult:
    transaction_id: str
    status: str  # authorized | pending | refunded | declined
    amount: Decimal
    currency: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def approved(self) -> bool:
        return self.status in {"authorized", "refunded"}


class PaymentGateway(Protocol):
    def authorize_payment(
        self,
        *,
        amount: Decimal,
        currency: str,
        method: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> PaymentResult: ...

    def refund_payment(self, transaction_id: str, amount: Decimal) -> PaymentResult: ...

    def check_payment_status(self, transaction_id: str) -> str: ...


class MockPaymentGateway:
    """In-memory gateway; no network calls."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        self._transactions: Dict[str, PaymentResult] = {}

    def authorize_payment(
        self,
        *,
        amount: Decimal,
        currency: str,
        method: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> PaymentResult:
        if amount < 0:
            raise PaymentGatewayError("Amount must not be negative")

        if method == "card":
            missing = [name for name in REQUIRED_CARD_FIELDS if not (details or {}).get(name)]
            if missing:
                raise PaymentGatewayError(f"Missing card fields: {', '.join(missing)}")
            status = "authorized"
            number = str((details or {})["number"])
            info: Dict[str, Any] = {"card_last4": number[-4:]}
        elif method in {"bank", "cash"}:
            status = "pending"
            info = {}
        else:
            raise PaymentGatewayError(f"Unsupported payment method: {method}")

        result = PaymentResult(
            transaction_id=f"mock_txn_{uuid4().hex}",
            status=status,
            amount=amount,
            currency=currency,
            details=info,
        )
        self._transactions[result.transaction_id] = result
        self._logger.debug(
            "Mock payment authorized",
            extra={"transaction_id": result.transaction_id, "method": method, "status": status},
        )
        return result

    def refund_payment(self, transaction_id: str, amount: Decimal) -> PaymentResult:
        original = self._transactions.get(transaction_id)
        if original is None:
            raise PaymentGatewayError(f"Unknown transaction {transaction_id}")
        if amount > original.amount:
            raise PaymentGatewayError("Refund exceeds captured amount")
        refunded = PaymentResult(
            transaction_id=transaction_id,
            status="refunded",
            amount=amount,
            currency=original.currency,
        )
        self._transactions[transaction_id] = refunded
        return refunded

    def check_payment_status(self, transaction_id: str) -> str:
        result = self._transactions.get(transaction_id)
        return result.status if result else "unknown"

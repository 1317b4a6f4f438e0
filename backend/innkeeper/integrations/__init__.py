"""External service integrations for the Innkeeper backend."""

from .payment_gateway import (
    MockPaymentGateway,
    PaymentGateway,
    PaymentGatewayError,
    PaymentResult,
)

__all__ = ["MockPaymentGateway", "PaymentGateway", "PaymentGatewayError", "PaymentResult"]

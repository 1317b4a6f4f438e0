# backend/innkeeper/core/exceptions.py
"""
Domain-specific exceptions for the Innkeeper backend.

Each carries a stable ``code`` for clients and maps to one HTTP status;
routes convert them with ``to_http_exception()``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when the current state of a resource does not allow the operation."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when the caller lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class NoCardsAvailableException(ConflictException):
    """Raised when the key-card pool has no inactive card left to issue."""

    def __init__(self, room_id: Optional[str] = None):
        super().__init__(
            message="No key cards available. Please contact the front desk.",
            code="NO_CARDS_AVAILABLE",
            details={"room_id": room_id} if room_id else {},
        )


class InvalidStatusTransitionException(ConflictException):
    """Raised when an entity is not in the state an operation expects."""

    def __init__(self, entity: str, current: Any, expected: Any):
        current = getattr(current, "value", current)
        if isinstance(expected, (set, frozenset, list, tuple)):
            expected_list = sorted(getattr(item, "value", item) for item in expected)
        else:
            expected_list = [getattr(expected, "value", expected)]
        super().__init__(
            message=f"{entity} is {current}; expected {expected_list}",
            code="INVALID_STATUS",
            details={"entity": entity, "current": current, "expected": expected_list},
        )


class EarlyCheckInException(BusinessRuleException):
    """Raised when check-in is attempted before the booking window opens."""

    def __init__(self, days_until_check_in: int, check_in_date: str):
        super().__init__(
            message=(
                f"Check-in is not available yet. Your booking starts on {check_in_date} "
                f"({days_until_check_in} day(s) from now)."
            ),
            code="EARLY_CHECKIN_ATTEMPT",
            details={
                "days_until_check_in": days_until_check_in,
                "check_in_date": check_in_date,
            },
        )


class BookingPeriodExpiredException(BusinessRuleException):
    """Raised when check-in is attempted after the booking window closed."""

    def __init__(self, check_out_date: str):
        super().__init__(
            message=f"This booking ended on {check_out_date} and can no longer be checked in.",
            code="BOOKING_PERIOD_EXPIRED",
            details={"check_out_date": check_out_date},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """

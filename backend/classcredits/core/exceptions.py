# backend/classcredits/core/exceptions.py
"""
Domain-specific exceptions for the credits ledger and booking engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
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

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code or "NOT_FOUND", details)


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when the actor does not own the booking or business being mutated."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(
        self,
        message: str = "Not authorized to modify this resource",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code or "UNAUTHORIZED", details)


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific ledger and booking exceptions


class InvalidAmountException(ValidationException):
    """Raised when a credit amount is zero or has the wrong sign for the operation."""

    def __init__(self, amount: int, message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid credit amount: {amount}",
            code="INVALID_AMOUNT",
            details={"amount": amount},
        )


class InsufficientCreditsException(BusinessRuleException):
    """Raised when the cached balance cannot cover a spend."""

    def __init__(self, required: int, available: int):
        super().__init__(
            message=f"Insufficient credits: {required} required, {available} available",
            code="INSUFFICIENT_CREDITS",
            details={"required": required, "available": available},
        )


class ClassFullException(ConflictException):
    """Raised when a class instance has no open spots."""

    def __init__(self, class_instance_id: str, capacity: int):
        super().__init__(
            message="This class is full",
            code="CLASS_FULL",
            details={"class_instance_id": class_instance_id, "capacity": capacity},
        )


class MaxActiveBookingsExceededException(BusinessRuleException):
    """Raised when the user already holds the maximum number of active bookings."""

    def __init__(self, limit: int, current: int):
        super().__init__(
            message=(
                f"You can have at most {limit} active bookings at a time. "
                "Cancel an existing booking or wait until one of your classes has taken place."
            ),
            code="MAX_ACTIVE_BOOKINGS_EXCEEDED",
            details={"limit": limit, "current": current},
        )


class InvalidStatusTransitionException(BusinessRuleException):
    """Raised when a transition is attempted from a state that forbids it."""

    def __init__(self, entity_id: str, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} with status: {current_status}",
            code="INVALID_STATUS_TRANSITION",
            details={
                "entity_id": entity_id,
                "current_status": current_status,
                "action": action,
            },
        )


class ClassNotBookableException(BusinessRuleException):
    """Raised when a class is cancelled, completed, started, or closed for bookings."""

    def __init__(self, class_instance_id: str, reason: str):
        super().__init__(
            message=reason,
            code="CLASS_NOT_BOOKABLE",
            details={"class_instance_id": class_instance_id},
        )


class BookingWindowException(BusinessRuleException):
    """Raised when a booking falls outside the business's booking window."""

    def __init__(self, message: str, hours_until_start: float):
        super().__init__(
            message=message,
            code="BOOKING_WINDOW",
            details={"hours_until_start": round(hours_until_start, 2)},
        )


class CheckInWindowException(BusinessRuleException):
    """Raised when check-in happens outside the allowed window around class start."""

    def __init__(self, booking_id: str, message: str):
        super().__init__(
            message=message,
            code="CHECK_IN_WINDOW",
            details={"booking_id": booking_id},
        )


class DuplicateActiveBookingException(ConflictException):
    """Raised when a concurrent insert hits the active-booking unique index."""

    def __init__(self, user_id: str, class_instance_id: str):
        super().__init__(
            message="An active booking already exists for this class",
            code="DUPLICATE_ACTIVE_BOOKING",
            details={"user_id": user_id, "class_instance_id": class_instance_id},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """

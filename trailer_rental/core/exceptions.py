# trailer_rental/core/exceptions.py
"""
Domain-specific exceptions for the trailer rental platform.

These exceptions carry business-focused messages and a stable error code,
and know how to turn themselves into an HTTP response at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


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
    """Raised when input fails business validation (malformed interval, bad tax id)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a referenced trailer, reservation or user is absent."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenException(DomainException):
    """Raised when a user acts on a reservation they do not own."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class ReservationConflictException(ConflictException):
    """Raised when a requested interval overlaps a confirmed or active reservation."""

    def __init__(
        self,
        trailer_id: str,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "Trailer is not available for the requested dates",
            code="RESERVATION_CONFLICT",
            details={"trailer_id": trailer_id, **(details or {})},
        )


class StaleStateException(ConflictException):
    """Raised when a compare-and-swap transition finds an unexpected persisted state."""

    def __init__(self, entity: str, entity_id: str, expected: str):
        super().__init__(
            message=f"{entity} {entity_id} changed concurrently (expected {expected})",
            code="STALE_STATE",
            details={"entity": entity, "id": entity_id, "expected": expected},
        )


class InvalidTransitionException(ConflictException):
    """Raised when a lifecycle operation is not allowed from the current status."""

    def __init__(self, reservation_id: str, current: str, operation: str):
        super().__init__(
            message=f"Cannot {operation} reservation {reservation_id} in status {current}",
            code="INVALID_TRANSITION",
            details={"reservation_id": reservation_id, "status": current, "operation": operation},
        )


class PaymentException(DomainException):
    """Authorization or capture failure; ``reason`` is a stable machine-readable tag."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(
        self,
        reason: str,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        super().__init__(
            message=message or f"Payment failed: {reason}",
            code="PAYMENT_ERROR",
            details={"reason": reason, **(details or {})},
        )


class ExternalServiceException(DomainException):
    """Payment processor or lock controller unreachable (not a business failure)."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, service: str, message: str, *, timeout: bool = False):
        self.service = service
        self.timeout = timeout
        super().__init__(
            message=message,
            code="EXTERNAL_SERVICE_ERROR",
            details={"service": service, "timeout": timeout},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    query failures, or constraint violations.
    """

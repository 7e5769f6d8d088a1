"""
Custom application exceptions
"""

from typing import Optional, Dict, Any


class FairwayException(Exception):
    """Base exception for Fairway application"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(FairwayException):
    """Resource not found errors"""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id {identifier} not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404
        )


class ValidationError(FairwayException):
    """Validation errors"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=details
        )


class ConflictError(FairwayException):
    """Resource conflict errors"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="CONFLICT",
            status_code=409,
            details=details
        )


class OfferExpiredError(ConflictError):
    """Waitlist offer passed its deadline before it was claimed"""

    def __init__(self, entry_id: Any):
        super().__init__(
            message="Waitlist offer has expired",
            details={"waitlist_entry_id": str(entry_id)}
        )
        self.code = "OFFER_EXPIRED"


class ConcurrencyError(FairwayException):
    """Concurrency conflict error"""

    def __init__(self, message: str = "Resource was modified by another process"):
        super().__init__(
            message=message,
            code="CONCURRENCY_ERROR",
            status_code=409
        )


class InvalidTransitionError(FairwayException):
    """Requested a status change the waitlist state machine does not allow"""

    def __init__(self, from_status: Any, to_status: Any):
        super().__init__(
            message=f"Cannot transition waitlist entry from {from_status} to {to_status}",
            code="INVALID_TRANSITION",
            status_code=500,
            details={"from": str(from_status), "to": str(to_status)}
        )


class PaymentProviderError(FairwayException):
    """Payment processor rejected or failed a request"""

    def __init__(self, message: str = "Payment processing failed", details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="PAYMENT_PROVIDER_ERROR",
            status_code=500,
            details=details
        )


class ExternalServiceError(FairwayException):
    """External service error"""

    def __init__(self, service: str, message: str = None, details: Optional[Dict] = None):
        super().__init__(
            message=message or f"External service {service} is unavailable",
            code="EXTERNAL_SERVICE_ERROR",
            status_code=500,
            details={"service": service, **(details or {})}
        )

"""
Custom Exceptions for Campus Portal
===================================

Services raise these instead of generic Exception so that:
1. Business-rule failures carry a stable error code
2. The API layer maps every error to the same response envelope
3. Users get a meaningful message

Usage:
    from campus_portal.core.exceptions import BookNotAvailableError

    if not claimed:
        raise BookNotAvailableError()
"""

from typing import Optional, Any, Dict


class PortalError(Exception):
    """Base exception for all Campus Portal errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(PortalError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class AuthorizationError(PortalError):
    """User not authorized for this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


class TokenExpiredError(AuthenticationError):
    """JWT token has expired"""

    def __init__(self):
        super().__init__("Token has expired")
        self.code = "TOKEN_EXPIRED"


class InvalidTokenError(AuthenticationError):
    """JWT token is invalid"""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)
        self.code = "INVALID_TOKEN"


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(PortalError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or f"{resource_type} not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


# ============================================
# Validation / Business-rule Errors (400-type)
# ============================================

class ValidationError(PortalError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class BusinessRuleError(PortalError):
    """A lifecycle precondition did not hold"""

    status_code = 400

    def __init__(self, message: str, code: str = "BUSINESS_RULE_VIOLATION", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class DuplicateResourceError(BusinessRuleError):
    """Unique value already taken (reported as 400, never 409)"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, code="DUPLICATE_RESOURCE", details={"field": field} if field else None)


class InvalidStatusError(BusinessRuleError):
    """Unknown status value or a transition the state machine forbids"""

    def __init__(self, message: str = "Invalid status", status: Optional[str] = None):
        super().__init__(message, code="INVALID_STATUS", details={"status": status} if status else None)


# Library

class BookNotAvailableError(BusinessRuleError):
    def __init__(self):
        super().__init__("Book is not available for borrowing", code="BOOK_NOT_AVAILABLE")


class AlreadyBorrowedError(BusinessRuleError):
    def __init__(self):
        super().__init__("You have already borrowed this book", code="ALREADY_BORROWED")


class RenewalNotAllowedError(BusinessRuleError):
    def __init__(self, reason: str):
        super().__init__("Book cannot be renewed", code="RENEWAL_NOT_ALLOWED", details={"reason": reason})


# Hostel

class AlreadyAllocatedError(BusinessRuleError):
    def __init__(self):
        super().__init__("You already have an active allocation", code="ALREADY_ALLOCATED")


class RoomFullError(BusinessRuleError):
    def __init__(self, message: str = "Room is already at full capacity"):
        super().__init__(message, code="ROOM_FULL")


class RoomUnavailableError(BusinessRuleError):
    def __init__(self, reason: str):
        super().__init__("Room is not available for allocation", code="ROOM_UNAVAILABLE", details={"reason": reason})


class NoActiveAllocationError(BusinessRuleError):
    def __init__(self):
        super().__init__("No active room allocation found", code="NO_ACTIVE_ALLOCATION")


class DuplicateRequestError(BusinessRuleError):
    def __init__(self, message: str = "You already have a pending room change request"):
        super().__init__(message, code="DUPLICATE_REQUEST")


# Fees

class PaymentError(BusinessRuleError):
    """Payment could not be applied"""

    def __init__(self, message: str, code: str = "PAYMENT_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class FeeAlreadyPaidError(PaymentError):
    def __init__(self):
        super().__init__("Fee is already paid", code="FEE_ALREADY_PAID")


class PaymentAmountError(PaymentError):
    def __init__(self, amount: float, outstanding: float):
        super().__init__(
            "Payment amount exceeds outstanding balance" if amount > 0 else "Payment amount must be positive",
            code="INVALID_PAYMENT_AMOUNT",
            details={"amount": amount, "outstanding": outstanding},
        )


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: PortalError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "message": error.message,
        "error": error.to_dict()
    }

"""
Order Lifecycle Error Taxonomy

Every failure the service reports to a caller is an ``OrderingError``
subclass carrying a stable category and the HTTP status used at the
transport boundary. Validation and authorization errors are raised before
any persistence attempt; persistence errors are raised only after the unit
of work has been rolled back.

Author: Khalil Bannouri
Version: 1.0.0
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Stable error categories exposed to API clients."""
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    SERVER_FAULT = "server_fault"


class OrderingError(Exception):
    """Base class for all errors surfaced across the API boundary."""

    category: ErrorCategory = ErrorCategory.SERVER_FAULT
    status_code: int = 500
    default_message: str = "Unexpected ordering error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        """Stable machine-readable name of the specific failure."""
        return type(self).__name__

    def to_dict(self) -> dict:
        """Convert to the standard error body."""
        return {
            "success": False,
            "error": self.category.value,
            "code": self.code,
            "detail": self.message,
        }


# =============================================================================
# ACCESS CONTROL
# =============================================================================

class Unauthenticated(OrderingError):
    category = ErrorCategory.UNAUTHENTICATED
    status_code = 401
    default_message = "Access token required"


class InvalidCredentials(Unauthenticated):
    default_message = "Invalid email or password"


class Forbidden(OrderingError):
    category = ErrorCategory.FORBIDDEN
    status_code = 403
    default_message = "Insufficient permissions"


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFound(OrderingError):
    category = ErrorCategory.NOT_FOUND
    status_code = 404
    default_message = "Resource not found"


class LocationNotFound(NotFound):
    default_message = "Location not found"


class OrderNotFound(NotFound):
    default_message = "Order not found"


class ItemNotFound(NotFound):
    default_message = "Menu item not found"


class CustomizationNotFound(NotFound):
    default_message = "Customization not found"


class UserNotFound(NotFound):
    default_message = "User not found"


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationFailure(OrderingError):
    category = ErrorCategory.VALIDATION
    status_code = 400
    default_message = "Validation failed"


class ItemUnavailable(ValidationFailure):
    default_message = "Menu item is not available"


class LocationMismatch(ValidationFailure):
    default_message = "Menu item is not available at this location"


# =============================================================================
# CONFLICTS
# =============================================================================

class InvalidTransition(OrderingError):
    category = ErrorCategory.CONFLICT
    status_code = 409
    default_message = "Illegal order status change"


class Conflict(OrderingError):
    category = ErrorCategory.CONFLICT
    status_code = 409
    default_message = "Request conflicts with stored data"


class EmailAlreadyRegistered(Conflict):
    default_message = "User already exists with this email"


# =============================================================================
# SERVER FAULTS
# =============================================================================

class PersistenceFailure(OrderingError):
    category = ErrorCategory.SERVER_FAULT
    status_code = 503
    default_message = "Order store unavailable, nothing was saved"


class ConfigurationFault(OrderingError):
    category = ErrorCategory.SERVER_FAULT
    status_code = 500
    default_message = "Service is misconfigured"

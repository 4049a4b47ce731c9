"""
Centralized error types and constants for the party inventory core.

Callers that surface errors to a UI use these to keep error payloads and
wording consistent across screens.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .exceptions import (
    AllocationExceededError,
    ConfigurationError,
    InvalidQuantityError,
    InventoryCapacityError,
    PartyInventoryError,
    PersistenceError,
    QuantityBelowAllocationError,
    ResourceNotFoundError,
    ValidationError,
)


class ErrorType(Enum):
    """Standardized error types for consistent categorization."""

    # Validation
    VALIDATION_ERROR = "validation_error"
    INVALID_QUANTITY = "invalid_quantity"
    ALLOCATION_EXCEEDED = "allocation_exceeded"
    QUANTITY_BELOW_ALLOCATION = "quantity_below_allocation"
    INVENTORY_FULL = "inventory_full"

    # Resources
    RESOURCE_NOT_FOUND = "resource_not_found"

    # Persistence
    PERSISTENCE_ERROR = "persistence_error"

    # Configuration and System
    CONFIGURATION_ERROR = "configuration_error"
    INTERNAL_ERROR = "internal_error"


class ErrorSeverity(Enum):
    """Error severity levels for logging and handling."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorMessages:
    """Common error messages for consistent user experience."""

    INVALID_QUANTITY = "Quantity must be greater than zero"
    ALLOCATION_EXCEEDED = "Not enough left in party storage"
    QUANTITY_BELOW_ALLOCATION = "Characters still hold more than that; return items to the party first"
    INVENTORY_FULL = "Inventory is full."
    ITEM_NOT_FOUND = "Item not found"
    CHARACTER_NOT_FOUND = "Character not found"
    GROUP_NOT_FOUND = "Group not found"
    USER_NOT_FOUND = "User not found"
    SAVE_FAILED = "Changes could not be saved; they will be retried on the next change"
    INTERNAL_ERROR = "An internal error occurred"


# Most specific classes first; lookup walks this in order.
_ERROR_TYPE_BY_CLASS: tuple[tuple[type[PartyInventoryError], ErrorType, ErrorSeverity], ...] = (
    (AllocationExceededError, ErrorType.ALLOCATION_EXCEEDED, ErrorSeverity.LOW),
    (QuantityBelowAllocationError, ErrorType.QUANTITY_BELOW_ALLOCATION, ErrorSeverity.LOW),
    (InvalidQuantityError, ErrorType.INVALID_QUANTITY, ErrorSeverity.LOW),
    (InventoryCapacityError, ErrorType.INVENTORY_FULL, ErrorSeverity.MEDIUM),
    (ValidationError, ErrorType.VALIDATION_ERROR, ErrorSeverity.LOW),
    (ResourceNotFoundError, ErrorType.RESOURCE_NOT_FOUND, ErrorSeverity.LOW),
    (PersistenceError, ErrorType.PERSISTENCE_ERROR, ErrorSeverity.HIGH),
    (ConfigurationError, ErrorType.CONFIGURATION_ERROR, ErrorSeverity.CRITICAL),
)


def create_standard_error_response(
    error_type: ErrorType,
    message: str,
    user_friendly: str | None = None,
    details: dict[str, Any] | None = None,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
) -> dict[str, Any]:
    """
    Create a standardized error response.

    Args:
        error_type: The type of error
        message: Technical error message
        user_friendly: User-friendly error message (optional)
        details: Additional error details (optional)
        severity: Error severity level (optional)

    Returns:
        Standardized error response dictionary
    """
    return {
        "error": {
            "type": error_type.value,
            "message": message,
            "user_friendly": user_friendly or message,
            "details": details or {},
            "severity": severity.value,
            "timestamp": datetime.now(UTC).isoformat(),
        }
    }


def error_response_from_exception(exc: PartyInventoryError) -> dict[str, Any]:
    """Build a standard error response for a raised inventory error."""
    for error_class, error_type, severity in _ERROR_TYPE_BY_CLASS:
        if isinstance(exc, error_class):
            return create_standard_error_response(
                error_type, exc.message, exc.user_friendly, exc.details, severity
            )
    return create_standard_error_response(
        ErrorType.INTERNAL_ERROR, exc.message, ErrorMessages.INTERNAL_ERROR, exc.details, ErrorSeverity.HIGH
    )

"""
Exception hierarchy for the party inventory core.

Every error carries an ErrorContext and logs itself with structured context
when raised, so callers only need to surface `user_friendly` to the player.
"""

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """Contextual information attached to an inventory error."""

    group_id: str | None = None
    item_id: str | None = None
    character_id: str | None = None
    user_id: str | None = None
    operation: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "group_id": self.group_id,
            "item_id": self.item_id,
            "character_id": self.character_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class PartyInventoryError(Exception):
    """
    Base exception for all party inventory errors.

    Provides structured error handling with context and metadata
    for proper error categorization and debugging.
    """

    log_level = "error"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        user_friendly: str | None = None,
    ):
        """
        Initialize the error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
            user_friendly: Message suitable for showing to a player
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message
        self.timestamp = datetime.now(UTC)

        self._log_error()

    def _log_error(self) -> None:
        log_method = getattr(logger, self.log_level, logger.error)
        log_method(
            "Party inventory error occurred",
            error_type=self.__class__.__name__,
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for UI responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "user_friendly": self.user_friendly,
            "context": self.context.to_dict(),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ValidationError(PartyInventoryError):
    """Input rejected before any state was changed."""

    log_level = "warning"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        field: str | None = None,  # pylint: disable=redefined-outer-name
        value: Any | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.field = field
        self.value = value
        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)


class InvalidQuantityError(ValidationError):
    """A quantity that must be positive was zero or negative."""

    def __init__(self, message: str, context: ErrorContext | None = None, value: Any | None = None, **kwargs):
        super().__init__(message, context, field="quantity", value=value, **kwargs)


class AllocationExceededError(ValidationError):
    """A claim would push the allocated total above the item's quantity."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        requested: int = 0,
        available: int = 0,
        **kwargs,
    ):
        super().__init__(message, context, field="quantity", value=requested, **kwargs)
        self.requested = requested
        self.available = available
        self.details["requested"] = requested
        self.details["available"] = available


class QuantityBelowAllocationError(ValidationError):
    """An item's quantity cannot drop below what characters currently hold."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        new_quantity: int = 0,
        allocated: int = 0,
        **kwargs,
    ):
        super().__init__(message, context, field="quantity", value=new_quantity, **kwargs)
        self.new_quantity = new_quantity
        self.allocated = allocated
        self.details["allocated"] = allocated


class InventoryCapacityError(ValidationError):
    """The inventory already holds the configured maximum number of items."""

    def __init__(self, message: str, context: ErrorContext | None = None, max_items: int = 0, **kwargs):
        super().__init__(message, context, **kwargs)
        self.max_items = max_items
        self.details["max_items"] = max_items


class ResourceNotFoundError(PartyInventoryError):
    """An item, character, group or user id is unknown."""

    log_level = "warning"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.resource_type = resource_type
        self.resource_id = resource_id
        if resource_type:
            self.details["resource_type"] = resource_type
        if resource_id:
            self.details["resource_id"] = resource_id


class PersistenceError(PartyInventoryError):
    """Document load or save could not be completed."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        document_key: str | None = None,
        operation: str = "unknown",
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.document_key = document_key
        self.operation = operation
        self.details["operation"] = operation
        if document_key:
            self.details["document_key"] = document_key


class ConfigurationError(PartyInventoryError):
    """Configuration and setup errors."""

    def __init__(self, message: str, context: ErrorContext | None = None, config_key: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key


def create_error_context(**kwargs) -> ErrorContext:
    """Create an error context with the given parameters."""
    return ErrorContext(**kwargs)


def handle_exception(exc: Exception, context: ErrorContext | None = None) -> PartyInventoryError:
    """
    Convert a generic exception to a party inventory error.

    Args:
        exc: The original exception
        context: Error context

    Returns:
        PartyInventoryError instance
    """
    if isinstance(exc, PartyInventoryError):
        return exc

    if isinstance(exc, ValueError | TypeError):
        return ValidationError(str(exc), context, details={"original_type": type(exc).__name__})
    if isinstance(exc, FileNotFoundError):
        return ResourceNotFoundError(str(exc), context, details={"original_type": type(exc).__name__})
    if isinstance(exc, OSError | TimeoutError):
        return PersistenceError(str(exc), context, details={"original_type": type(exc).__name__})
    return PartyInventoryError(
        str(exc), context, details={"original_type": type(exc).__name__, "traceback": traceback.format_exc()}
    )

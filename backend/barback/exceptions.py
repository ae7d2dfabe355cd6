"""
Barback - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the engine and its boundary services.

Usage:
    from barback.exceptions import NotFoundError, ValidationError

    # At the boundary
    raise NotFoundError("Ingredient", ingredient_id)

    # With field context
    raise ValidationError("Count quantity cannot be negative", field="quantity")

Soft failures (unit incompatibility, cycles) are normally recorded in the
recalculation diagnostic instead of being raised out of a pass. Only
PersistenceError is fatal to a pass.
"""
from typing import Any, Dict, Optional


class BarbackException(Exception):
    """
    Base exception for all Barback errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "VALIDATION_ERROR")
        details: Additional context for debugging
    """

    error_code: str = "BARBACK_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a serializable dictionary."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# Input Errors
# ===================


class ValidationError(BarbackException):
    """Raised when boundary input is malformed (bad quantity string, negative count)."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


class NotFoundError(BarbackException):
    """Raised when a referenced record does not exist."""

    error_code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# Engine Errors
# ===================


class IncompatibleUnitsError(BarbackException):
    """Raised when two units cannot be converted (different domains or unknown)."""

    error_code = "INCOMPATIBLE_UNITS"

    def __init__(
        self,
        from_unit: Optional[str],
        to_unit: Optional[str],
        *,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["from_unit"] = from_unit
        details["to_unit"] = to_unit
        if reason:
            details["reason"] = reason
        message = f"Cannot convert {from_unit!r} to {to_unit!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details=details)


class CycleDetectedError(BarbackException):
    """Raised in strict mode when a prep recipe references itself through its components."""

    error_code = "CYCLE_DETECTED"

    def __init__(
        self,
        parent_id: int,
        child_id: int,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["parent_prep_recipe_id"] = parent_id
        details["child_prep_recipe_id"] = child_id
        super().__init__(
            f"Prep recipe {child_id} is already on the expansion path of prep recipe {parent_id}",
            details=details,
        )


class PersistenceError(BarbackException):
    """Raised when the store rejects a recalculation write. Fatal to the pass."""

    error_code = "PERSISTENCE_ERROR"

    def __init__(
        self,
        message: str = "Failed to persist recalculation",
        *,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details)

"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the application
- Machine-readable error codes for client handling
- Detailed error information (current state, offending values)

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures (HTTP 400)
    ├── NotFoundError - Resource not found (HTTP 404)
    ├── ConflictError - Operation conflicts with current state (HTTP 409)
    └── InvariantViolationError - A stored invariant would be broken (HTTP 409)

Usage:
    from core.exceptions import ConflictError

    raise ConflictError(
        "Refund is not pending",
        error_code="INVALID_REFUND_STATE",
        details={"current_state": "approved"},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.status_code)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, current state, etc.)
        status_code: HTTP status views should answer with
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Refund not found",
                "error_code": "REFUND_NOT_FOUND",
                "details": {"refund_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for malformed amounts, missing required arguments and other
    problems detectable before any record is read.

    Note:
        For DRF serializer validation, use DRF's built-in validation.
        Use this for service-layer validation logic.
    """

    default_error_code: str = "VALIDATION_ERROR"
    status_code: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Use for single-resource lookups where existence is expected.
    List queries return empty results instead.
    """

    default_error_code: str = "NOT_FOUND"
    status_code: int = 404


class ConflictError(BaseApplicationError):
    """
    Raised when operation conflicts with current resource state.

    Use for:
    - Duplicate entries (unique constraint violations)
    - Invalid state transitions
    - Preconditions on a related record's state

    Include the current state in details so callers can decide what to do.
    """

    default_error_code: str = "CONFLICT"
    status_code: int = 409


class InvariantViolationError(BaseApplicationError):
    """
    Raised when a mutation would break a stored invariant.

    Unlike ConflictError this signals that the caller asked for something
    that can never be valid against the current data (for example paying
    more than is owed), not a transient state mismatch.
    """

    default_error_code: str = "INVARIANT_VIOLATION"
    status_code: int = 409

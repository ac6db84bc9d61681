"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500, details: Any = None):
        """Initialize exception with message, status code and optional details."""
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ValidationException(AppException):
    """Malformed input or failed business precondition."""

    def __init__(self, message: str = "Validation error", details: Any = None):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400, details=details)


class ConflictException(AppException):
    """Scheduling conflict exception.

    Carries the appointments that overlap the requested window so the caller
    can show them to the user.
    """

    def __init__(
        self,
        message: str = "Time slot conflicts with existing appointment",
        conflicting_appointments: list[dict[str, Any]] | None = None,
    ):
        """Initialize with 400 status code."""
        self.conflicting_appointments = conflicting_appointments or []
        details = (
            {"conflicting_appointments": self.conflicting_appointments}
            if self.conflicting_appointments
            else None
        )
        super().__init__(message, status_code=400, details=details)


class InvalidStateTransitionException(ConflictException):
    """Requested status change is not allowed from the current status."""

    def __init__(self, current_status: str, target_status: str, message: str | None = None):
        """Initialize with the offending transition."""
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            message
            or f"Cannot change appointment status from '{current_status}' to '{target_status}'"
        )
        self.details = {"current_status": current_status, "target_status": target_status}


class InternalException(AppException):
    """Persistence or infrastructure failure."""

    def __init__(self, message: str = "Internal server error"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)

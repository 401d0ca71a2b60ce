"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
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


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error", details: dict[str, Any] | None = None):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422, details=details)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, details=details)


class ResourceConflictException(ConflictException):
    """A machine, provider or patient is already booked for the requested window."""

    def __init__(
        self,
        message: str,
        resource_kind: str,
        resource_id: Any,
        conflicting_ids: list[Any] | None = None,
        segment_index: int | None = None,
        conflicts: list[dict[str, Any]] | None = None,
    ):
        """Initialize with the resource that caused the conflict."""
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        self.conflicting_ids = [str(c) for c in conflicting_ids or []]
        self.segment_index = segment_index
        details: dict[str, Any] = {
            "resource_kind": resource_kind,
            "resource_id": str(resource_id),
            "conflicting_ids": self.conflicting_ids,
            "segment_index": segment_index,
            "retryable": False,
        }
        if conflicts:
            details["conflicts"] = conflicts
        super().__init__(message, details=details)


class StateConflictException(ConflictException):
    """Status transition not allowed from the appointment's current state."""

    def __init__(self, message: str, current_status: str, target_status: str | None = None):
        """Initialize with both ends of the rejected transition."""
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            message,
            details={"current_status": current_status, "target_status": target_status},
        )


class StorageConflictException(ConflictException):
    """A concurrent writer committed an overlapping booking first."""

    def __init__(self, message: str = "Booking was taken by a concurrent request, please retry"):
        """Initialize with a retryable conflict payload."""
        super().__init__(
            message,
            details={
                "resource_kind": "storage",
                "resource_id": None,
                "conflicting_ids": [],
                "segment_index": None,
                "retryable": True,
            },
        )

"""
Error taxonomy for the lifecycle core.

Exceptions are raised by the services and converted to HTTP responses by the
handlers registered in main.py. ``retryable`` tells callers whether resubmitting
the same request can succeed.
"""
from typing import Any, Dict, Optional


class RailtraceError(Exception):
    """Base exception for all domain errors."""
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(RailtraceError):
    """A required field is missing or malformed. Raised before any write."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}", {"field": field})


class NotFoundError(RailtraceError):
    def __init__(self, resource_type: str, resource_id: Any):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} with id '{resource_id}' not found",
            {"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class RefusalError(RailtraceError):
    """
    Raised when a transition is refused by the system.
    This is NOT a fault - it's the state machine working correctly.
    """


class ConcurrentUpdateError(RailtraceError):
    """The optimistic write lost the race on every bounded attempt."""
    retryable = True

    def __init__(self, material_id: str, attempts: int):
        self.material_id = material_id
        self.attempts = attempts
        super().__init__(
            f"Material '{material_id}' was modified concurrently; gave up after {attempts} attempts",
            {"material_id": material_id, "attempts": attempts},
        )


class UpstreamError(RailtraceError):
    """An external collaborator failed. No Material write has happened."""
    retryable = True

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}", {"service": service})


class UpstreamTimeoutError(UpstreamError):
    def __init__(self, service: str, timeout: float):
        self.timeout = timeout
        super().__init__(service, f"timed out after {timeout}s")
        self.details["timeout"] = timeout


class AuthenticationError(RailtraceError):
    def __init__(self, message: str = "Missing or invalid session token"):
        super().__init__(message)


class PermissionDeniedError(RailtraceError):
    def __init__(self, action: str, role: Optional[str] = None):
        self.action = action
        self.role = role
        super().__init__(
            f"Permission denied: role '{role}' cannot {action}",
            {"action": action, "role": role},
        )

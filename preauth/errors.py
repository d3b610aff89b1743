"""
Engine Errors

Every failure the engine surfaces to a caller is one of these.
The API layer maps each class to an HTTP status code.
"""

from typing import Optional


class PreAuthError(Exception):
    """Base class for engine errors."""

    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(PreAuthError):
    """Raised when no valid session resolves to a merchant."""

    status_code = 401


class AuthorizationError(PreAuthError):
    """Raised when the caller does not own the record it is acting on."""

    status_code = 403

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class OrderNotFoundError(PreAuthError):
    """Raised when an order id does not exist."""

    status_code = 404


class OrderValidationError(PreAuthError):
    """Raised when mandatory order fields are missing or malformed."""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class PolicyValidationError(PreAuthError):
    """Raised when policy validation fails."""

    status_code = 422


class InvalidTransitionError(PreAuthError):
    """Raised when a status change is not allowed from the current state."""

    status_code = 409

    def __init__(self, record_id: str, current: str, target: str):
        super().__init__(f"Cannot move {record_id} from {current} to {target}")
        self.record_id = record_id
        self.current = current
        self.target = target


class EnrichmentUnavailable(PreAuthError):
    """Raised by optional lookups (geo-IP); callers skip the check."""

    status_code = 503


class DependencyFailure(PreAuthError):
    """Raised when a mandatory collaborator (deep analysis) fails."""

    status_code = 502

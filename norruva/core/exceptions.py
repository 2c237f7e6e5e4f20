from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """
    Base class for every failure the workflow engine reports to a caller.
    Each subclass carries the HTTP status the API layer maps it to.
    """
    status_code: int = 400
    default_message: str = "The request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PermissionDenied(DomainError):
    """The user/resource combination is not allowed. Never retried."""
    status_code = 403
    default_message = "You do not have permission to perform this action."


class AuthenticationRequired(DomainError):
    status_code = 401
    default_message = "Missing or invalid API key."


class NotFound(DomainError):
    status_code = 404
    default_message = "Resource not found."


class ValidationFailed(DomainError):
    """Input or submission checklist failures. Carries field-level detail."""
    status_code = 422
    default_message = "Validation failed."

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidTransition(DomainError):
    """The product is not in a state the requested transition starts from."""
    status_code = 409
    default_message = "This transition is not allowed from the product's current state."


class ResourceInUse(DomainError):
    status_code = 409
    default_message = "The resource is still referenced and cannot be removed."


class ProcessingInProgress(DomainError):
    """A background task for the same purpose is still running. Retryable."""
    status_code = 409
    default_message = "The product is still being processed. Retry once processing completes."


class RateLimitExceeded(DomainError):
    """Sliding-window cap reached for an API key. Retryable after `retry_after` seconds."""
    status_code = 429
    default_message = "API rate limit exceeded."

    def __init__(self, message: Optional[str] = None, retry_after: int = 60):
        super().__init__(message)
        self.retry_after = retry_after


class OracleFailure(DomainError):
    """
    Raised by scoring/anchoring/credential collaborators.
    Only ever caught at the boundary of a background task.
    """
    status_code = 502
    default_message = "An external collaborator failed."

"""Blaze Webhooks exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from WebhookServiceError for easy catching.
"""

from __future__ import annotations


class WebhookServiceError(Exception):
    """Base exception for all webhook service errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "webhook_service_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(WebhookServiceError):
    """Invalid input provided.

    Raised when an endpoint URL or event list fails validation. Nothing is
    persisted when this is raised.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(WebhookServiceError):
    """Resource not found.

    Raised when a webhook endpoint doesn't exist or belongs to another tenant.
    Both cases look identical to the caller.

    Attributes:
        resource_type: Type of resource (e.g., "webhook").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class DeliveryError(WebhookServiceError):
    """A single delivery attempt failed.

    Covers non-2xx responses, timeouts, refused connections and DNS failures.
    Contained inside the delivery worker: recorded and retried, never propagated.

    Attributes:
        status_code: HTTP status if a response was received.
    """

    code: str = "delivery_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ExhaustedError(WebhookServiceError):
    """Retry budget for a logical delivery is used up.

    Terminal. Recorded on the delivery job; never raised past the worker.

    Attributes:
        attempts: Number of attempts made.
        last_error: Error of the final attempt.
    """

    code: str = "delivery_exhausted"

    def __init__(self, attempts: int, last_error: str | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Max attempts exceeded after {attempts} attempts{detail}")


class StorageError(WebhookServiceError):
    """Storage operation failed.

    Raised when a Qdrant operation fails or a stored record can't be decoded.
    """

    code: str = "storage_error"


class ConfigurationError(WebhookServiceError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"


class AuthenticationError(WebhookServiceError):
    """Authentication failed.

    Raised when the admin credentials or customer header are invalid or missing.
    """

    code: str = "authentication_error"

"""Custom exceptions for Directus Bridge.

This module defines exception classes for handling the error conditions
that can occur while talking to Directus instances and while reading or
applying a template.
"""

from typing import Any


class DirectusMigrationError(Exception):
    """Base exception for all Directus Bridge errors."""

    pass


class APIError(DirectusMigrationError):
    """Base class for API-related errors."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
        """
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code and response."""
        msg = self.message
        if self.status_code:
            msg = f"[{self.status_code}] {msg}"
        if self.response:
            msg = f"{msg}: {self.response}"
        return msg


class AuthenticationError(APIError):
    """Raised when authentication fails (401 Unauthorized)."""

    pass


class AuthorizationError(APIError):
    """Raised when authorization fails (403 Forbidden)."""

    pass


class NotFoundError(APIError):
    """Raised when a resource is not found (404 Not Found)."""

    pass


class ConflictError(APIError):
    """Raised when a resource conflict occurs (409 Conflict)."""

    pass


class RateLimitError(APIError):
    """Raised when the instance rejects a request with 429 Too Many Requests.

    Lower ``performance.rate_limit`` or ``performance.max_concurrent`` when this
    shows up; the pipeline does not wait and resend.
    """


class ServerError(APIError):
    """Raised when server returns 5xx error."""

    pass


class NetworkError(DirectusMigrationError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class ConfigurationError(DirectusMigrationError):
    """Raised when configuration is invalid or missing."""

    pass


class BlobNotFoundError(DirectusMigrationError):
    """Raised when a required blob is missing from the template."""

    def __init__(self, name: str, path: str):
        self.name = name
        self.path = path
        super().__init__(f"Template file '{name}' not found at {path}")


class TemplateError(DirectusMigrationError):
    """Raised when a template is missing required files or uses an old format."""

    pass


class PrimaryKeyError(DirectusMigrationError):
    """Raised when no primary key field can be found for a collection."""

    def __init__(self, collection: str, available: list[str] | None = None):
        self.collection = collection
        self.available = available or []
        super().__init__(
            f"Collection {collection} not found in primary key map "
            f"(collections with a primary key: {', '.join(self.available) or 'none'})"
        )


class MigrationStepError(DirectusMigrationError):
    """Raised when a single extract or apply operation fails.

    Attributes:
        operation: Name of the failing operation
        context: Structured context captured at the failure site
    """

    def __init__(self, operation: str, cause: Exception | str, context: dict[str, Any] | None = None):
        self.operation = operation
        self.cause = cause
        self.context = context or {}
        super().__init__(f"{operation} failed: {cause}")


class ReadinessTimeoutError(DirectusMigrationError):
    """Raised when a polled condition never became true."""

    pass

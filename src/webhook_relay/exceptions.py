"""Webhook relay exception hierarchy.

Provides structured exceptions for error handling throughout the relay.
All exceptions inherit from RelayError for easy catching.

Only ConfigurationError and TransportError are meant to cross the
delivery queue boundary; they drive the retry and dead-letter decisions.
TrackingError and QuarantineError are logged where they occur.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all relay errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "relay_error"

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


class ValidationError(RelayError):
    """Invalid input provided.

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


class ConfigurationError(RelayError):
    """Webhook configuration missing or invalid.

    Fails the current delivery attempt. The attempt is retried like any
    other handler failure, since a configuration may become valid later.
    """

    code: str = "configuration_error"


class TransportError(RelayError):
    """Delivery transport failed (timeout, connection refused, non-2xx).

    Attributes:
        status_code: HTTP status code if a response was received.
    """

    code: str = "transport_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "status_code": self.status_code,
                "message": self.message,
            }
        }


class TrackingError(RelayError):
    """Recording a delivery attempt failed.

    Never fails the delivery itself.
    """

    code: str = "tracking_error"


class QuarantineError(RelayError):
    """Persisting a dead-letter entry failed.

    The delivery is still considered permanently failed.
    """

    code: str = "quarantine_error"

"""Tests for the relay exception hierarchy."""

import pytest

from webhook_relay.exceptions import (
    ConfigurationError,
    QuarantineError,
    RelayError,
    TrackingError,
    TransportError,
    ValidationError,
)


class TestRelayError:
    """Tests for the base RelayError class."""

    def test_error_message(self):
        """Should store and return message."""
        error = RelayError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"

    def test_error_code(self):
        """Should have default error code."""
        assert RelayError("test").code == "relay_error"

    def test_to_dict(self):
        """Should convert to API-friendly dict."""
        assert RelayError("Something went wrong").to_dict() == {
            "error": {
                "code": "relay_error",
                "message": "Something went wrong",
            }
        }

    def test_inheritance(self):
        """All custom exceptions should inherit from RelayError."""
        exceptions = [
            ValidationError("field", "invalid"),
            ConfigurationError("missing"),
            TransportError("timeout"),
            TrackingError("failed"),
            QuarantineError("failed"),
        ]
        for exc in exceptions:
            assert isinstance(exc, RelayError)

    def test_catchable_as_base(self):
        """Subclasses should be catchable as RelayError."""
        with pytest.raises(RelayError):
            raise ConfigurationError("Webhook configuration not found for ID: whk_1")


class TestValidationError:
    """Tests for ValidationError."""

    def test_message_includes_field(self):
        error = ValidationError("format", "Unsupported webhook format: xml")
        assert error.field == "format"
        assert error.message == "format: Unsupported webhook format: xml"
        assert error.code == "validation_error"

    def test_to_dict_includes_field(self):
        result = ValidationError("url", "must be HTTP").to_dict()
        assert result["error"]["field"] == "url"
        assert result["error"]["code"] == "validation_error"


class TestTransportError:
    """Tests for TransportError."""

    def test_status_code_optional(self):
        """Timeouts carry no status code."""
        assert TransportError("timeout").status_code is None

    def test_to_dict_includes_status_code(self):
        error = TransportError("HTTP 503: Service Unavailable", status_code=503)
        assert error.to_dict() == {
            "error": {
                "code": "transport_error",
                "status_code": 503,
                "message": "HTTP 503: Service Unavailable",
            }
        }


class TestErrorCodes:
    """Error codes for the remaining exception types."""

    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (ConfigurationError("x"), "configuration_error"),
            (TrackingError("x"), "tracking_error"),
            (QuarantineError("x"), "quarantine_error"),
        ],
    )
    def test_codes(self, exc: RelayError, code: str) -> None:
        assert exc.code == code

"""Tests for error normalization."""

import logging
from datetime import datetime

import httpx
import pytest

from storefront.errors import (
    ERROR_MESSAGES,
    BackendError,
    InvalidIdentifier,
    NetworkError,
    NotFound,
    PermissionDenied,
    Timeout,
    Unauthorized,
    ValidationError,
    classify_backend_error,
    get_user_friendly_message,
    is_auth_error,
    is_network_error,
    normalize,
    report_error,
    sanitize_error_message,
)


class TestSanitizeErrorMessage:
    """Tests for sanitize_error_message."""

    def test_plain_message_unchanged(self) -> None:
        """Test that harmless messages pass through."""
        assert sanitize_error_message("Row not found") == "Row not found"

    def test_non_string_gives_default(self) -> None:
        """Test that non-strings fall back to the default message."""
        assert sanitize_error_message(None) == ERROR_MESSAGES["DEFAULT"]
        assert sanitize_error_message(42) == ERROR_MESSAGES["DEFAULT"]

    def test_sensitive_terms_redacted(self) -> None:
        """Test that every sensitive term is redacted case-insensitively."""
        result = sanitize_error_message(
            "Bad PASSWORD for user; Token expired; secret=abc; "
            "Credential mismatch; Authorization header; api_key=1; API-KEY=2"
        )

        lowered = result.lower()
        for term in ("password", "token", "secret", "credential", "authorization", "key"):
            assert term not in lowered
        assert "[REDACTED]" in result

    def test_truncated_to_200_characters(self) -> None:
        """Test that long messages are bounded."""
        assert len(sanitize_error_message("x" * 1000)) == 200

    @pytest.mark.parametrize(
        "message",
        [
            "password" * 50,
            "my_api_key_is_here",
            "TOKEN token ToKeN",
            "secretsecret" + "y" * 300,
            "api-key apikey api_key",
        ],
    )
    def test_never_leaks_sensitive_terms(self, message: str) -> None:
        """Test that normalized messages never contain sensitive terms."""
        result = normalize(Exception(message)).message.lower()
        for term in ("password", "token", "secret", "api_key"):
            assert term not in result


class TestUserFriendlyMessage:
    """Tests for get_user_friendly_message."""

    @pytest.mark.parametrize(
        "code",
        ["PGRST116", "23505", "23503", "42501", "42P01", "22P02"],
    )
    def test_known_codes_use_fixed_messages(self, code: str) -> None:
        """Test that mapped backend codes never expose the raw message."""
        error = BackendError("internal detail about table celulares", code=code)
        assert get_user_friendly_message(error) == ERROR_MESSAGES[code]

    def test_unknown_code_uses_sanitized_message(self) -> None:
        """Test that unmapped codes fall back to the sanitized message."""
        error = BackendError("bad token in request", code="XX000")
        assert get_user_friendly_message(error) == "bad [REDACTED] in request"

    def test_none_gives_default(self) -> None:
        """Test that a missing error yields the default message."""
        assert get_user_friendly_message(None) == ERROR_MESSAGES["DEFAULT"]

    def test_type_error_is_network_message(self) -> None:
        """Test that transport-level type errors read as connection problems."""
        assert get_user_friendly_message(TypeError("x")) == ERROR_MESSAGES["NETWORK_ERROR"]

    def test_timeout_message(self) -> None:
        """Test that httpx timeouts read as timeouts."""
        error = httpx.ReadTimeout("timed out")
        assert get_user_friendly_message(error) == ERROR_MESSAGES["TIMEOUT"]


class TestNormalize:
    """Tests for normalize and report_error."""

    def test_normalize_shape(self) -> None:
        """Test that normalized errors carry message, code, context and timestamp."""
        info = normalize(NotFound("gone"), "products.get_by_id")

        assert info.message == ERROR_MESSAGES["PGRST116"]
        assert info.code == "PGRST116"
        assert info.context == "products.get_by_id"
        assert datetime.fromisoformat(info.timestamp).tzinfo is not None

    def test_normalize_validation_error(self) -> None:
        """Test that validation errors keep their joined message."""
        error = ValidationError(["Product name is required", "Product price is required"])
        info = normalize(error)

        assert info.code == "VALIDATION_ERROR"
        assert info.message == "Product name is required. Product price is required"

    def test_normalize_plain_exception(self) -> None:
        """Test that unknown exceptions get the UNKNOWN code."""
        assert normalize(RuntimeError("boom")).code == "UNKNOWN"

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (
                Unauthorized("Invalid email or password", code="INVALID_CREDENTIALS"),
                "Invalid email or password",
            ),
            (
                ValidationError(["Password is required"], code="MISSING_CREDENTIALS"),
                "Email and password are required",
            ),
        ],
    )
    def test_credential_messages_not_redacted(self, error: Exception, expected: str) -> None:
        """Test that sign-in errors read the same fixed text users expect."""
        info = normalize(error)

        assert info.message == expected
        assert "[REDACTED]" not in info.message

    def test_report_error_logs_detail_outside_production(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that full detail is logged but not returned."""
        error = BackendError("failed", code="XX000", details="secret detail", hint="try x")

        with caplog.at_level(logging.ERROR):
            info = report_error(error, "products.create")

        assert "secret detail" in caplog.text
        assert "products.create" in caplog.text
        assert "detail" not in info.message

    def test_report_error_silent_in_production(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that production does not log backend internals."""
        error = BackendError("failed", details="internal")

        with caplog.at_level(logging.ERROR):
            report_error(error, "products.create", production=True)

        assert "internal" not in caplog.text


class TestClassification:
    """Tests for is_network_error, is_auth_error and classify_backend_error."""

    @pytest.mark.parametrize(
        "error",
        [
            TypeError("x"),
            Exception("Failed to fetch"),
            Exception("network unreachable"),
            BackendError("x", code="NETWORK_ERROR"),
            NetworkError("down"),
            httpx.ConnectError("refused"),
        ],
    )
    def test_network_errors(self, error: Exception) -> None:
        """Test errors recognized as network failures."""
        assert is_network_error(error) is True

    def test_not_network_error(self) -> None:
        """Test that ordinary errors are not network failures."""
        assert is_network_error(ValueError("bad")) is False
        assert is_network_error(None) is False

    @pytest.mark.parametrize(
        "error",
        [
            BackendError("x", code="42501"),
            BackendError("x", status=401),
            BackendError("x", status=403),
            Exception("Unauthorized access"),
            Unauthorized("login"),
            PermissionDenied("no"),
        ],
    )
    def test_auth_errors(self, error: Exception) -> None:
        """Test errors recognized as auth failures."""
        assert is_auth_error(error) is True

    def test_not_auth_error(self) -> None:
        """Test that other errors are not auth failures."""
        assert is_auth_error(BackendError("x", status=500)) is False
        assert is_auth_error(InvalidIdentifier()) is False

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (BackendError("x", code="PGRST116", status=406), NotFound),
            (BackendError("x", code="42501", status=403), PermissionDenied),
            (BackendError("x", status=401), Unauthorized),
            (BackendError("x", code="NETWORK_ERROR"), NetworkError),
            (BackendError("x", code="TIMEOUT"), Timeout),
        ],
    )
    def test_classify_backend_error(self, error: BackendError, expected: type) -> None:
        """Test conversion of backend errors into the taxonomy."""
        classified = classify_backend_error(error)
        assert isinstance(classified, expected)
        assert classified.__cause__ is error

    def test_classify_unknown_unchanged(self) -> None:
        """Test that unclassifiable errors are returned as-is."""
        error = BackendError("x", code="23505", status=409)
        assert classify_backend_error(error) is error

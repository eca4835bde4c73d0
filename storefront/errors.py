"""Error taxonomy and normalization for the storefront service layer.

Services raise the typed exceptions defined here. ``normalize`` is the single
place where an exception is turned into user-facing text; that text is always
sanitized and at most 200 characters long. Backend-internal detail (details,
hint, traceback) is only ever written to the log, and only outside production.
"""

import logging
import re
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 200
REDACTED = "[REDACTED]"

# Backend codes: PostgREST / PostgreSQL plus client-side sentinels
NOT_FOUND_CODE = "PGRST116"
UNIQUE_VIOLATION_CODE = "23505"
FOREIGN_KEY_VIOLATION_CODE = "23503"
PERMISSION_DENIED_CODE = "42501"
UNDEFINED_TABLE_CODE = "42P01"
INVALID_INPUT_CODE = "22P02"
NETWORK_ERROR_CODE = "NETWORK_ERROR"
TIMEOUT_CODE = "TIMEOUT"
UNKNOWN_CODE = "UNKNOWN"

# Service-side codes whose text is fixed (it would otherwise trip redaction)
INVALID_CREDENTIALS_CODE = "INVALID_CREDENTIALS"
MISSING_CREDENTIALS_CODE = "MISSING_CREDENTIALS"

ERROR_MESSAGES: dict[str, str] = {
    NOT_FOUND_CODE: "No results found",
    UNIQUE_VIOLATION_CODE: "This item already exists",
    FOREIGN_KEY_VIOLATION_CODE: "This item cannot be deleted",
    PERMISSION_DENIED_CODE: "You do not have permission for this action",
    UNDEFINED_TABLE_CODE: "Resource not found",
    INVALID_INPUT_CODE: "Invalid data provided",
    NETWORK_ERROR_CODE: "Connection error. Check your internet connection.",
    TIMEOUT_CODE: "The operation took too long. Please try again.",
    INVALID_CREDENTIALS_CODE: "Invalid email or password",
    MISSING_CREDENTIALS_CODE: "Email and password are required",
    "DEFAULT": "An error occurred. Please try again later.",
}

SENSITIVE_PATTERNS = (
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"key", re.IGNORECASE),
    re.compile(r"credential", re.IGNORECASE),
    re.compile(r"authorization", re.IGNORECASE),
    re.compile(r"api[-_]?key", re.IGNORECASE),
)


class StorefrontError(Exception):
    """Base class for every error raised by the service layer."""

    code = UNKNOWN_CODE

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(StorefrontError):
    """Caller-supplied data violates domain rules.

    Attributes:
        errors: Every individual violation found during the scan.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str], code: str | None = None) -> None:
        self.errors = list(errors)
        super().__init__(". ".join(self.errors), code)


class InvalidIdentifier(StorefrontError):
    """An entity reference is not a well-formed UUID."""

    code = "INVALID_ID"

    def __init__(self, message: str = "Invalid identifier") -> None:
        super().__init__(message)


class NotFound(StorefrontError):
    """The referenced entity does not exist."""

    code = NOT_FOUND_CODE


class PermissionDenied(StorefrontError):
    """The caller is authenticated but not allowed to perform the action."""

    code = PERMISSION_DENIED_CODE


class Unauthorized(StorefrontError):
    """The caller is not authenticated (or the session is no longer valid)."""

    code = "UNAUTHORIZED"


class TooManyAttempts(StorefrontError):
    """Login attempts for an account are temporarily blocked."""

    code = "TOO_MANY_ATTEMPTS"

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"Too many login attempts. Try again in {retry_after} seconds."
        )


class NetworkError(StorefrontError):
    """The backend could not be reached."""

    code = NETWORK_ERROR_CODE


class Timeout(StorefrontError):
    """The backend did not answer in time."""

    code = TIMEOUT_CODE


class ImageError(StorefrontError):
    """Base class for asset validation and storage failures."""


class NoFile(ImageError):
    code = "NO_FILE"


class InvalidFile(ImageError):
    code = "INVALID_FILE"


class InvalidType(ImageError):
    code = "INVALID_TYPE"


class TooLarge(ImageError):
    code = "FILE_TOO_LARGE"


class Empty(ImageError):
    code = "EMPTY_FILE"


class UploadFailed(ImageError):
    code = "UPLOAD_FAILED"


class UrlUnavailable(ImageError):
    code = "URL_ERROR"


class DeleteFailed(ImageError):
    code = "DELETE_FAILED"


class BackendError(StorefrontError):
    """An error reported by the backend that has no more specific kind.

    Attributes:
        status: HTTP status code of the failed response, if any.
        details: Backend-internal detail. Never shown to users.
        hint: Backend-internal hint. Never shown to users.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
        details: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, code or UNKNOWN_CODE)
        self.status = status
        self.details = details
        self.hint = hint


@dataclass(frozen=True)
class NormalizedError:
    """User-facing view of an error.

    Attributes:
        message: Sanitized message, at most 200 characters
        code: Stable error code
        context: Operation that failed (e.g. 'products.create')
        timestamp: ISO-8601 UTC timestamp of normalization
    """

    message: str
    code: str
    context: str
    timestamp: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def sanitize_error_message(message: Any) -> str:
    """Redact sensitive terms from a message and bound its length.

    Args:
        message: Raw message text. Non-strings and empty strings yield the
            default message.

    Returns:
        The redacted message, truncated to 200 characters.
    """
    if not message or not isinstance(message, str):
        return ERROR_MESSAGES["DEFAULT"]

    sanitized = message
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub(REDACTED, sanitized)

    return sanitized[:MAX_MESSAGE_LENGTH]


def _error_code(error: Any) -> str | None:
    code = getattr(error, "code", None)
    return str(code) if code is not None else None


def _error_message(error: Any) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str):
        return message
    if isinstance(error, BaseException):
        return str(error)
    return ""


def _error_status(error: Any) -> int | None:
    status = getattr(error, "status", None)
    if status is None and isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
    return status if isinstance(status, int) else None


def is_network_error(error: Any) -> bool:
    """Whether an error looks like a transient connectivity failure.

    Callers use this to decide whether a retry makes sense.
    """
    if error is None:
        return False
    if isinstance(error, (TypeError, NetworkError, httpx.TransportError)):
        return True
    message = _error_message(error).lower()
    if "fetch" in message or "network" in message:
        return True
    return _error_code(error) == NETWORK_ERROR_CODE


def is_timeout_error(error: Any) -> bool:
    """Whether an error is a request timeout."""
    if isinstance(error, (Timeout, httpx.TimeoutException)):
        return True
    return _error_code(error) == TIMEOUT_CODE


def is_auth_error(error: Any) -> bool:
    """Whether an error means the session must re-authenticate.

    Auth errors are terminal for the current session: they are never retried.
    """
    if error is None:
        return False
    if isinstance(error, (Unauthorized, PermissionDenied)):
        return True
    if _error_code(error) == PERMISSION_DENIED_CODE:
        return True
    if _error_status(error) in (401, 403):
        return True
    return "unauthorized" in _error_message(error).lower()


def get_user_friendly_message(error: Any) -> str:
    """Map an error to the text shown to the user."""
    if error is None:
        return ERROR_MESSAGES["DEFAULT"]

    code = _error_code(error)
    if code and code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code]

    if is_timeout_error(error):
        return ERROR_MESSAGES[TIMEOUT_CODE]

    if isinstance(error, (TypeError, httpx.TransportError)):
        return ERROR_MESSAGES[NETWORK_ERROR_CODE]

    message = _error_message(error)
    if message:
        return sanitize_error_message(message)

    return ERROR_MESSAGES["DEFAULT"]


def normalize(error: Any, context: str = "") -> NormalizedError:
    """Convert any error into its user-facing representation."""
    return NormalizedError(
        message=get_user_friendly_message(error),
        code=_error_code(error) or UNKNOWN_CODE,
        context=context,
        timestamp=datetime.now(UTC).isoformat(),
    )


def report_error(
    error: Any,
    context: str,
    production: bool = False,
) -> NormalizedError:
    """Normalize an error and log its full detail outside production.

    Args:
        error: The error to report.
        context: Name of the failing operation.
        production: Whether the process runs in production mode.

    Returns:
        The normalized error.
    """
    info = normalize(error, context)

    if not production:
        logger.error(
            "[%s] %s (code=%s, details=%s, hint=%s)",
            context,
            _error_message(error) or info.message,
            info.code,
            getattr(error, "details", None),
            getattr(error, "hint", None),
            exc_info=error if isinstance(error, BaseException) else None,
        )

    return info


def classify_backend_error(error: BackendError) -> StorefrontError:
    """Convert a raw backend error into the most specific taxonomy error.

    Errors without a more specific kind are returned unchanged.
    """
    if error.code == NOT_FOUND_CODE:
        classified: StorefrontError = NotFound(error.message)
    elif error.code == PERMISSION_DENIED_CODE or error.status == 403:
        classified = PermissionDenied(error.message)
    elif error.status == 401:
        classified = Unauthorized(error.message)
    elif error.code == NETWORK_ERROR_CODE:
        classified = NetworkError(error.message)
    elif error.code == TIMEOUT_CODE:
        classified = Timeout(error.message)
    else:
        return error
    classified.__cause__ = error
    return classified

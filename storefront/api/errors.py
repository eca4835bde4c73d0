"""Rendering of service-layer errors as HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.errors import (
    BackendError,
    DeleteFailed,
    ImageError,
    InvalidIdentifier,
    NetworkError,
    NotFound,
    PermissionDenied,
    StorefrontError,
    Timeout,
    TooLarge,
    TooManyAttempts,
    Unauthorized,
    UploadFailed,
    UrlUnavailable,
    ValidationError,
    normalize,
)

# Checked in order; the first matching class wins
STATUS_CODES: tuple[tuple[type[StorefrontError], int], ...] = (
    (ValidationError, 400),
    (InvalidIdentifier, 400),
    (Unauthorized, 401),
    (PermissionDenied, 403),
    (NotFound, 404),
    (TooLarge, 413),
    (TooManyAttempts, 429),
    (UploadFailed, 502),
    (DeleteFailed, 502),
    (UrlUnavailable, 502),
    (ImageError, 400),
    (NetworkError, 503),
    (Timeout, 504),
    (BackendError, 502),
)


def status_for(error: StorefrontError) -> int:
    """HTTP status code for a service-layer error."""
    for error_class, status_code in STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Render a StorefrontError as ``{"error": NormalizedError}``."""
    info = normalize(exc, context=f"{request.method} {request.url.path}")
    headers = None
    if isinstance(exc, TooManyAttempts):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": info.to_dict()},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)  # type: ignore[arg-type]

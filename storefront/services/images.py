"""Product image uploads against the backend object store."""

import logging
import re
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from storefront.config import Settings, get_settings
from storefront.errors import (
    BackendError,
    DeleteFailed,
    Empty,
    ImageError,
    InvalidFile,
    InvalidType,
    NoFile,
    TooLarge,
    UploadFailed,
    UrlUnavailable,
    report_error,
)
from storefront.services.backend import BackendClient

logger = logging.getLogger(__name__)

MAX_BASENAME_LENGTH = 100
DEFAULT_EXTENSION = "jpg"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9.-]")
_REPEATED_DASHES = re.compile(r"-+")
_REPEATED_DOTS = re.compile(r"\.{2,}")
_EXTENSION = re.compile(r"\.([^/.]+)$")


@dataclass(frozen=True)
class ImageFile:
    """An uploaded image held in memory.

    Attributes:
        filename: Name of the file on the client
        content_type: MIME type declared by the client
        data: File contents
    """

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class UploadState(str, Enum):
    """Lifecycle of a single upload."""

    IDLE = "idle"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    PUBLIC_URL_RESOLVED = "public_url_resolved"
    FAILED = "failed"


# Allowed transitions: Idle -> Validating -> Uploading -> (Resolved | Failed)
_TRANSITIONS: dict[UploadState, set[UploadState]] = {
    UploadState.IDLE: {UploadState.VALIDATING},
    UploadState.VALIDATING: {UploadState.UPLOADING, UploadState.FAILED},
    UploadState.UPLOADING: {UploadState.PUBLIC_URL_RESOLVED, UploadState.FAILED},
    UploadState.PUBLIC_URL_RESOLVED: set(),
    UploadState.FAILED: set(),
}


def sanitize_file_name(name: Any) -> str:
    """Reduce a file name to lowercase ``[a-z0-9.-]`` characters.

    Disallowed characters become dashes, runs of dashes collapse to one and
    the result is capped at 100 characters. Empty results become ``file``.
    """
    if not name or not isinstance(name, str):
        return "file"

    sanitized = _UNSAFE_CHARS.sub("-", name.lower())
    sanitized = _REPEATED_DASHES.sub("-", sanitized)
    sanitized = _REPEATED_DOTS.sub(".", sanitized)
    sanitized = sanitized.strip("-.")[:MAX_BASENAME_LENGTH].strip("-.")
    return sanitized or "file"


def generate_asset_key(original_name: Any) -> str:
    """Build a collision-resistant storage key for an upload.

    Format: ``{ms timestamp}-{base-36 random token}-{basename}.{ext}``.
    """
    name = original_name if isinstance(original_name, str) else ""

    match = _EXTENSION.search(name)
    extension = re.sub(r"[^a-z0-9]", "", match.group(1).lower()) if match else ""
    basename = name[: match.start()] if match else name

    timestamp = int(time.time() * 1000)
    token = _to_base36(secrets.randbits(64))
    return f"{timestamp}-{token}-{sanitize_file_name(basename)}.{extension or DEFAULT_EXTENSION}"


def _to_base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    result = ""
    while number:
        number, remainder = divmod(number, 36)
        result = digits[remainder] + result
    return result


def validate_image(file: Any, settings: Settings | None = None) -> ImageFile:
    """Check an upload before it reaches the store.

    Checks run in a fixed order and the first failure wins.

    Raises:
        NoFile: No file was supplied.
        InvalidFile: The value is not an ImageFile.
        InvalidType: The MIME type is not an allowed image type.
        TooLarge: The file exceeds the configured maximum size.
        Empty: The file has no content.
    """
    settings = settings or get_settings()

    if file is None:
        raise NoFile("No file provided")

    if not isinstance(file, ImageFile):
        raise InvalidFile("Invalid file")

    if file.content_type not in settings.image_allowed_types:
        raise InvalidType("File type not allowed. Use JPG, PNG or WebP")

    if file.size > settings.image_max_size:
        max_size_mb = settings.image_max_size / (1024 * 1024)
        raise TooLarge(f"File too large. Maximum {max_size_mb:g}MB")

    if file.size == 0:
        raise Empty("Empty file")

    return file


class ImageUpload:
    """A single upload moving through its states.

    Attributes:
        state: Current UploadState
        key: Storage key, once generated
        url: Public URL, once resolved
        error: The failure, if the upload failed
    """

    def __init__(self, file: Any, bucket: str) -> None:
        self.file = file
        self.bucket = bucket
        self.state = UploadState.IDLE
        self.key: str | None = None
        self.url: str | None = None
        self.error: ImageError | None = None

    def _advance(self, state: UploadState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid upload transition {self.state.value} -> {state.value}")
        logger.debug("Upload %s: %s -> %s", self.key or "-", self.state.value, state.value)
        self.state = state

    def _fail(self, error: ImageError) -> ImageError:
        self.error = error
        self._advance(UploadState.FAILED)
        return error

    async def run(self, client: BackendClient, settings: Settings) -> str:
        """Validate, store and publish the file.

        Returns:
            The public URL of the stored image.

        Raises:
            ImageError: A validation error, UploadFailed or UrlUnavailable.
        """
        self._advance(UploadState.VALIDATING)
        try:
            image = validate_image(self.file, settings)
        except ImageError as e:
            self._fail(e)
            raise

        self.key = generate_asset_key(image.filename)
        self._advance(UploadState.UPLOADING)

        try:
            await client.upload_object(
                self.bucket,
                self.key,
                image.data,
                content_type=image.content_type,
                cache_control=settings.image_cache_control,
                upsert=False,
            )
        except BackendError as e:
            report_error(e, "images.upload", production=settings.is_production)
            raise self._fail(UploadFailed("Error uploading the image")) from e

        url = client.get_public_url(self.bucket, self.key)
        if not url:
            raise self._fail(UrlUnavailable("Could not get the image URL"))

        self.url = url
        self._advance(UploadState.PUBLIC_URL_RESOLVED)
        logger.info("Uploaded image %s to bucket %s", self.key, self.bucket)
        return url


def extract_asset_key(url: Any) -> str | None:
    """Return the trailing path segment of an image URL, if there is one."""
    if not url or not isinstance(url, str):
        return None
    key = url.split("?", 1)[0].rstrip().split("/")[-1]
    return key or None


class ImageService:
    """Upload and delete product images."""

    def __init__(self, client: BackendClient, settings: Settings | None = None) -> None:
        self.client = client
        self.settings = settings or client.settings

    async def upload(self, file: Any, bucket: str | None = None) -> str:
        """Upload an image and return its public URL."""
        upload = ImageUpload(file, bucket or self.settings.images_bucket)
        return await upload.run(self.client, self.settings)

    async def delete(self, url: Any, bucket: str | None = None) -> bool:
        """Delete the image behind ``url``.

        Returns:
            False when there is nothing to delete, True once deleted.

        Raises:
            DeleteFailed: If the store reports an error.
        """
        key = extract_asset_key(url)
        if key is None:
            return False

        try:
            await self.client.remove_objects(bucket or self.settings.images_bucket, [key])
        except BackendError as e:
            report_error(e, "images.delete", production=self.settings.is_production)
            raise DeleteFailed("Error deleting the image") from e

        logger.info("Deleted image %s", key)
        return True

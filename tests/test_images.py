"""Tests for product image uploads."""

import re
from unittest.mock import AsyncMock

import pytest

from storefront.config import Settings
from storefront.errors import (
    BackendError,
    DeleteFailed,
    Empty,
    InvalidFile,
    InvalidType,
    NoFile,
    TooLarge,
    UploadFailed,
    UrlUnavailable,
)
from storefront.services.images import (
    ImageFile,
    ImageService,
    ImageUpload,
    UploadState,
    extract_asset_key,
    generate_asset_key,
    sanitize_file_name,
    validate_image,
)

KEY_PATTERN = re.compile(r"^\d{13}-[0-9a-z]+-[a-z0-9.-]+\.[a-z0-9]+$")


def make_image(
    filename: str = "photo.jpg",
    content_type: str = "image/jpeg",
    size: int = 1024,
) -> ImageFile:
    return ImageFile(filename=filename, content_type=content_type, data=b"\xff" * size)


class TestValidateImage:
    """Tests for validate_image."""

    def test_valid_image(self, settings: Settings) -> None:
        """Test that a small JPEG passes."""
        image = make_image()
        assert validate_image(image, settings) is image

    @pytest.mark.parametrize("content_type", ["image/jpeg", "image/png", "image/webp"])
    def test_allowed_types(self, settings: Settings, content_type: str) -> None:
        """Test every allowed MIME type."""
        validate_image(make_image(content_type=content_type), settings)

    def test_no_file(self, settings: Settings) -> None:
        """Test that a missing file raises NoFile."""
        with pytest.raises(NoFile):
            validate_image(None, settings)

    def test_not_a_blob(self, settings: Settings) -> None:
        """Test that arbitrary objects raise InvalidFile."""
        with pytest.raises(InvalidFile):
            validate_image(b"raw bytes", settings)

    def test_invalid_type(self, settings: Settings) -> None:
        """Test that non-image types raise InvalidType."""
        with pytest.raises(InvalidType, match="JPG, PNG or WebP"):
            validate_image(make_image(content_type="image/gif"), settings)

    def test_too_large(self, settings: Settings) -> None:
        """Test that files above 2 MiB raise TooLarge."""
        with pytest.raises(TooLarge, match="2MB"):
            validate_image(make_image(size=2 * 1024 * 1024 + 1), settings)

    def test_exactly_max_size_allowed(self, settings: Settings) -> None:
        """Test that the limit itself is allowed."""
        validate_image(make_image(size=2 * 1024 * 1024), settings)

    def test_empty(self, settings: Settings) -> None:
        """Test that zero-byte files raise Empty."""
        with pytest.raises(Empty):
            validate_image(make_image(size=0), settings)

    def test_type_checked_before_size(self, settings: Settings) -> None:
        """Test the fixed check order: type wins over emptiness."""
        with pytest.raises(InvalidType):
            validate_image(make_image(content_type="text/plain", size=0), settings)


class TestAssetKeys:
    """Tests for storage key generation."""

    def test_sanitize_file_name(self) -> None:
        """Test that names are reduced to safe characters."""
        assert sanitize_file_name("My Photo (1)") == "my-photo-1"
        assert sanitize_file_name("___") == "file"
        assert sanitize_file_name(None) == "file"
        assert len(sanitize_file_name("a" * 300)) == 100

    def test_key_format(self) -> None:
        """Test the timestamp-token-name.ext layout."""
        key = generate_asset_key("iPhone 15 Pro.JPG")

        assert KEY_PATTERN.match(key)
        assert key.endswith("-iphone-15-pro.jpg")

    def test_missing_extension_defaults_to_jpg(self) -> None:
        """Test names without an extension."""
        assert generate_asset_key("photo").endswith("-photo.jpg")

    @pytest.mark.parametrize(
        "name",
        ["../../etc/passwd", "..\\..\\windows\\system.ini", "a/../../b.png", "....png"],
    )
    def test_no_path_traversal(self, name: str) -> None:
        """Test that hostile names cannot escape the bucket."""
        key = generate_asset_key(name)

        assert "/" not in key
        assert "\\" not in key
        assert ".." not in key
        assert KEY_PATTERN.match(key)

    def test_same_name_keys_are_distinct(self) -> None:
        """Test that many uploads of the same file within a burst do not collide."""
        keys = {generate_asset_key("photo.jpg") for _ in range(2000)}
        assert len(keys) == 2000

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://x.co/storage/v1/object/public/phones/123-abc-a.jpg", "123-abc-a.jpg"),
            ("https://x.co/phones/a.jpg?token=1", "a.jpg"),
            ("https://x.co/phones/", None),
            ("", None),
            (None, None),
            (42, None),
        ],
    )
    def test_extract_asset_key(self, url: object, expected: str | None) -> None:
        """Test extracting the object key from a public URL."""
        assert extract_asset_key(url) == expected


class TestImageUpload:
    """Tests for the upload state machine."""

    async def test_successful_upload(self, backend: AsyncMock, settings: Settings) -> None:
        """Test Idle -> Validating -> Uploading -> PublicUrlResolved."""
        upload = ImageUpload(make_image(), "phones")
        assert upload.state is UploadState.IDLE

        url = await upload.run(backend, settings)

        assert upload.state is UploadState.PUBLIC_URL_RESOLVED
        assert upload.url == url
        assert url.endswith(f"/phones/{upload.key}")
        backend.upload_object.assert_awaited_once()
        call_args = backend.upload_object.call_args
        assert call_args.kwargs["upsert"] is False
        assert call_args.kwargs["cache_control"] == "31536000"
        assert call_args.kwargs["content_type"] == "image/jpeg"

    async def test_validation_failure(self, backend: AsyncMock, settings: Settings) -> None:
        """Test that invalid files fail before any store call."""
        upload = ImageUpload(None, "phones")

        with pytest.raises(NoFile):
            await upload.run(backend, settings)

        assert upload.state is UploadState.FAILED
        assert isinstance(upload.error, NoFile)
        backend.upload_object.assert_not_awaited()

    async def test_store_rejection(self, backend: AsyncMock, settings: Settings) -> None:
        """Test that store errors become UploadFailed."""
        backend.upload_object.side_effect = BackendError("The resource already exists", status=409)
        upload = ImageUpload(make_image(), "phones")

        with pytest.raises(UploadFailed):
            await upload.run(backend, settings)

        assert upload.state is UploadState.FAILED

    async def test_url_unavailable(self, backend: AsyncMock, settings: Settings) -> None:
        """Test that a missing public URL after a write is reported."""
        backend.get_public_url = lambda bucket, key: ""
        upload = ImageUpload(make_image(), "phones")

        with pytest.raises(UrlUnavailable):
            await upload.run(backend, settings)

        assert upload.state is UploadState.FAILED

    async def test_cannot_run_twice(self, backend: AsyncMock, settings: Settings) -> None:
        """Test that a finished upload cannot restart."""
        upload = ImageUpload(make_image(), "phones")
        await upload.run(backend, settings)

        with pytest.raises(RuntimeError, match="Invalid upload transition"):
            await upload.run(backend, settings)


class TestImageService:
    """Tests for ImageService."""

    async def test_upload_uses_default_bucket(self, backend: AsyncMock, settings: Settings) -> None:
        """Test that uploads go to the configured bucket."""
        service = ImageService(backend, settings)

        url = await service.upload(make_image())

        assert "/public/phones/" in url
        assert backend.upload_object.call_args.args[0] == "phones"

    async def test_delete_success(self, backend: AsyncMock, settings: Settings) -> None:
        """Test deleting an image by its URL."""
        service = ImageService(backend, settings)

        result = await service.delete("https://x.co/storage/v1/object/public/phones/a.jpg")

        assert result is True
        backend.remove_objects.assert_awaited_once_with("phones", ["a.jpg"])

    @pytest.mark.parametrize("url", [None, "", 42, "https://x.co/phones/"])
    async def test_delete_nothing(
        self, backend: AsyncMock, settings: Settings, url: object
    ) -> None:
        """Test that deleting nothing is a no-op returning False."""
        service = ImageService(backend, settings)

        assert await service.delete(url) is False
        backend.remove_objects.assert_not_awaited()

    async def test_delete_store_error(self, backend: AsyncMock, settings: Settings) -> None:
        """Test that store errors raise DeleteFailed."""
        backend.remove_objects.side_effect = BackendError("boom", status=500)
        service = ImageService(backend, settings)

        with pytest.raises(DeleteFailed):
            await service.delete("https://x.co/phones/a.jpg")

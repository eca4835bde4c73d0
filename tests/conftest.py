"""Shared test fixtures."""

import os

# Required configuration must exist before the app module is imported
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402

from storefront.config import Settings  # noqa: E402
from storefront.services.backend import BackendClient  # noqa: E402

PRODUCT_ID = "550e8400-e29b-41d4-a716-446655440000"


def make_product_row(**overrides: object) -> dict:
    """A product row as the backend returns it."""
    row = {
        "id": PRODUCT_ID,
        "name": "iPhone 15",
        "price": 4999.9,
        "brand": "Apple",
        "storage": "128GB",
        "ram": "6GB",
        "camera": "48MP",
        "battery": "3349mAh",
        "color": "Black",
        "condition": "New",
        "status": "Normal",
        "image_url": None,
        "created_at": "2026-01-15T10:00:00+00:00",
    }
    row.update(overrides)
    return row


@pytest.fixture
def settings() -> Settings:
    """Settings for tests, independent of the environment."""
    return Settings(
        supabase_url="https://test-project.supabase.co",
        supabase_anon_key="test-anon-key",
        environment="test",
    )


@pytest.fixture
def backend(settings: Settings) -> AsyncMock:
    """A mocked backend client."""
    client = AsyncMock(spec=BackendClient)
    client.settings = settings
    client.get_public_url = lambda bucket, key: (
        f"https://test-project.supabase.co/storage/v1/object/public/{bucket}/{key}"
    )
    return client

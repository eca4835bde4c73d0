"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The instance is frozen: it is built once at startup and handed to every
    component that needs it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Backend-as-a-service
    supabase_url: str
    supabase_anon_key: str
    supabase_timeout: float = 30.0  # seconds
    application_name: str = "cf-cell"

    # Tables and storage
    products_table: str = "products"
    images_bucket: str = "phones"

    # Pagination
    pagination_default_limit: int = 20
    pagination_max_limit: int = 100
    featured_default_limit: int = 5
    featured_max_limit: int = 10

    # Image uploads
    image_max_size: int = 2 * 1024 * 1024
    image_allowed_types: tuple[str, ...] = ("image/jpeg", "image/png", "image/webp")
    image_cache_control: str = "31536000"

    # Contact
    whatsapp_number: str = "5511999999999"
    whatsapp_quote_technical: str = "Olá! Gostaria de um orçamento para assistência técnica"
    whatsapp_quote_purchase: str = "Olá! Gostaria de um orçamento para compra de celular"
    whatsapp_quote_other: str = "Olá! Gostaria de um orçamento"
    whatsapp_product_interest: str = "Olá! Tenho interesse no {product}"
    instagram_url: str = "https://www.instagram.com/cf_assistenciatecnica_/"

    # Admin login throttling
    login_max_attempts: int = 5
    login_lockout_seconds: int = 15 * 60

    # Application
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @field_validator("supabase_url", "supabase_anon_key")
    @classmethod
    def require_value(cls, v: str) -> str:
        """Reject blank backend credentials."""
        if not v or not v.strip():
            raise ValueError("must be set (check your environment variables)")
        return v.strip()

    @field_validator("supabase_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the backend URL so paths can be appended directly."""
        return v.rstrip("/")

    @field_validator("pagination_default_limit", "pagination_max_limit")
    @classmethod
    def positive_limit(cls, v: int) -> int:
        """Pagination limits must be at least 1."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def check_production_requirements(self) -> "Settings":
        """Production deployments must talk to the backend over HTTPS."""
        if self.is_production and not self.supabase_url.startswith("https://"):
            raise ValueError("supabase_url must use HTTPS in production")
        if self.pagination_default_limit > self.pagination_max_limit:
            raise ValueError("pagination_default_limit exceeds pagination_max_limit")
        return self

    @property
    def is_production(self) -> bool:
        """Whether the application runs in production mode."""
        return self.environment.lower() in ("production", "prod")


@lru_cache
def get_settings() -> Settings:
    """Build the settings once and reuse them for the process lifetime.

    Raises:
        pydantic.ValidationError: If required configuration is missing or invalid.
    """
    return Settings()  # type: ignore[call-arg]

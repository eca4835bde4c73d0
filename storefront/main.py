"""FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront.api.auth import router as auth_router
from storefront.api.contact import router as contact_router
from storefront.api.errors import register_exception_handlers
from storefront.api.products import images_router
from storefront.api.products import router as products_router
from storefront.cache import QueryCache
from storefront.config import get_settings
from storefront.services.auth import LoginThrottle
from storefront.services.backend import BackendClient

# Fails fast on missing or invalid configuration
settings = get_settings()


def configure_logging(level: str) -> None:
    """Configure root logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the shared backend client and cache for the app's lifetime."""
    configure_logging(settings.log_level)
    async with BackendClient(settings) as backend:
        app.state.backend = backend
        app.state.query_cache = QueryCache()
        app.state.login_throttle = LoginThrottle(
            max_attempts=settings.login_max_attempts,
            window=settings.login_lockout_seconds,
        )
        yield
        await app.state.query_cache.wait_for_refreshes()


app = FastAPI(
    title="CF Cell Storefront",
    description="Product catalog, image uploads and back-office API for the CF Cell phone shop",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

register_exception_handlers(app)

# Include API routers
app.include_router(products_router)
app.include_router(images_router)
app.include_router(auth_router)
app.include_router(contact_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}

"""FastAPI routes for the storefront."""

from storefront.api.products import router as products_router

__all__ = ["products_router"]

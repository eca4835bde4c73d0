"""Domain models for the storefront."""

from storefront.models.product import FeaturedProduct, Product, ProductPage

__all__ = [
    "FeaturedProduct",
    "Product",
    "ProductPage",
]

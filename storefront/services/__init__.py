"""Business logic services for the storefront."""

from storefront.services.auth import AdminSession, AuthService, LoginThrottle
from storefront.services.backend import BackendClient, QueryResult
from storefront.services.catalog import CatalogService, MutationKind
from storefront.services.images import ImageFile, ImageService, UploadState
from storefront.services.products import ProductService

__all__ = [
    "AdminSession",
    "AuthService",
    "BackendClient",
    "CatalogService",
    "ImageFile",
    "ImageService",
    "LoginThrottle",
    "MutationKind",
    "ProductService",
    "QueryResult",
    "UploadState",
]

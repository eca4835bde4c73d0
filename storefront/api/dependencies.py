"""FastAPI dependencies shared by the routers."""

from typing import Annotated

from fastapi import Depends, Request, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from storefront.config import Settings, get_settings
from storefront.services.auth import AuthService
from storefront.services.backend import BackendClient
from storefront.services.catalog import CatalogService
from storefront.services.images import ImageFile, ImageService
from storefront.services.products import ProductService

bearer_scheme = HTTPBearer(auto_error=False)


def get_backend(request: Request) -> BackendClient:
    """The application-wide backend client opened at startup."""
    return request.app.state.backend  # type: ignore[no-any-return]


def get_catalog(
    request: Request,
    backend: Annotated[BackendClient, Depends(get_backend)],
) -> CatalogService:
    """Catalog for anonymous storefront reads."""
    return CatalogService(ProductService(backend), cache=request.app.state.query_cache)


def get_auth_service(
    request: Request,
    backend: Annotated[BackendClient, Depends(get_backend)],
) -> AuthService:
    return AuthService(backend, throttle=request.app.state.login_throttle)


async def require_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> str:
    """Require a bearer token that the backend verifies as an admin session.

    Returns:
        The verified access token.
    """
    token = credentials.credentials if credentials else None
    await auth.require_admin(token)
    return token  # type: ignore[return-value]


def get_admin_catalog(
    request: Request,
    backend: Annotated[BackendClient, Depends(get_backend)],
    token: Annotated[str, Depends(require_admin)],
) -> CatalogService:
    """Catalog whose writes run as the signed-in admin."""
    products = ProductService(backend.with_access_token(token))
    return CatalogService(products, cache=request.app.state.query_cache)


def get_image_service(
    backend: Annotated[BackendClient, Depends(get_backend)],
    token: Annotated[str, Depends(require_admin)],
) -> ImageService:
    return ImageService(backend.with_access_token(token))


def get_app_settings() -> Settings:
    return get_settings()


async def read_image_upload(upload: UploadFile | None) -> ImageFile | None:
    """Read a multipart upload into memory. Absent or unnamed uploads give None."""
    if upload is None or not upload.filename:
        return None
    data = await upload.read()
    return ImageFile(
        filename=upload.filename,
        content_type=upload.content_type or "application/octet-stream",
        data=data,
    )

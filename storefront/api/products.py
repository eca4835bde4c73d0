"""FastAPI routes for the product catalog."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from pydantic import BaseModel

from storefront.api.dependencies import (
    get_admin_catalog,
    get_catalog,
    get_image_service,
    read_image_upload,
    require_admin,
)
from storefront.models.product import FeaturedProduct, Product, ProductPage
from storefront.services.catalog import CatalogService
from storefront.services.images import ImageService

router = APIRouter(prefix="/products", tags=["products"])
images_router = APIRouter(prefix="/images", tags=["images"])


class DeleteResponse(BaseModel):
    """Response schema for delete endpoints."""

    deleted: bool


def _form_data(**fields: Any) -> dict[str, Any]:
    """Keep only the form fields the client actually sent."""
    return {name: value for name, value in fields.items() if value is not None}


@router.get("", response_model=ProductPage)
async def list_products(
    catalog: Annotated[CatalogService, Depends(get_catalog)],
    limit: Annotated[int | None, Query(description="Page size (1-100)")] = None,
    offset: Annotated[int, Query(description="Index of the first product")] = 0,
    order_by: Annotated[
        str, Query(description="Sort field: created_at, name or price")
    ] = "created_at",
    ascending: Annotated[bool, Query(description="Sort ascending")] = False,
) -> ProductPage:
    """List products, newest first by default.

    Out-of-range limits and offsets are clamped and unknown sort fields fall
    back to creation time.
    """
    return await catalog.list_products(limit, offset, order_by, ascending)


@router.get("/featured", response_model=list[FeaturedProduct])
async def list_featured_products(
    catalog: Annotated[CatalogService, Depends(get_catalog)],
    limit: Annotated[int | None, Query(description="Number of products (1-10)")] = None,
) -> list[FeaturedProduct]:
    """Newest products with an image, for the hero carousel."""
    return await catalog.get_featured_products(limit)


@router.get("/{product_id}", response_model=Product)
async def get_product(
    product_id: str,
    catalog: Annotated[CatalogService, Depends(get_catalog)],
) -> Product:
    """Fetch a single product.

    Raises:
        400 if the id is not a UUID, 404 if the product does not exist.
    """
    return await catalog.get_product(product_id)


@router.post("", response_model=Product, status_code=status.HTTP_201_CREATED)
async def create_product(
    _token: Annotated[str, Depends(require_admin)],
    catalog: Annotated[CatalogService, Depends(get_admin_catalog)],
    name: Annotated[str | None, Form()] = None,
    price: Annotated[str | None, Form()] = None,
    brand: Annotated[str | None, Form()] = None,
    storage: Annotated[str | None, Form()] = None,
    ram: Annotated[str | None, Form()] = None,
    camera: Annotated[str | None, Form()] = None,
    battery: Annotated[str | None, Form()] = None,
    color: Annotated[str | None, Form()] = None,
    condition: Annotated[str | None, Form()] = None,
    product_status: Annotated[str | None, Form(alias="status")] = None,
    image: Annotated[UploadFile | None, File(description="JPG, PNG or WebP, max 2MB")] = None,
) -> Product:
    """Create a product (admin only).

    The optional image is uploaded before the product is written; if the
    upload fails nothing is written.
    """
    data = _form_data(
        name=name,
        price=price,
        brand=brand,
        storage=storage,
        ram=ram,
        camera=camera,
        battery=battery,
        color=color,
        condition=condition,
        status=product_status,
    )
    return await catalog.create_product(data, await read_image_upload(image))


@router.patch("/{product_id}", response_model=Product)
async def update_product(
    product_id: str,
    _token: Annotated[str, Depends(require_admin)],
    catalog: Annotated[CatalogService, Depends(get_admin_catalog)],
    name: Annotated[str | None, Form()] = None,
    price: Annotated[str | None, Form()] = None,
    brand: Annotated[str | None, Form()] = None,
    storage: Annotated[str | None, Form()] = None,
    ram: Annotated[str | None, Form()] = None,
    camera: Annotated[str | None, Form()] = None,
    battery: Annotated[str | None, Form()] = None,
    color: Annotated[str | None, Form()] = None,
    condition: Annotated[str | None, Form()] = None,
    product_status: Annotated[str | None, Form(alias="status")] = None,
    image: Annotated[UploadFile | None, File(description="JPG, PNG or WebP, max 2MB")] = None,
) -> Product:
    """Update the supplied fields of a product (admin only)."""
    data = _form_data(
        name=name,
        price=price,
        brand=brand,
        storage=storage,
        ram=ram,
        camera=camera,
        battery=battery,
        color=color,
        condition=condition,
        status=product_status,
    )
    return await catalog.update_product(product_id, data, await read_image_upload(image))


@router.delete("/{product_id}", response_model=DeleteResponse)
async def delete_product(
    product_id: str,
    _token: Annotated[str, Depends(require_admin)],
    catalog: Annotated[CatalogService, Depends(get_admin_catalog)],
) -> DeleteResponse:
    """Delete a product permanently (admin only). Its image is kept."""
    return DeleteResponse(deleted=await catalog.delete_product(product_id))


@images_router.delete("", response_model=DeleteResponse)
async def delete_image(
    images: Annotated[ImageService, Depends(get_image_service)],
    url: Annotated[str | None, Query(description="Public URL of the image")] = None,
) -> DeleteResponse:
    """Delete a stored image by its public URL (admin only).

    Deleting nothing is not an error: an empty URL reports ``deleted: false``.
    """
    return DeleteResponse(deleted=await images.delete(url))

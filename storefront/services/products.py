"""Product CRUD against the backend products table."""

import logging
from typing import Any, NoReturn

from storefront.config import Settings
from storefront.errors import (
    BackendError,
    NotFound,
    ValidationError,
    classify_backend_error,
    report_error,
)
from storefront.models.product import (
    FEATURED_FIELDS,
    PRODUCT_FIELDS,
    FeaturedProduct,
    Product,
    ProductPage,
)
from storefront.services.backend import BackendClient
from storefront.services.images import ImageService
from storefront.validation import (
    sanitize_product_fields,
    validate_identifier,
    validate_product_input,
)

logger = logging.getLogger(__name__)

DEFAULT_ORDER_BY = "created_at"

# Sortable columns; camelCase aliases map onto the column names
ORDER_BY_FIELDS: dict[str, str] = {
    "created_at": "created_at",
    "createdAt": "created_at",
    "name": "name",
    "price": "price",
}


def _coerce_int(value: Any, default: int) -> int:
    """Interpret ``value`` as an integer; zero or unparseable values give ``default``."""
    if isinstance(value, bool):
        return default
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return number or default


def clamp_limit(value: Any, default: int, maximum: int) -> int:
    """Clamp a requested page size into ``[1, maximum]``."""
    return min(max(1, _coerce_int(value, default)), maximum)


def clamp_offset(value: Any) -> int:
    """Clamp a requested offset to be non-negative."""
    return max(0, _coerce_int(value, 0))


def safe_order_by(value: Any) -> str:
    """Map a requested sort field onto the whitelist, else creation time."""
    if isinstance(value, str) and value in ORDER_BY_FIELDS:
        return ORDER_BY_FIELDS[value]
    return DEFAULT_ORDER_BY


class ProductService:
    """CRUD operations for products.

    Identifiers are validated before any backend call and product data is
    validated, then sanitized, before it is written. When an image
    accompanies a create or update it is uploaded first; if the upload fails
    no row is written. If the row write fails after a successful upload the
    image is left orphaned in the bucket.
    """

    def __init__(
        self,
        client: BackendClient,
        images: ImageService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or client.settings
        self.images = images or ImageService(client, self.settings)
        self.table = self.settings.products_table

    def _fail(self, error: BackendError, context: str) -> NoReturn:
        report_error(error, context, production=self.settings.is_production)
        raise classify_backend_error(error) from error

    async def get_all(
        self,
        limit: Any = None,
        offset: Any = 0,
        order_by: Any = DEFAULT_ORDER_BY,
        ascending: bool = False,
    ) -> ProductPage:
        """Fetch one page of products.

        Args:
            limit: Page size, clamped to [1, max limit]
            offset: Index of the first product, clamped to >= 0
            order_by: Sort field; unknown fields fall back to creation time
            ascending: Sort direction

        Returns:
            ProductPage with the products, the total count and whether the
            page was full.
        """
        safe_limit = clamp_limit(
            limit,
            self.settings.pagination_default_limit,
            self.settings.pagination_max_limit,
        )
        safe_offset = clamp_offset(offset)
        column = safe_order_by(order_by)

        try:
            result = await self.client.select(
                self.table,
                PRODUCT_FIELDS,
                order=column,
                ascending=bool(ascending),
                start=safe_offset,
                end=safe_offset + safe_limit - 1,
                count=True,
            )
        except BackendError as e:
            self._fail(e, "products.list")

        items = [Product.model_validate(row) for row in result.data]
        return ProductPage(
            items=items,
            total=result.count or 0,
            has_more=len(items) == safe_limit,
        )

    async def get_by_id(self, product_id: Any) -> Product:
        """Fetch a single product.

        Raises:
            InvalidIdentifier: If the id is not a UUID.
            NotFound: If no product has this id.
        """
        product_id = validate_identifier(product_id)

        try:
            result = await self.client.select(
                self.table,
                PRODUCT_FIELDS,
                filters={"id": f"eq.{product_id}"},
                single=True,
            )
        except BackendError as e:
            self._fail(e, "products.get_by_id")

        if not result.data:
            raise NotFound("Product not found")
        return Product.model_validate(result.data[0])

    async def create(self, data: dict[str, Any], image: Any = None) -> Product:
        """Validate, sanitize and insert a product.

        Raises:
            ValidationError: If the name or price is invalid.
            ImageError: If the image is invalid or cannot be stored.
        """
        validate_product_input(data)
        payload = sanitize_product_fields(data)

        if image is not None:
            payload["image_url"] = await self.images.upload(image)

        try:
            row = await self.client.insert(self.table, payload, PRODUCT_FIELDS)
        except BackendError as e:
            self._log_orphan(image, payload)
            self._fail(e, "products.create")

        product = Product.model_validate(row)
        logger.info("Created product %s", product.id)
        return product

    async def update(self, product_id: Any, data: dict[str, Any], image: Any = None) -> Product:
        """Apply a partial update to a product.

        Only the supplied fields are validated, sanitized and sent; a supplied
        name or price must satisfy the same rules as on create.
        """
        product_id = validate_identifier(product_id)
        validate_product_input(data, partial=True)
        payload = sanitize_product_fields(data)

        if not payload and image is None:
            raise ValidationError(["No product fields to update"])

        if image is not None:
            payload["image_url"] = await self.images.upload(image)

        try:
            row = await self.client.update(
                self.table,
                payload,
                filters={"id": f"eq.{product_id}"},
                columns=PRODUCT_FIELDS,
            )
        except BackendError as e:
            self._log_orphan(image, payload)
            self._fail(e, "products.update")

        logger.info("Updated product %s (%s)", product_id, ", ".join(sorted(payload)))
        return Product.model_validate(row)

    async def delete(self, product_id: Any) -> bool:
        """Delete a product permanently.

        Its image, if any, stays in the bucket.

        Raises:
            InvalidIdentifier: If the id is not a UUID.
            NotFound: If no product has this id.
        """
        product_id = validate_identifier(product_id)

        try:
            await self.client.delete(self.table, filters={"id": f"eq.{product_id}"})
        except BackendError as e:
            self._fail(e, "products.delete")

        logger.info("Deleted product %s", product_id)
        return True

    async def get_featured(self, limit: Any = None) -> list[FeaturedProduct]:
        """Newest products that have an image, for the hero carousel."""
        safe_limit = clamp_limit(
            limit,
            self.settings.featured_default_limit,
            self.settings.featured_max_limit,
        )

        try:
            result = await self.client.select(
                self.table,
                FEATURED_FIELDS,
                filters={"image_url": "not.is.null"},
                order="created_at",
                ascending=False,
                limit=safe_limit,
            )
        except BackendError as e:
            self._fail(e, "products.get_featured")

        return [FeaturedProduct.model_validate(row) for row in result.data]

    def _log_orphan(self, image: Any, payload: dict[str, Any]) -> None:
        if image is not None and payload.get("image_url"):
            logger.warning(
                "Product write failed after upload; image %s is orphaned",
                payload["image_url"],
            )

"""Cached product reads and cache-consistent product mutations.

Reads go through the query cache and are retried on transient failures.
Writes go straight to the product service; once the backend acknowledges a
write, the cache entries it could affect are invalidated before the call
returns. Invalidation is coarse: every mutation drops the whole
listing and featured families.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from storefront.cache import QueryCache, QueryKey
from storefront.errors import (
    BackendError,
    ImageError,
    InvalidIdentifier,
    NotFound,
    StorefrontError,
    TooManyAttempts,
    ValidationError,
    is_auth_error,
)
from storefront.models.product import FeaturedProduct, Product, ProductPage
from storefront.services.products import (
    ProductService,
    clamp_limit,
    clamp_offset,
    safe_order_by,
)
from storefront.validation import validate_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Query kinds
PRODUCTS = "products"
PRODUCT = "product"
FEATURED = "featured"

# (stale after, gc after) in seconds
QUERY_WINDOWS: dict[str, tuple[float, float]] = {
    PRODUCTS: (5 * 60, 10 * 60),
    PRODUCT: (5 * 60, 10 * 60),
    FEATURED: (10 * 60, 15 * 60),
}

MAX_RETRIES = 2


class MutationKind(str, Enum):
    """Kinds of product writes."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class RecordAction(str, Enum):
    """What a mutation does to the single-record entry of the product it touched."""

    NONE = "none"
    REPLACE = "replace"
    REMOVE = "remove"


@dataclass(frozen=True)
class InvalidationRule:
    """Cache effects of one mutation kind.

    Attributes:
        kinds: Query kinds invalidated in full
        record: Effect on the affected product's own entry
    """

    kinds: tuple[str, ...]
    record: RecordAction


INVALIDATION_RULES: dict[MutationKind, InvalidationRule] = {
    MutationKind.CREATE: InvalidationRule((PRODUCTS, FEATURED), RecordAction.NONE),
    MutationKind.UPDATE: InvalidationRule((PRODUCTS, FEATURED), RecordAction.REPLACE),
    MutationKind.DELETE: InvalidationRule((PRODUCTS, FEATURED), RecordAction.REMOVE),
}


def should_retry(error: BaseException) -> bool:
    """Whether a failed read is worth another attempt.

    Caller errors, missing records and auth failures are terminal.
    """
    if isinstance(
        error,
        (ValidationError, InvalidIdentifier, NotFound, TooManyAttempts, ImageError),
    ):
        return False
    if is_auth_error(error):
        return False
    if isinstance(error, BackendError) and error.status is not None and error.status < 500:
        return False
    return isinstance(error, StorefrontError)


def product_key(product_id: str) -> QueryKey:
    return (PRODUCT, (product_id.lower(),))


class CatalogService:
    """Product reads and writes kept consistent with the query cache."""

    def __init__(
        self,
        products: ProductService,
        cache: QueryCache | None = None,
        max_retries: int = MAX_RETRIES,
        retry_wait: wait_base | None = None,
    ) -> None:
        self.products = products
        self.cache = cache if cache is not None else QueryCache()
        self.max_retries = max_retries
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.5, max=4)

    async def _with_retry(self, loader: Callable[[], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            retry=retry_if_exception(should_retry),
            wait=self.retry_wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                result = await loader()
        return result

    async def _cached(self, key: QueryKey, loader: Callable[[], Awaitable[T]]) -> T:
        stale_after, gc_after = QUERY_WINDOWS[key[0]]
        return await self.cache.fetch(
            key,
            lambda: self._with_retry(loader),
            stale_after=stale_after,
            gc_after=gc_after,
        )

    async def list_products(
        self,
        limit: Any = None,
        offset: Any = 0,
        order_by: Any = "created_at",
        ascending: bool = False,
    ) -> ProductPage:
        """Cached page of products."""
        settings = self.products.settings
        safe_limit = clamp_limit(
            limit, settings.pagination_default_limit, settings.pagination_max_limit
        )
        safe_offset = clamp_offset(offset)
        column = safe_order_by(order_by)
        key: QueryKey = (PRODUCTS, (safe_limit, safe_offset, column, bool(ascending)))

        return await self._cached(
            key,
            lambda: self.products.get_all(safe_limit, safe_offset, column, bool(ascending)),
        )

    async def get_product(self, product_id: Any) -> Product:
        """Cached single product. Malformed ids never reach the cache or backend."""
        product_id = validate_identifier(product_id)
        return await self._cached(
            product_key(product_id),
            lambda: self.products.get_by_id(product_id),
        )

    async def get_featured_products(self, limit: Any = None) -> list[FeaturedProduct]:
        """Cached hero carousel products."""
        settings = self.products.settings
        safe_limit = clamp_limit(
            limit, settings.featured_default_limit, settings.featured_max_limit
        )
        return await self._cached(
            (FEATURED, (safe_limit,)),
            lambda: self.products.get_featured(safe_limit),
        )

    def apply_mutation(
        self,
        kind: MutationKind,
        product_id: str | None = None,
        value: Product | None = None,
    ) -> None:
        """Apply the invalidation rule of a successful mutation to the cache."""
        rule = INVALIDATION_RULES[kind]

        for query_kind in rule.kinds:
            self.cache.invalidate(query_kind)

        if product_id is None:
            return
        key = product_key(str(product_id))
        if rule.record is RecordAction.REPLACE and value is not None:
            stale_after, gc_after = QUERY_WINDOWS[PRODUCT]
            self.cache.set(key, value, stale_after, gc_after)
        elif rule.record is RecordAction.REMOVE:
            self.cache.remove(key)

    async def create_product(self, data: dict[str, Any], image: Any = None) -> Product:
        product = await self.products.create(data, image)
        self.apply_mutation(MutationKind.CREATE, str(product.id), product)
        return product

    async def update_product(
        self,
        product_id: Any,
        data: dict[str, Any],
        image: Any = None,
    ) -> Product:
        product = await self.products.update(product_id, data, image)
        self.apply_mutation(MutationKind.UPDATE, str(product.id), product)
        return product

    async def delete_product(self, product_id: Any) -> bool:
        deleted = await self.products.delete(product_id)
        self.apply_mutation(MutationKind.DELETE, str(product_id))
        return deleted

"""Product records as returned by the backend."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from storefront.validation import Condition, ProductStatus

PRODUCT_FIELDS = (
    "id, name, price, image_url, brand, storage, ram, camera, battery, "
    "color, condition, status, created_at"
)
FEATURED_FIELDS = "id, name, image_url"


class Product(BaseModel):
    """A phone listed for sale.

    Attributes:
        id: Server-generated UUID
        name: Product name (2-200 characters)
        price: Price in BRL (0 - 999999.99)
        brand: Manufacturer
        storage: Storage capacity (e.g. '128GB')
        ram: Memory size
        camera: Camera description
        battery: Battery description
        color: Color name
        condition: New, Refurbished or Used
        status: Normal, Promotion or NewArrival
        image_url: Public URL of the product image
        created_at: Timestamp when the record was created
    """

    id: UUID
    name: str
    price: float
    brand: str | None = None
    storage: str | None = None
    ram: str | None = None
    camera: str | None = None
    battery: str | None = None
    color: str | None = None
    condition: Condition = Condition.NEW
    status: ProductStatus = ProductStatus.NORMAL
    image_url: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("condition", mode="before")
    @classmethod
    def coerce_condition(cls, v: object) -> Condition:
        return Condition.from_value_or_default(v)  # type: ignore[return-value]

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: object) -> ProductStatus:
        return ProductStatus.from_value_or_default(v)  # type: ignore[return-value]

    @field_validator("image_url", mode="before")
    @classmethod
    def empty_url_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class FeaturedProduct(BaseModel):
    """A product shown in the storefront hero carousel."""

    id: UUID | None = None
    name: str
    image_url: str


class ProductPage(BaseModel):
    """One page of the product listing.

    Attributes:
        items: Products on this page
        total: Total number of products
        has_more: Whether the page was full (another page may follow)
    """

    items: list[Product] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False

"""Validation and sanitization of untrusted product input.

Validators raise; sanitizers never do. A sanitizer maps every input (None
included) onto a bounded, type-correct value.
"""

import math
import re
from enum import Enum
from typing import Any

from storefront.errors import InvalidIdentifier, ValidationError

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 200
PRICE_MIN = 0.0
PRICE_MAX = 999999.99
IMAGE_URL_MAX_LENGTH = 500
DEFAULT_STRING_MAX_LENGTH = 255

# Optional free-text product attributes and their maximum lengths
OPTIONAL_FIELD_LIMITS: dict[str, int] = {
    "brand": 100,
    "storage": 50,
    "ram": 50,
    "camera": 100,
    "battery": 50,
    "color": 50,
}

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class _CoercingEnum(str, Enum):
    """String enum with a total constructor falling back to a default."""

    @classmethod
    def default(cls) -> "_CoercingEnum":
        raise NotImplementedError

    @classmethod
    def from_value_or_default(cls, value: Any) -> "_CoercingEnum":
        """Return the member whose value equals ``value``, else the default."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if member.value == value:
                    return member
        return cls.default()


class Condition(_CoercingEnum):
    """Physical condition of a phone for sale."""

    NEW = "New"
    REFURBISHED = "Refurbished"
    USED = "Used"

    @classmethod
    def default(cls) -> "Condition":
        return cls.NEW


class ProductStatus(_CoercingEnum):
    """Merchandising status shown as a badge on the storefront."""

    NORMAL = "Normal"
    PROMOTION = "Promotion"
    NEW_ARRIVAL = "NewArrival"

    @classmethod
    def default(cls) -> "ProductStatus":
        return cls.NORMAL


def _to_number(value: Any) -> float | None:
    """Convert a numeric or numeric-string value to a finite float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def sanitize_string(value: Any, max_length: int = DEFAULT_STRING_MAX_LENGTH) -> str | None:
    """Coerce a value to a trimmed string of at most ``max_length`` characters.

    Args:
        value: Any value; non-strings are converted with ``str()``.
        max_length: Maximum length of the result.

    Returns:
        The sanitized string, or None if the value is None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    return value[:max_length].strip()


def sanitize_price(value: Any) -> float:
    """Clamp a price into the allowed range; non-numeric input becomes 0."""
    number = _to_number(value)
    if number is None:
        return PRICE_MIN
    return min(max(number, PRICE_MIN), PRICE_MAX)


def sanitize_image_url(value: Any) -> str | None:
    """Bound an image reference; anything that is not a usable string is None."""
    if not isinstance(value, str):
        return None
    value = value.strip()[:IMAGE_URL_MAX_LENGTH]
    return value or None


def _name_error(name: Any) -> str | None:
    if not isinstance(name, str) or len(name.strip()) < NAME_MIN_LENGTH:
        return f"Product name is required (minimum {NAME_MIN_LENGTH} characters)"
    return None


def _price_error(price: Any) -> str | None:
    if price is None or price == "":
        return "Product price is required"
    number = _to_number(price)
    if number is None or number < PRICE_MIN or number > PRICE_MAX:
        return f"Product price must be a valid number between {PRICE_MIN:g} and {PRICE_MAX}"
    return None


def validate_product_input(data: dict[str, Any], partial: bool = False) -> None:
    """Check the required product fields, collecting every violation.

    Args:
        data: Untrusted product data.
        partial: Only check the fields present in ``data``, as for an update.

    Raises:
        ValidationError: If the name or price is missing or out of bounds.
    """
    if not isinstance(data, dict):
        data = {}

    errors: list[str] = []
    for field, check in (("name", _name_error), ("price", _price_error)):
        if partial and field not in data:
            continue
        error = check(data.get(field))
        if error:
            errors.append(error)

    if errors:
        raise ValidationError(errors)


def sanitize_product_fields(data: dict[str, Any] | None) -> dict[str, Any]:
    """Sanitize the product fields present in ``data``.

    Only supplied keys appear in the result, so the output doubles as a
    partial patch for updates.
    """
    if not data:
        return {}

    sanitized: dict[str, Any] = {}

    if "name" in data:
        sanitized["name"] = sanitize_string(data["name"], NAME_MAX_LENGTH)

    for field, max_length in OPTIONAL_FIELD_LIMITS.items():
        if field in data:
            sanitized[field] = sanitize_string(data[field], max_length)

    if "condition" in data:
        sanitized["condition"] = Condition.from_value_or_default(data["condition"]).value

    if "status" in data:
        sanitized["status"] = ProductStatus.from_value_or_default(data["status"]).value

    if "price" in data:
        sanitized["price"] = sanitize_price(data["price"])

    if "image_url" in data:
        sanitized["image_url"] = sanitize_image_url(data["image_url"])

    return sanitized


def validate_identifier(value: Any) -> str:
    """Require a UUID (versions 1-5) and return it.

    Raises:
        InvalidIdentifier: For None, empty, non-string or malformed values.
    """
    if not value or not isinstance(value, str) or not UUID_PATTERN.fullmatch(value):
        raise InvalidIdentifier()
    return value

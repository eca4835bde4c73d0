"""Display helpers for prices, WhatsApp links and product cards."""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

from storefront.validation import ProductStatus

CURRENCY_SYMBOL = "R$"
DEFAULT_IMAGE = "/imagens/phone-1.jpg"
WHATSAPP_BASE_URL = "https://wa.me/"
WHATSAPP_MIN_DIGITS = 10
WHATSAPP_MAX_MESSAGE_LENGTH = 1000

SPEC_FIELDS = ("brand", "storage", "ram", "camera", "battery", "color", "condition")


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        return Decimal(0)
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal(0)
    if not number.is_finite():
        return Decimal(0)
    return number


def format_currency(value: Any) -> str:
    """Format a price as Brazilian reais, e.g. ``R$ 1.234,56``.

    Missing or non-numeric values format as zero.
    """
    number = _to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if number < 0 else ""
    integer, _, cents = f"{abs(number):,.2f}".partition(".")
    return f"{sign}{CURRENCY_SYMBOL} {integer.replace(',', '.')},{cents}"


def format_whatsapp_url(number: Any, message: Any = "") -> str:
    """Build a ``wa.me`` chat link.

    Returns ``#`` when the number is missing or has fewer than 10 digits.
    """
    if not number or not isinstance(number, str):
        return "#"

    digits = re.sub(r"\D", "", number)
    if len(digits) < WHATSAPP_MIN_DIGITS:
        return "#"

    text = message[:WHATSAPP_MAX_MESSAGE_LENGTH] if isinstance(message, str) else ""
    encoded = quote(text, safe="")
    return f"{WHATSAPP_BASE_URL}{digits}" + (f"?text={encoded}" if encoded else "")


def format_product_for_display(product: Any) -> dict[str, Any] | None:
    """Project a product record onto what a product card shows."""
    if product is None:
        return None
    if hasattr(product, "model_dump"):
        product = product.model_dump(mode="json")
    if not isinstance(product, dict):
        return None

    specs = [str(product[field]) for field in SPEC_FIELDS if product.get(field)]
    status = product.get("status")

    return {
        **product,
        "image": product.get("image_url") or DEFAULT_IMAGE,
        "title": product.get("name") or "Unnamed product",
        "price_label": format_currency(product.get("price")),
        "specs": specs,
        "badge": status if status and status != ProductStatus.NORMAL.value else None,
    }

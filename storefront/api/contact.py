"""FastAPI routes for customer contact links."""

from enum import Enum
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from storefront.api.dependencies import get_app_settings
from storefront.config import Settings
from storefront.formatters import format_whatsapp_url

router = APIRouter(prefix="/contact", tags=["contact"])


class MessageTemplate(str, Enum):
    """Prefilled WhatsApp messages."""

    QUOTE_TECHNICAL = "quote_technical"
    QUOTE_PURCHASE = "quote_purchase"
    QUOTE_OTHER = "quote_other"
    PRODUCT_INTEREST = "product_interest"


class ContactLinkResponse(BaseModel):
    url: str


def build_message(template: MessageTemplate, settings: Settings, product: str | None) -> str:
    """Render a message template from configuration."""
    if template is MessageTemplate.QUOTE_TECHNICAL:
        return settings.whatsapp_quote_technical
    if template is MessageTemplate.QUOTE_PURCHASE:
        return settings.whatsapp_quote_purchase
    name = product.strip()[:200] if product else ""
    if template is MessageTemplate.PRODUCT_INTEREST and name:
        return settings.whatsapp_product_interest.format(product=name)
    return settings.whatsapp_quote_other


@router.get("/whatsapp", response_model=ContactLinkResponse)
async def whatsapp_link(
    settings: Annotated[Settings, Depends(get_app_settings)],
    template: Annotated[MessageTemplate, Query()] = MessageTemplate.QUOTE_OTHER,
    product: Annotated[str | None, Query(description="Product name for interest messages")] = None,
) -> ContactLinkResponse:
    """WhatsApp chat link with a prefilled message."""
    message = build_message(template, settings, product)
    return ContactLinkResponse(url=format_whatsapp_url(settings.whatsapp_number, message))

"""WhatsApp click-to-chat links for ordering from a storefront.

Orders are placed in the chat app; nothing is recorded here.
"""

import re
from urllib.parse import quote

from linkstore.core.exceptions import ValidationException
from linkstore.schemas.product import Product

_NON_DIGITS_RE = re.compile(r"\D")

WEB_URL = "https://wa.me/{phone}"
NATIVE_URL = "whatsapp://send?phone={phone}"


def clean_phone(number: str | None) -> str:
    """Keep digits only; ``"+1 (555) 010-2000"`` becomes ``"15550102000"``."""
    return _NON_DIGITS_RE.sub("", number or "")


def build_order_message(product: Product | None) -> str:
    title = product.title if product and product.title else "this product"
    return f"I want to order {title}"


def build_inquiry_message(product: Product) -> str:
    price = int(product.price) if product.price.is_integer() else product.price
    return (
        f"Hi! I'm interested in ordering {product.title} for ${price}. "
        "Can you provide more details?"
    )


def create_whatsapp_url(number: str | None, message: str = "", native: bool = False) -> str:
    """Chat link for ``number``, optionally prefilled with ``message``.

    ``native`` builds the app scheme link instead of the web one.
    """
    phone = clean_phone(number)
    if not phone:
        raise ValidationException("A WhatsApp number is required")

    if native:
        url = NATIVE_URL.format(phone=phone)
        separator = "&"
    else:
        url = WEB_URL.format(phone=phone)
        separator = "?"

    if message:
        url = f"{url}{separator}text={quote(message, safe='')}"
    return url

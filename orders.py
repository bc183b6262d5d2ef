"""
Order intent messages.

Ordering happens outside the app: the buyer opens a messaging deep link to
the shop's contact number with a pre-filled message built here.
"""

import re
from typing import Dict
from urllib.parse import quote

import settings

TEMPLATES = {
    "ar": "مرحباً {shop}، أود طلب المنتج التالي:\n\n📦 {product}\n💰 السعر: {price}\n\nشكراً لكم",
    "en": "Hello {shop}, I would like to order the following product:\n\n📦 {product}\n💰 Price: {price}\n\nThank you",
}
DEFAULT_LOCALE = "ar"


def format_price(price: float, currency: str = settings.CURRENCY) -> str:
    """1234.5 -> '1,234.5 د.ل'; whole amounts carry no decimals."""
    amount = f"{price:,.2f}".rstrip("0").rstrip(".")
    return f"{amount} {currency}"


def resolve_locale(locale: str) -> str:
    # Arabic is the shop default; any other requested language gets English
    return "ar" if (locale or DEFAULT_LOCALE).lower().startswith("ar") else "en"


def format_order_message(shop: Dict, product: Dict, locale: str = DEFAULT_LOCALE) -> str:
    return TEMPLATES[resolve_locale(locale)].format(
        shop=shop["name"],
        product=product["name"],
        price=format_price(product["price"]),
    )


def order_link(shop: Dict, product: Dict, locale: str = DEFAULT_LOCALE) -> str:
    number = re.sub(r"\D", "", shop.get("contact_number") or "")
    message = format_order_message(shop, product, locale)
    return f"{settings.MESSAGING_BASE_URL}/{number}?text={quote(message, safe='')}"

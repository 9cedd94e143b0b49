# giftshop/whatsapp.py
"""Checkout happens on WhatsApp: build a pre-filled chat link for a product enquiry."""
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote

from .config import Settings
from .models import Product, discount_percent, has_offer

WHATSAPP_URL = "https://wa.me/{number}?text={text}"
# characters encodeURIComponent leaves alone
_URI_SAFE = "-_.!~*'()"


def format_amount(value: Any) -> str:
    d = Decimal(str(value))
    if d == d.to_integral_value():
        return str(int(d))
    return format(d.normalize(), "f")


def build_order_message(shop_name: str, maps_link: str, product: Optional[Product] = None) -> str:
    message = f"Hello {shop_name}! 👋\n\n"
    if product is not None:
        message += "I'm interested in:\n"
        message += f"📦 *{product.name}*\n\n"
        message += f"💰 Price: Rs. {format_amount(product.price)}\n"
        if has_offer(product.price, product.offer_price):
            pct = discount_percent(product.price, product.offer_price)
            message += f"🎉 Offer Price: Rs. {format_amount(product.offer_price)} ({pct}% OFF)\n\n"
        else:
            message += "\n"
    else:
        message += "I would like to know more about your products.\n\n"
    message += f"📍 Location: {maps_link}\n\n"
    message += "Please confirm availability and delivery details. Thank you!"
    return message


def generate_order_link(settings: Settings, product: Optional[Product] = None) -> str:
    message = build_order_message(settings.shop_name, settings.maps_link, product)
    return WHATSAPP_URL.format(number=settings.whatsapp_number, text=quote(message, safe=_URI_SAFE))


def contact_info(settings: Settings) -> Dict[str, str]:
    return {
        "phone": settings.contact_phone,
        "whatsapp": settings.whatsapp_number,
        "shop_name": settings.shop_name,
        "google_maps": settings.maps_link,
        "display_phone": settings.display_phone,
        "whatsapp_link": generate_order_link(settings),
    }

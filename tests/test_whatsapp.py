# tests/test_whatsapp.py
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

from giftshop.config import Settings
from giftshop.models import Product, discount_percent, has_offer
from giftshop.whatsapp import build_order_message, contact_info, format_amount, generate_order_link

settings = Settings(shop_name="Nepal Gift House", whatsapp_number="9779815888721",
                    maps_link="https://maps.example/shop")


def teddy(**overrides):
    data = {"id": "p1", "name": "Teddy Bear L", "price": 1000, "offer_price": 800, "created_by": "u1",
            "images": ["https://img/1.jpg"]}
    data.update(overrides)
    return Product(**data)


def test_offer_message_mentions_prices_and_discount():
    message = build_order_message(settings.shop_name, settings.maps_link, teddy())
    assert "Rs. 1000" in message
    assert "Rs. 800" in message
    assert "20% OFF" in message
    assert "*Teddy Bear L*" in message
    assert message.startswith("Hello Nepal Gift House!")
    assert "https://maps.example/shop" in message


def test_no_offer_line_when_offer_is_not_cheaper():
    for offer in (None, 0, 1000, 1200):
        message = build_order_message("Shop", "https://maps", teddy(offer_price=offer))
        assert "OFF" not in message
        assert "Rs. 1000" in message


def test_general_enquiry_without_product():
    message = build_order_message("Shop", "https://maps")
    assert "I would like to know more about your products." in message
    assert "Rs." not in message


def test_link_targets_shop_number_and_round_trips_message():
    url = generate_order_link(settings, teddy())
    parsed = urlparse(url)
    assert parsed.netloc == "wa.me"
    assert parsed.path == "/9779815888721"
    text = parse_qs(parsed.query)["text"][0]
    assert text == build_order_message(settings.shop_name, settings.maps_link, teddy())


def test_discount_matches_rounded_ratio():
    cases = [(1000, 800, 20), (999, 500, 50), (300, 199, 34), (8, 7, 13), (200, 1, 99)]
    for price, offer, expected in cases:
        assert discount_percent(price, offer) == expected
        assert 0 <= discount_percent(price, offer) < 100
    # half rounds up
    assert discount_percent(8, 7) == 13
    assert discount_percent(1000, 1200) == 0
    assert has_offer(1000, None) is False


def test_product_exposes_offer_fields():
    p = teddy()
    assert p.has_offer is True
    assert p.discount_percent == 20
    assert p.main_image == "https://img/1.jpg"
    assert p.model_dump(mode="json")["price"] == 1000


def test_format_amount():
    assert format_amount(Decimal("1000.00")) == "1000"
    assert format_amount(1000.5) == "1000.5"
    assert format_amount(800) == "800"


def test_contact_info_includes_general_link():
    info = contact_info(settings)
    assert info["whatsapp"] == "9779815888721"
    assert info["whatsapp_link"].startswith("https://wa.me/9779815888721?text=")

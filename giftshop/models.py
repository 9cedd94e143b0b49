# giftshop/models.py
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, computed_field, field_validator

# Prices are decimals in memory and plain numbers on the wire.
Money = Annotated[Decimal, Field(ge=0), PlainSerializer(float, return_type=float, when_used="json")]


class ProductStatus(str, Enum):
    DRAFT = "draft"
    LIVE = "live"
    OUT_OF_STOCK = "out_of_stock"


class UserRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CUSTOMER = "customer"


class FeaturedType(str, Enum):
    BANNER = "banner"
    FEATURED_PRODUCT = "featured_product"
    OFFER = "offer"


# Offered by the product form; storage accepts any string.
SUGGESTED_TAGS = [
    "Perfect for Birthday",
    "Best for Girlfriend",
    "Kids Favorite",
    "New Arrival",
    "Limited Stock",
]


def has_offer(price: Any, offer_price: Any) -> bool:
    if offer_price is None:
        return False
    offer = Decimal(str(offer_price))
    return offer > 0 and offer < Decimal(str(price))


def discount_percent(price: Any, offer_price: Any) -> int:
    """Whole-number discount of ``offer_price`` against ``price``, 0 when there is no real offer.

    Rounds half up, and never reports 100% for an offer that still costs something.
    """
    if not has_offer(price, offer_price):
        return 0
    price = Decimal(str(price))
    offer = Decimal(str(offer_price))
    pct = ((price - offer) / price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return min(int(pct), 99)


class Profile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    full_name: str = ""
    phone: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER


class Category(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    display_order: int = 0
    created_at: Optional[datetime] = None


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    category_id: Optional[str] = None
    name: str
    description: str = ""
    price: Money
    offer_price: Optional[Money] = None
    images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    status: ProductStatus = ProductStatus.DRAFT
    created_by: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # filled in by the admin listing from the creator's profile
    creator_name: Optional[str] = None

    @field_validator("images", "tags", mode="before")
    @classmethod
    def _list_or_empty(cls, v):
        return v if isinstance(v, list) else []

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v):
        return v or ProductStatus.DRAFT

    @computed_field
    @property
    def main_image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    @computed_field
    @property
    def has_offer(self) -> bool:
        return has_offer(self.price, self.offer_price)

    @computed_field
    @property
    def discount_percent(self) -> int:
        return discount_percent(self.price, self.offer_price)


class FeaturedItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    product_id: Optional[str] = None
    title: str
    subtitle: Optional[str] = None
    image_url: Optional[str] = None
    type: FeaturedType
    display_order: int = 0
    is_active: bool = True

# giftshop/core.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import Money

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"

# Request bodies for the admin and auth endpoints.


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class ProductIn(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    price: Money
    offer_price: Optional[Money] = None
    category_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)

    @field_validator("offer_price", "category_id", mode="before")
    @classmethod
    def _blank_is_null(cls, v):
        return _blank_to_none(v)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    price: Optional[Money] = None
    offer_price: Optional[Money] = None
    category_id: Optional[str] = None
    tags: Optional[List[str]] = None
    images: Optional[List[str]] = None

    @field_validator("offer_price", "category_id", mode="before")
    @classmethod
    def _blank_is_null(cls, v):
        return _blank_to_none(v)


class StockIn(BaseModel):
    in_stock: bool


class CategoryIn(BaseModel):
    name: str = Field(min_length=1)
    slug: str = Field(pattern=SLUG_PATTERN)
    description: Optional[str] = None
    display_order: int = 0


class SignInIn(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class SignUpIn(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    full_name: str = ""
    phone: Optional[str] = None


class ImageRemoveIn(BaseModel):
    url: str


# ---------------------------
# Helpers
# ---------------------------
def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _make_product_dict(p: ProductIn, created_by: str) -> Dict[str, Any]:
    row = p.model_dump(mode="json")
    row.update({
        "created_by": created_by,
        "status": "draft",
        "approved_by": None,
        "approved_at": None,
    })
    return row


def _make_product_changes(p: ProductUpdate) -> Dict[str, Any]:
    # only what the form actually sent; offer_price/category_id may be cleared with null
    changes = p.model_dump(mode="json", exclude_unset=True)
    for key in ("name", "description", "price", "tags", "images"):
        if key in changes and changes[key] is None:
            del changes[key]
    return changes

# giftshop/query.py
"""Read paths shared by the storefront and the admin panel."""
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .database import Database, Filter, Order, contains, eq, is_in
from .errors import CatalogValidationError, NotFoundError, RemoteServiceError
from .models import Category, FeaturedItem, Product, ProductStatus

logger = logging.getLogger(__name__)

ALL = "all"
FEATURED_LIMIT = 6
NEWEST_FIRST = [Order("created_at", descending=True)]


def _param(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return None if not value or value == ALL else value


class ProductQuery(BaseModel):
    """Which products to read. ``None`` on any field means "don't filter on it"."""

    model_config = ConfigDict(frozen=True)

    status: Optional[ProductStatus] = None
    category_id: Optional[str] = None
    tag: Optional[str] = None
    limit: Optional[int] = Field(default=None, gt=0)

    @classmethod
    def public(cls, category_id: Optional[str] = None, tag: Optional[str] = None,
               limit: Optional[int] = None) -> "ProductQuery":
        return cls(status=ProductStatus.LIVE, category_id=_param(category_id), tag=_param(tag), limit=limit)

    @classmethod
    def from_params(cls, status: Optional[str] = None, category: Optional[str] = None,
                    tag: Optional[str] = None) -> "ProductQuery":
        """Build a query from raw query-string values, where ``all`` or blank means no filter."""
        status = _param(status)
        if status is not None and status not in {s.value for s in ProductStatus}:
            raise CatalogValidationError(f"unknown status: {status}", field="status")
        return cls(status=ProductStatus(status) if status else None,
                   category_id=_param(category), tag=_param(tag))

    def filters(self) -> List[Filter]:
        out = []
        if self.status is not None:
            out.append(eq("status", self.status.value))
        if self.category_id is not None:
            out.append(eq("category_id", self.category_id))
        if self.tag is not None:
            out.append(contains("tags", [self.tag]))
        return out


class QueryResult(BaseModel):
    items: List[Product] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


async def run_product_query(db: Database, query: ProductQuery) -> QueryResult:
    """Run ``query`` newest first. A failing backend yields an empty result, never an exception."""
    try:
        rows = await db.select("products", query.filters(), order=NEWEST_FIRST, limit=query.limit)
    except RemoteServiceError as e:
        logger.exception("Error fetching products for %s", query)
        return QueryResult(error=str(e.detail))
    return QueryResult(items=[Product(**r) for r in rows])


async def featured_products(db: Database) -> QueryResult:
    return await run_product_query(db, ProductQuery.public(limit=FEATURED_LIMIT))


async def admin_products(db: Database, query: ProductQuery) -> QueryResult:
    result = await run_product_query(db, query)
    creators = sorted({p.created_by for p in result.items})
    if not creators:
        return result
    try:
        rows = await db.select("profiles", [is_in("id", creators)], columns="id,full_name")
    except RemoteServiceError:
        logger.exception("Error fetching creator names")
        return result
    names = {r["id"]: r.get("full_name") for r in rows}
    for p in result.items:
        p.creator_name = names.get(p.created_by)
    return result


async def get_public_product(db: Database, product_id: str) -> Product:
    rows = await db.select("products", [eq("id", product_id), eq("status", ProductStatus.LIVE.value)], limit=1)
    if not rows:
        raise NotFoundError("product")
    return Product(**rows[0])


async def get_product(db: Database, product_id: str) -> Product:
    row = await db.get("products", product_id)
    if row is None:
        raise NotFoundError("product")
    return Product(**row)


async def list_categories(db: Database) -> List[Category]:
    try:
        rows = await db.select("categories", order=[Order("display_order"), Order("id")])
    except RemoteServiceError:
        logger.exception("Error fetching categories")
        return []
    return [Category(**r) for r in rows]


async def list_featured_items(db: Database) -> List[FeaturedItem]:
    try:
        rows = await db.select("featured_items", [eq("is_active", True)],
                               order=[Order("display_order"), Order("id")])
    except RemoteServiceError:
        logger.exception("Error fetching featured items")
        return []
    return [FeaturedItem(**r) for r in rows]


async def dashboard_stats(db: Database) -> Dict[str, int]:
    stats = {"total": 0, "live": 0, "draft": 0, "out_of_stock": 0}
    try:
        rows = await db.select("products", columns="status")
    except RemoteServiceError:
        logger.exception("Error fetching stats")
        return stats
    stats["total"] = len(rows)
    for r in rows:
        if r.get("status") in stats:
            stats[r["status"]] += 1
    return stats

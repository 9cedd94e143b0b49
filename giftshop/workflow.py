# giftshop/workflow.py
"""Product lifecycle: who may create, edit, approve, restock and delete.

    draft --approve (admin)--> live <--restock toggle--> out_of_stock
    any   --delete------------> (gone)

Nothing ever moves a product back to draft.
"""
import logging
from typing import Iterable

from .auth import STAFF_ROLES, SessionContext
from .core import (CategoryIn, ProductIn, ProductUpdate, _make_product_changes, _make_product_dict,
                   utcnow_iso)
from .database import Database, eq
from .errors import (CatalogValidationError, DuplicateValueError, NotFoundError, RemoteServiceError,
                     TransitionError)
from .models import Category, Product, ProductStatus, UserRole

logger = logging.getLogger(__name__)

ADMIN_ONLY = (UserRole.ADMIN.value,)


async def _load(db: Database, product_id: str) -> Product:
    row = await db.get("products", product_id)
    if row is None:
        raise NotFoundError("product")
    return Product(**row)


async def create_product(db: Database, ctx: SessionContext, payload: ProductIn) -> Product:
    profile = ctx.require_role(*STAFF_ROLES)
    if not payload.images:
        raise CatalogValidationError("Please upload at least one image", field="images")
    try:
        row = await db.insert("products", _make_product_dict(payload, created_by=profile.id))
    except RemoteServiceError:
        logger.exception("Error saving product %r", payload.name)
        raise
    logger.info("Product %s created as draft by %s", row["id"], profile.id)
    return Product(**row)


async def update_product(db: Database, ctx: SessionContext, product_id: str, payload: ProductUpdate) -> Product:
    ctx.require_role(*STAFF_ROLES)
    await _load(db, product_id)
    changes = _make_product_changes(payload)
    if changes.get("images") == []:
        # creation insists on an image, editing does not
        logger.warning("Product %s saved without images", product_id)
    if not changes:
        return await _load(db, product_id)
    try:
        row = await db.update("products", product_id, changes)
    except RemoteServiceError:
        logger.exception("Error saving product %s", product_id)
        raise
    if row is None:
        raise NotFoundError("product")
    return Product(**row)


async def approve_product(db: Database, ctx: SessionContext, product_id: str) -> Product:
    profile = ctx.require_role(*ADMIN_ONLY)
    product = await _load(db, product_id)
    if product.status != ProductStatus.DRAFT:
        raise TransitionError(product.status.value, ProductStatus.LIVE.value)
    # status and approver land in the same write
    row = await db.update("products", product_id, {
        "status": ProductStatus.LIVE.value,
        "approved_by": profile.id,
        "approved_at": utcnow_iso(),
    })
    if row is None:
        raise NotFoundError("product")
    logger.info("Product %s approved by %s", product_id, profile.id)
    return Product(**row)


async def set_stock(db: Database, ctx: SessionContext, product_id: str, in_stock: bool,
                    roles: Iterable[str] = STAFF_ROLES) -> Product:
    ctx.require_role(*roles)
    product = await _load(db, product_id)
    target = ProductStatus.LIVE if in_stock else ProductStatus.OUT_OF_STOCK
    if product.status == target:
        return product
    if product.status == ProductStatus.DRAFT:
        raise TransitionError(product.status.value, target.value)
    row = await db.update("products", product_id, {"status": target.value})
    if row is None:
        raise NotFoundError("product")
    return Product(**row)


async def delete_product(db: Database, ctx: SessionContext, product_id: str,
                         roles: Iterable[str] = STAFF_ROLES):
    profile = ctx.require_role(*roles)
    if not await db.delete("products", product_id):
        raise NotFoundError("product")
    # no soft delete; this line is the only trace left behind
    logger.warning("Product %s deleted by %s (%s)", product_id, profile.id, profile.role.value)


async def create_category(db: Database, ctx: SessionContext, payload: CategoryIn) -> Category:
    ctx.require_role(*ADMIN_ONLY)
    if await db.select("categories", [eq("slug", payload.slug)], limit=1):
        raise CatalogValidationError("Slug already in use", field="slug")
    try:
        row = await db.insert("categories", payload.model_dump())
    except DuplicateValueError as e:
        # lost a race with another create of the same slug
        raise CatalogValidationError("Slug already in use", field="slug") from e
    return Category(**row)


async def delete_category(db: Database, ctx: SessionContext, category_id: str) -> int:
    """Delete a category and detach its products; returns how many were detached."""
    ctx.require_role(*ADMIN_ONLY)
    if await db.get("categories", category_id) is None:
        raise NotFoundError("category")
    orphaned = await db.update_where("products", [eq("category_id", category_id)], {"category_id": None})
    await db.delete("categories", category_id)
    logger.info("Category %s deleted, %d products uncategorised", category_id, orphaned)
    return orphaned

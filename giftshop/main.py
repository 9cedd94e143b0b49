# giftshop/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from . import query, workflow
from .auth import (STAFF_ROLES, IdentityService, MemoryIdentity, RestIdentity, SessionContext,
                   bootstrap_admin)
from .config import Settings, configure_logging, get_settings
from .core import CategoryIn, ImageRemoveIn, ProductIn, ProductUpdate, SignInIn, SignUpIn, StockIn
from .database import Database, MemoryDatabase, RestDatabase
from .errors import AuthorizationError
from .models import SUGGESTED_TAGS
from .storage import ImageStorage, MemoryStorage, RestStorage, delete_product_image, upload_product_image
from .whatsapp import contact_info, generate_order_link

router = APIRouter()


# ---------------------------
# Dependencies
# ---------------------------
def get_db(request: Request) -> Database:
    return request.app.state.db


def get_storage(request: Request) -> ImageStorage:
    return request.app.state.storage


def get_identity(request: Request) -> IdentityService:
    return request.app.state.identity


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def get_session_context(request: Request, token: Optional[str] = Depends(bearer_token)):
    ctx = SessionContext(get_identity(request), get_db(request).for_session(token))
    await ctx.initialize(token)
    try:
        yield ctx
    finally:
        ctx.teardown()


async def require_staff(ctx: SessionContext = Depends(get_session_context)) -> SessionContext:
    # gate for everything under /admin
    ctx.require_role(*STAFF_ROLES)
    return ctx


# ---------------------------
# Storefront
# ---------------------------
@router.get("/")
async def home(db: Database = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    featured = await query.featured_products(db)
    return {
        "shop_name": settings.shop_name,
        "featured": featured,
        "categories": await query.list_categories(db),
        "order_link": generate_order_link(settings),
    }


@router.get("/products")
async def list_products(category: Optional[str] = None, tag: Optional[str] = None,
                        db: Database = Depends(get_db)):
    return await query.run_product_query(db, query.ProductQuery.public(category, tag))


@router.get("/products/{product_id}")
async def get_product(product_id: str, db: Database = Depends(get_db)):
    return await query.get_public_product(db, product_id)


@router.get("/products/{product_id}/order-link")
async def product_order_link(product_id: str, db: Database = Depends(get_db),
                             settings: Settings = Depends(get_app_settings)):
    product = await query.get_public_product(db, product_id)
    return {"product_id": product.id, "url": generate_order_link(settings, product)}


@router.get("/order-link")
async def order_link(settings: Settings = Depends(get_app_settings)):
    return {"url": generate_order_link(settings)}


@router.get("/categories")
async def list_categories(db: Database = Depends(get_db)):
    return await query.list_categories(db)


@router.get("/featured")
async def list_featured(db: Database = Depends(get_db)):
    return await query.list_featured_items(db)


@router.get("/tags")
async def list_tags():
    return SUGGESTED_TAGS


@router.get("/gallery")
async def gallery(settings: Settings = Depends(get_app_settings)):
    return {"images": settings.gallery_images}


@router.get("/contact")
async def contact(settings: Settings = Depends(get_app_settings)):
    return contact_info(settings)


# ---------------------------
# Auth
# ---------------------------
@router.post("/login")
async def login(payload: SignInIn, ctx: SessionContext = Depends(get_session_context)):
    session = await ctx.sign_in(payload.email, payload.password)
    return {"access_token": session.access_token, "user": session.user, "profile": ctx.profile}


@router.post("/signup", status_code=201)
async def signup(payload: SignUpIn, ctx: SessionContext = Depends(get_session_context)):
    result = await ctx.sign_up(payload.email, payload.password, payload.full_name, payload.phone)
    if result.needs_email_confirmation:
        return {"needs_email_confirmation": True, "access_token": None, "profile": None}
    return {"needs_email_confirmation": False, "access_token": ctx.access_token, "profile": ctx.profile}


@router.post("/logout")
async def logout(ctx: SessionContext = Depends(get_session_context)):
    await ctx.sign_out()
    return {"status": "signed_out"}


@router.get("/me")
async def me(ctx: SessionContext = Depends(get_session_context)):
    if ctx.session is None:
        raise AuthorizationError()
    return {"user": ctx.user, "profile": ctx.profile,
            "is_admin": ctx.is_admin, "is_staff": ctx.is_staff}


# ---------------------------
# Admin
# ---------------------------
@router.get("/admin")
async def admin_dashboard(ctx: SessionContext = Depends(require_staff)):
    return {"profile": ctx.profile, "stats": await query.dashboard_stats(ctx.db)}


@router.get("/admin/products")
async def admin_list_products(status: Optional[str] = None, category: Optional[str] = None,
                              tag: Optional[str] = None, ctx: SessionContext = Depends(require_staff)):
    return await query.admin_products(ctx.db, query.ProductQuery.from_params(status, category, tag))


@router.post("/admin/products", status_code=201)
async def admin_create_product(payload: ProductIn, ctx: SessionContext = Depends(require_staff)):
    return await workflow.create_product(ctx.db, ctx, payload)


@router.get("/admin/products/{product_id}")
async def admin_get_product(product_id: str, ctx: SessionContext = Depends(require_staff)):
    return await query.get_product(ctx.db, product_id)


@router.put("/admin/products/{product_id}")
async def admin_update_product(product_id: str, payload: ProductUpdate,
                               ctx: SessionContext = Depends(require_staff)):
    return await workflow.update_product(ctx.db, ctx, product_id, payload)


@router.post("/admin/products/{product_id}/approve")
async def admin_approve_product(product_id: str, ctx: SessionContext = Depends(require_staff)):
    return await workflow.approve_product(ctx.db, ctx, product_id)


@router.post("/admin/products/{product_id}/stock")
async def admin_set_stock(product_id: str, payload: StockIn, ctx: SessionContext = Depends(require_staff),
                          settings: Settings = Depends(get_app_settings)):
    return await workflow.set_stock(ctx.db, ctx, product_id, payload.in_stock, roles=settings.stock_toggle_roles)


@router.delete("/admin/products/{product_id}")
async def admin_delete_product(product_id: str, ctx: SessionContext = Depends(require_staff),
                               settings: Settings = Depends(get_app_settings)):
    await workflow.delete_product(ctx.db, ctx, product_id, roles=settings.delete_roles)
    return {"status": "deleted", "product_id": product_id}


@router.post("/admin/uploads", status_code=201)
async def admin_upload_image(file: UploadFile = File(...), product_id: Optional[str] = Form(None),
                             ctx: SessionContext = Depends(require_staff),
                             storage: ImageStorage = Depends(get_storage)):
    data = await file.read()
    url = await upload_product_image(storage.for_session(ctx.access_token), product_id,
                                     file.filename or "image", file.content_type, data)
    return {"url": url}


@router.delete("/admin/uploads")
async def admin_delete_image(payload: ImageRemoveIn, ctx: SessionContext = Depends(require_staff),
                             storage: ImageStorage = Depends(get_storage)):
    return {"removed": await delete_product_image(storage.for_session(ctx.access_token), payload.url)}


@router.post("/admin/categories", status_code=201)
async def admin_create_category(payload: CategoryIn, ctx: SessionContext = Depends(require_staff)):
    return await workflow.create_category(ctx.db, ctx, payload)


@router.delete("/admin/categories/{category_id}")
async def admin_delete_category(category_id: str, ctx: SessionContext = Depends(require_staff)):
    orphaned = await workflow.delete_category(ctx.db, ctx, category_id)
    return {"status": "deleted", "category_id": category_id, "uncategorised_products": orphaned}


# ---------------------------
# App factory
# ---------------------------
def _backends(settings: Settings):
    if settings.backend == "remote":
        return (
            RestDatabase(settings.remote_url, settings.remote_api_key, settings.remote_timeout),
            RestStorage(settings.remote_url, settings.remote_api_key, settings.image_bucket),
            RestIdentity(settings.remote_url, settings.remote_api_key, settings.remote_timeout),
        )
    return MemoryDatabase(), MemoryStorage(settings.image_bucket), MemoryIdentity()


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None,
               storage: Optional[ImageStorage] = None, identity: Optional[IdentityService] = None) -> FastAPI:
    settings = settings or get_settings()
    default_db, default_storage, default_identity = _backends(settings)
    db = db or default_db
    storage = storage or default_storage
    identity = identity or default_identity

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.admin_email and settings.admin_password:
            await bootstrap_admin(identity, db, settings.admin_email, settings.admin_password)
        yield
        await db.aclose()
        await storage.aclose()
        await identity.aclose()

    app = FastAPI(title="giftshop catalog", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.db = db
    app.state.storage = storage
    app.state.identity = identity
    app.include_router(router)
    return app


configure_logging()
app = create_app()

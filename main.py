from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

import database
import settings
from aggregation import aggregate_for_product, dashboard_for
from catalog import load_marketplace, shop_page
from database import ensure_indexes, get_db
from errors import CooldownActive, EngineError, NotFound
from logs import configure_logging
from orders import format_order_message, order_link
from products import create_product, delete_product, get_product, update_product
from ratings import get_rating_for, resolve_policy, submit_rating
from schemas import (
    DashboardStats,
    FilterOptions,
    OrderLink,
    Principal,
    ProductCreate,
    ProductUpdate,
    ProductView,
    RateProductRequest,
    RatingAggregate,
    RatingResult,
    ShopCreate,
    ShopPage,
    ShopSummary,
    ShopUpdate,
    SortOrder,
)
from security import get_current_principal, get_optional_principal
from shops import create_shop, delete_shop, get_shop, get_shop_for_owner, list_shops, update_shop

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # An unknown RATING_POLICY stops startup
    logger.info("Rating policy", policy=resolve_policy())
    if database.db is not None:
        ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, store calls will fail")
    yield


# App and CORS
app = FastAPI(title="Storefront Catalog API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    content = {"error": exc.code, "detail": exc.detail}
    headers = None
    if isinstance(exc, CooldownActive):
        content["retry_after_seconds"] = exc.retry_after_seconds
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    if exc.status_code >= 500:
        logger.warning("Request failed", path=request.url.path, error=exc.code)
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


# Shop Routes
@app.post("/shops", status_code=201)
def create_shop_route(payload: ShopCreate, principal: Principal = Depends(get_current_principal), db: Database = Depends(get_db)):
    return create_shop(db, principal, payload)


@app.get("/shops", response_model=List[ShopSummary])
def list_shops_route(db: Database = Depends(get_db)):
    return list_shops(db)


@app.get("/shops/me")
def my_shop(principal: Principal = Depends(get_current_principal), db: Database = Depends(get_db)):
    shop = get_shop_for_owner(db, principal.user_id)
    if not shop:
        raise NotFound("You do not have a shop yet")
    return shop


@app.get("/shops/{slug}", response_model=ShopPage)
def shop_page_route(slug: str, viewer: Optional[Principal] = Depends(get_optional_principal), db: Database = Depends(get_db)):
    return shop_page(db, slug, viewer)


@app.patch("/shops/{shop_id}")
def update_shop_route(
    shop_id: str,
    payload: ShopUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    return update_shop(db, principal, shop_id, payload)


@app.delete("/shops/{shop_id}")
def delete_shop_route(shop_id: str, principal: Principal = Depends(get_current_principal), db: Database = Depends(get_db)):
    return delete_shop(db, principal, shop_id)


# Product Routes
@app.post("/shops/{shop_id}/products", status_code=201)
def create_product_route(
    shop_id: str,
    payload: ProductCreate,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    return create_product(db, principal, shop_id, payload)


@app.patch("/products/{product_id}")
def update_product_route(
    product_id: str,
    payload: ProductUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    return update_product(db, principal, product_id, payload)


@app.delete("/products/{product_id}")
def delete_product_route(product_id: str, principal: Principal = Depends(get_current_principal), db: Database = Depends(get_db)):
    return delete_product(db, principal, product_id)


@app.get("/marketplace", response_model=List[ProductView])
def marketplace(
    q: str = "",
    category: str = settings.ALL_CATEGORIES,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort: SortOrder = Query("newest"),
    db: Database = Depends(get_db),
):
    filters = FilterOptions(search_term=q, category=category, min_price=min_price, max_price=max_price, sort_by=sort)
    return load_marketplace(db, filters)


# Rating Routes
@app.post("/products/{product_id}/ratings", response_model=RatingResult)
def rate_product(
    product_id: str,
    payload: RateProductRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Database = Depends(get_db),
):
    return submit_rating(db, product_id, principal, payload.score)


@app.get("/products/{product_id}/ratings/me")
def my_rating(product_id: str, principal: Principal = Depends(get_current_principal), db: Database = Depends(get_db)):
    return {"rating": get_rating_for(db, product_id, principal.user_id)}


@app.get("/products/{product_id}/rating", response_model=RatingAggregate)
def product_rating(product_id: str, db: Database = Depends(get_db)):
    get_product(db, product_id)
    return aggregate_for_product(db, product_id)


# Order handoff
@app.get("/products/{product_id}/order-link", response_model=OrderLink)
def product_order_link(product_id: str, locale: str = "ar", db: Database = Depends(get_db)):
    product = get_product(db, product_id)
    shop = get_shop(db, product["shop_id"])
    return OrderLink(message=format_order_message(shop, product, locale), url=order_link(shop, product, locale))


# Dashboard
@app.get("/dashboard", response_model=DashboardStats)
def dashboard(principal: Principal = Depends(get_current_principal), db: Database = Depends(get_db)):
    return dashboard_for(db, principal)


# Utility endpoints
@app.get("/")
def root():
    return {"message": "Storefront Catalog API running"}


@app.get("/test")
def test_database():
    store = database.db
    try:
        collections = store.list_collection_names() if store is not None else []
        return {"backend": "ok", "database": "ok" if store is not None else "missing", "collections": collections}
    except Exception as e:
        return {"backend": "ok", "database": f"error: {e}"}

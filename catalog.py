"""
Marketplace query pipeline.

`query_marketplace` is pure: given the same products, shops, ratings and
filters it returns the same ordered list. Stages run in a fixed order:
join, search, category, price range, then sort.
"""

import math
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import structlog
from pymongo import DESCENDING
from pymongo.database import Database

import settings
from aggregation import aggregate_ratings, shop_rollup
from database import PRODUCTS, RATINGS, SHOPS, get_documents, store_errors, to_store_time
from schemas import FilterOptions, Principal, ProductView, RatingAggregate, ShopPage, ShopSummary
from shops import get_shop_by_slug
from slugs import shop_url

logger = structlog.get_logger(__name__)


def _created_key(view: ProductView) -> datetime:
    # Products without a timestamp sort as the oldest
    return to_store_time(view.created_at) if view.created_at else datetime.min


# sort_by -> (key, descending)
SORTS: Dict[str, Tuple[Callable[[ProductView], object], bool]] = {
    "newest": (_created_key, True),
    "oldest": (_created_key, False),
    "price_low": (lambda v: v.price, False),
    "price_high": (lambda v: v.price, True),
    "rating": (lambda v: v.rating.average, True),
}


def join_products(products: Iterable[Dict], shops: Iterable[Dict], ratings: Iterable[Dict]) -> List[ProductView]:
    """Attach shop and rating aggregate to each product, dropping orphans."""
    shops_by_id = {s["id"]: s for s in shops}
    aggregates = aggregate_ratings(ratings)

    views = []
    for p in products:
        shop = shops_by_id.get(p.get("shop_id"))
        if shop is None:
            continue
        views.append(
            ProductView(
                id=p["id"],
                shop_id=p["shop_id"],
                name=p.get("name", ""),
                description=p.get("description") or "",
                price=p["price"],
                category=p.get("category", ""),
                image_url=p.get("image_url"),
                created_at=p.get("created_at"),
                shop=ShopSummary(
                    id=shop["id"],
                    name=shop.get("name", ""),
                    url_slug=shop.get("url_slug", ""),
                    description=shop.get("description") or "",
                    contact_number=shop.get("contact_number", ""),
                    logo_url=shop.get("logo_url"),
                ),
                rating=aggregates.get(p["id"], RatingAggregate()),
            )
        )
    return views


def matches_search(view: ProductView, term: str) -> bool:
    term = term.lower()
    return any(
        term in field.lower()
        for field in (view.name, view.description, view.shop.name, view.shop.description)
    )


def apply_filters(views: List[ProductView], filters: FilterOptions) -> List[ProductView]:
    term = filters.search_term.strip()
    if term:
        views = [v for v in views if matches_search(v, term)]

    if filters.category and filters.category != settings.ALL_CATEGORIES:
        views = [v for v in views if v.category == filters.category]

    low = filters.min_price if filters.min_price is not None else 0
    high = filters.max_price if filters.max_price is not None else math.inf
    return [v for v in views if low <= v.price <= high]


def sort_views(views: List[ProductView], sort_by: str) -> List[ProductView]:
    key, descending = SORTS[sort_by]
    # sorted() is stable, also with reverse=True, so ties keep their input order
    return sorted(views, key=key, reverse=descending)


def query_marketplace(
    products: Iterable[Dict],
    shops: Iterable[Dict],
    ratings: Iterable[Dict],
    filters: Optional[FilterOptions] = None,
) -> List[ProductView]:
    filters = filters or FilterOptions()
    views = join_products(products, shops, ratings)
    views = apply_filters(views, filters)
    return sort_views(views, filters.sort_by)


def load_marketplace(db: Database, filters: Optional[FilterOptions] = None) -> List[ProductView]:
    with store_errors("load_marketplace"):
        shops = get_documents(db, SHOPS)
        products = get_documents(db, PRODUCTS, sort=[("created_at", DESCENDING)])
        ratings = list(db[RATINGS].find({}, {"_id": 0, "product_id": 1, "score": 1}))
    results = query_marketplace(products, shops, ratings, filters)
    logger.debug("Marketplace queried", candidates=len(products), results=len(results))
    return results


def shop_page(db: Database, slug: str, viewer: Optional[Principal] = None) -> ShopPage:
    """Public shop page: shop, stats and products with the viewer's own scores."""
    shop = get_shop_by_slug(db, slug)
    with store_errors("shop_page"):
        products = get_documents(db, PRODUCTS, {"shop_id": shop["id"]}, sort=[("created_at", DESCENDING)])
        product_ids = [p["id"] for p in products]
        ratings = (
            list(db[RATINGS].find({"product_id": {"$in": product_ids}}, {"_id": 0, "product_id": 1, "user_id": 1, "score": 1}))
            if product_ids
            else []
        )

    views = join_products(products, [shop], ratings)
    if viewer is not None:
        mine = {r["product_id"]: r["score"] for r in ratings if r["user_id"] == viewer.user_id}
        views = [v.model_copy(update={"my_rating": mine.get(v.id)}) for v in views]

    return ShopPage(
        shop=shop,
        share_url=shop_url(shop["url_slug"]),
        stats=shop_rollup(products, ratings),
        products=views,
    )

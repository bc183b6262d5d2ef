"""
Rating aggregates.

Aggregates are always recomputed from the raw rating documents; nothing
stored on a product (legacy `rating`/`reviewCount` fields included) is read
as a source of truth. The rollups are pure functions over documents the
caller has already fetched.
"""

from collections import defaultdict
from typing import Dict, Iterable, List

import structlog
from pymongo.database import Database

import settings
from database import PRODUCTS, RATINGS, SHOPS, sanitize, store_errors
from errors import NotFound
from schemas import DashboardStats, Principal, RatingAggregate, ShopStats

logger = structlog.get_logger(__name__)


def summarize(scores: Iterable[int]) -> RatingAggregate:
    scores = list(scores)
    if not scores:
        return RatingAggregate(average=0.0, count=0)
    return RatingAggregate(average=round(sum(scores) / len(scores), 2), count=len(scores))


def aggregate_ratings(ratings: Iterable[Dict]) -> Dict[str, RatingAggregate]:
    """Per-product aggregates for every product that has ratings."""
    scores: Dict[str, List[int]] = defaultdict(list)
    for r in ratings:
        scores[r["product_id"]].append(r["score"])
    return {product_id: summarize(s) for product_id, s in scores.items()}


def shop_rollup(products: List[Dict], ratings: Iterable[Dict]) -> ShopStats:
    product_ids = {p["id"] for p in products}
    per_product = aggregate_ratings(r for r in ratings if r["product_id"] in product_ids)

    # Unrated products report the 0 sentinel, which must not drag the mean down
    averages = [agg.average for agg in per_product.values() if agg.count]
    return ShopStats(
        product_count=len(products),
        average_of_averages=round(sum(averages) / len(averages), 2) if averages else 0.0,
        total_ratings=sum(agg.count for agg in per_product.values()),
    )


def category_distribution(products: Iterable[Dict]) -> Dict[str, int]:
    distribution = {category: 0 for category in settings.PRODUCT_CATEGORIES}
    for p in products:
        category = p.get("category")
        distribution[category] = distribution.get(category, 0) + 1
    return distribution


def aggregate_for_product(db: Database, product_id: str) -> RatingAggregate:
    with store_errors("aggregate_for_product"):
        ratings = list(db[RATINGS].find({"product_id": product_id}, {"score": 1}))
    return summarize(r["score"] for r in ratings)


def _ratings_for(db: Database, product_ids: List[str]) -> List[Dict]:
    if not product_ids:
        return []
    with store_errors("ratings_for_products"):
        return list(db[RATINGS].find({"product_id": {"$in": product_ids}}, {"product_id": 1, "score": 1}))


def aggregate_for_shop(db: Database, shop_id: str) -> ShopStats:
    with store_errors("aggregate_for_shop"):
        products = [sanitize(p) for p in db[PRODUCTS].find({"shop_id": shop_id}, {"_id": 1})]
    return shop_rollup(products, _ratings_for(db, [p["id"] for p in products]))


def dashboard_for(db: Database, principal: Principal) -> DashboardStats:
    """Owner dashboard for the caller's shop, or platform-wide for administrators."""
    if principal.is_admin:
        with store_errors("dashboard"):
            shop_count = db[SHOPS].count_documents({})
            products = [sanitize(p) for p in db[PRODUCTS].find({}, {"_id": 1, "category": 1})]
            ratings = list(db[RATINGS].find({}, {"product_id": 1, "score": 1}))
        scope = "platform"
    else:
        with store_errors("dashboard"):
            shop = db[SHOPS].find_one({"owner_id": principal.user_id}, {"_id": 1})
        if shop is None:
            raise NotFound("You do not have a shop yet")
        with store_errors("dashboard"):
            products = [sanitize(p) for p in db[PRODUCTS].find({"shop_id": str(shop["_id"])}, {"_id": 1, "category": 1})]
        ratings = _ratings_for(db, [p["id"] for p in products])
        shop_count = 1
        scope = "shop"

    stats = shop_rollup(products, ratings)
    return DashboardStats(
        scope=scope,
        shop_count=shop_count,
        product_count=stats.product_count,
        total_ratings=stats.total_ratings,
        average_of_averages=stats.average_of_averages,
        categories=category_distribution(products),
    )

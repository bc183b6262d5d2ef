"""Shop lifecycle: creation with a unique slug, owner updates and cascade delete."""

from datetime import datetime
from typing import Dict, List, Optional

import structlog
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import PRODUCTS, RATINGS, SHOPS, get_documents, sanitize, store_errors, to_obj_id, to_store_time, utcnow
from errors import InvalidSlug, NotFound, PermissionDenied, ShopAlreadyExists
from schemas import Principal, Shop, ShopCreate, ShopUpdate
from slugs import assign_slug

logger = structlog.get_logger(__name__)


def can_manage(principal: Principal, shop: Dict) -> bool:
    return principal.is_admin or shop.get("owner_id") == principal.user_id


def ensure_can_manage(principal: Principal, shop: Dict) -> None:
    if not can_manage(principal, shop):
        raise PermissionDenied("Only the shop owner or an administrator can do this")


def get_shop(db: Database, shop_id: str) -> Dict:
    with store_errors("get_shop"):
        shop = db[SHOPS].find_one({"_id": to_obj_id(shop_id)})
    if not shop:
        raise NotFound("Shop not found")
    return sanitize(shop)


def get_shop_by_slug(db: Database, slug: str) -> Dict:
    with store_errors("get_shop_by_slug"):
        shop = db[SHOPS].find_one({"url_slug": slug})
    if not shop:
        raise NotFound("Shop not found")
    return sanitize(shop)


def get_shop_for_owner(db: Database, owner_id: str) -> Optional[Dict]:
    with store_errors("get_shop_for_owner"):
        return sanitize(db[SHOPS].find_one({"owner_id": owner_id}))


def list_shops(db: Database) -> List[Dict]:
    with store_errors("list_shops"):
        return get_documents(db, SHOPS, sort=[("created_at", DESCENDING)])


def create_shop(db: Database, principal: Principal, payload: ShopCreate, now: Optional[datetime] = None) -> Dict:
    now = to_store_time(now) if now else utcnow()
    if get_shop_for_owner(db, principal.user_id):
        raise ShopAlreadyExists()

    slug = assign_slug(db, payload.name, payload.url_slug, now=now)
    doc = Shop(
        owner_id=principal.user_id,
        url_slug=slug,
        **payload.model_dump(exclude={"url_slug"}),
    ).model_dump()
    doc.update(created_at=now, updated_at=now)

    with store_errors("create_shop"):
        try:
            res = db[SHOPS].insert_one(doc)
        except DuplicateKeyError:
            raise InvalidSlug("This shop URL was just taken, please try again")
    doc["_id"] = res.inserted_id
    logger.info("Shop created", shop_id=str(res.inserted_id), owner_id=principal.user_id, url_slug=slug)
    return sanitize(doc)


def update_shop(db: Database, principal: Principal, shop_id: str, payload: ShopUpdate) -> Dict:
    shop = get_shop(db, shop_id)
    ensure_can_manage(principal, shop)

    # url_slug is not part of ShopUpdate: a slug never changes once assigned
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return shop
    changes["updated_at"] = utcnow()
    with store_errors("update_shop"):
        updated = db[SHOPS].find_one_and_update(
            {"_id": to_obj_id(shop_id)},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
    if not updated:
        raise NotFound("Shop not found")
    logger.info("Shop updated", shop_id=shop_id, fields=sorted(changes))
    return sanitize(updated)


def delete_shop(db: Database, principal: Principal, shop_id: str) -> Dict:
    """Delete a shop with its products and their ratings.

    Children go first and the shop last, so a run that fails halfway can be
    repeated: whatever is already gone is simply not found again.
    """
    shop = get_shop(db, shop_id)
    ensure_can_manage(principal, shop)

    with store_errors("delete_shop"):
        product_ids = [str(p["_id"]) for p in db[PRODUCTS].find({"shop_id": shop_id}, {"_id": 1})]
        ratings = db[RATINGS].delete_many({"product_id": {"$in": product_ids}}) if product_ids else None
        products = db[PRODUCTS].delete_many({"shop_id": shop_id})
        db[SHOPS].delete_one({"_id": to_obj_id(shop_id)})

    summary = {
        "shop_id": shop_id,
        "products_deleted": products.deleted_count,
        "ratings_deleted": ratings.deleted_count if ratings else 0,
    }
    logger.info("Shop deleted", by=principal.user_id, **summary)
    return summary

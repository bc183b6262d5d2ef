"""Product listing, editing and deletion under a shop."""

from typing import Dict, List, Optional

import structlog
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

import settings
from database import PRODUCTS, RATINGS, create_document, get_documents, sanitize, store_errors, to_obj_id, utcnow
from errors import InvalidCategory, InvalidPrice, NotFound
from schemas import Principal, Product, ProductCreate, ProductUpdate
from shops import ensure_can_manage, get_shop

logger = structlog.get_logger(__name__)


def validate_price(price) -> float:
    if isinstance(price, bool) or not isinstance(price, (int, float)) or not 0 < price <= settings.MAX_PRICE:
        raise InvalidPrice(f"Price must be greater than 0 and at most {settings.MAX_PRICE}")
    return float(price)


def validate_category(category: str) -> str:
    if category not in settings.PRODUCT_CATEGORIES:
        raise InvalidCategory(f"Unknown category {category!r}")
    return category


def _ensure_can_manage_product(db: Database, principal: Principal, product: Dict) -> None:
    # Administrators may also clean up products whose shop is already gone
    if principal.is_admin:
        return
    ensure_can_manage(principal, get_shop(db, product["shop_id"]))


def get_product(db: Database, product_id: str) -> Dict:
    with store_errors("get_product"):
        product = db[PRODUCTS].find_one({"_id": to_obj_id(product_id)})
    if not product:
        raise NotFound("Product not found")
    return sanitize(product)


def list_products(db: Database, shop_id: Optional[str] = None) -> List[Dict]:
    with store_errors("list_products"):
        return get_documents(
            db, PRODUCTS, {"shop_id": shop_id} if shop_id else None, sort=[("created_at", DESCENDING)]
        )


def create_product(db: Database, principal: Principal, shop_id: str, payload: ProductCreate) -> Dict:
    shop = get_shop(db, shop_id)
    ensure_can_manage(principal, shop)

    product = Product(
        shop_id=shop["id"],
        name=payload.name,
        description=payload.description,
        price=validate_price(payload.price),
        category=validate_category(payload.category),
        image_url=payload.image_url,
    )
    with store_errors("create_product"):
        product_id = create_document(db, PRODUCTS, product)
    logger.info("Product created", product_id=product_id, shop_id=shop["id"])
    return get_product(db, product_id)


def update_product(db: Database, principal: Principal, product_id: str, payload: ProductUpdate) -> Dict:
    product = get_product(db, product_id)
    _ensure_can_manage_product(db, principal, product)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "price" in changes:
        changes["price"] = validate_price(changes["price"])
    if "category" in changes:
        validate_category(changes["category"])
    if not changes:
        return product
    changes["updated_at"] = utcnow()

    with store_errors("update_product"):
        updated = db[PRODUCTS].find_one_and_update(
            {"_id": to_obj_id(product_id)},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
    if not updated:
        raise NotFound("Product not found")
    logger.info("Product updated", product_id=product_id, fields=sorted(changes))
    return sanitize(updated)


def delete_product(db: Database, principal: Principal, product_id: str) -> Dict:
    product = get_product(db, product_id)
    _ensure_can_manage_product(db, principal, product)

    with store_errors("delete_product"):
        ratings = db[RATINGS].delete_many({"product_id": product_id})
        db[PRODUCTS].delete_one({"_id": to_obj_id(product_id)})

    logger.info("Product deleted", product_id=product_id, by=principal.user_id, ratings_deleted=ratings.deleted_count)
    return {"product_id": product_id, "ratings_deleted": ratings.deleted_count}

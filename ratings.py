"""
Rating ledger.

Each (product, user) pair owns at most one rating document, guarded by a
unique index. Whether a user may rate again is decided by the deployment's
eligibility policy:

- ``one_time``: the first rating is final; later attempts get AlreadyRated.
- ``cooldown``: the rating may be replaced once the cooldown window has
  passed since the last accepted submission. The document is updated in
  place and the window restarts.

Both the insert and the update are conditional writes, so two concurrent
submissions for the same pair cannot both succeed.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional

import structlog
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import settings
from database import PRODUCTS, RATINGS, sanitize, store_errors, to_obj_id, to_store_time, utcnow
from errors import AlreadyRated, CooldownActive, InvalidScore, NotFound, Unauthenticated
from schemas import Principal, RatingPolicy, RatingResult

logger = structlog.get_logger(__name__)

POLICIES = ("cooldown", "one_time")
MIN_SCORE = 1
MAX_SCORE = 5


def cooldown_window() -> timedelta:
    return timedelta(hours=settings.RATING_COOLDOWN_HOURS)


def resolve_policy(policy: Optional[RatingPolicy] = None) -> RatingPolicy:
    policy = policy or settings.RATING_POLICY
    if policy not in POLICIES:
        raise ValueError(f"Unknown rating policy {policy!r}, expected one of {POLICIES}")
    return policy


def validate_score(score) -> int:
    # bool is an int subclass; True is not a score
    if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidScore()
    return score


def get_rating_for(db: Database, product_id: str, user_id: str) -> Optional[Dict]:
    with store_errors("get_rating_for"):
        return sanitize(db[RATINGS].find_one({"product_id": product_id, "user_id": user_id}))


def submit_rating(
    db: Database,
    product_id: str,
    principal: Optional[Principal],
    score,
    now: Optional[datetime] = None,
    policy: Optional[RatingPolicy] = None,
) -> RatingResult:
    if principal is None:
        raise Unauthenticated("Please login to rate products")
    validate_score(score)
    policy = resolve_policy(policy)
    now = to_store_time(now) if now else utcnow()

    with store_errors("submit_rating"):
        if db[PRODUCTS].find_one({"_id": to_obj_id(product_id)}, {"_id": 1}) is None:
            raise NotFound("Product not found")
        key = {"product_id": product_id, "user_id": principal.user_id}
        existing = db[RATINGS].find_one(key)

        if existing is None:
            try:
                db[RATINGS].insert_one({**key, "score": score, "created_at": now, "rated_at": now})
            except DuplicateKeyError:
                # A concurrent submission for the same pair won the insert
                existing = db[RATINGS].find_one(key)
                if existing is None:
                    raise
            else:
                logger.info("Rating created", product_id=product_id, user_id=principal.user_id, score=score)
                return _result(product_id, principal.user_id, score, "created", now, policy)

    if policy == "one_time":
        logger.info("Rating rejected, already rated", product_id=product_id, user_id=principal.user_id)
        raise AlreadyRated()

    return _rerate(db, existing, score, now)


def _rerate(db: Database, existing: Dict, score: int, now: datetime) -> RatingResult:
    window = cooldown_window()
    remaining = existing["rated_at"] + window - now
    if remaining > timedelta(0):
        logger.info(
            "Rating rejected, cooldown active",
            product_id=existing["product_id"],
            user_id=existing["user_id"],
            remaining_seconds=int(remaining.total_seconds()),
        )
        raise CooldownActive(remaining)

    with store_errors("submit_rating"):
        updated = db[RATINGS].find_one_and_update(
            {"_id": existing["_id"], "rated_at": existing["rated_at"]},
            {"$set": {"score": score, "rated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            current = db[RATINGS].find_one({"_id": existing["_id"]})
    if updated is None:
        # Someone else re-rated between our read and write; their write restarted the window
        if current is None:
            raise NotFound("Rating no longer exists")
        raise CooldownActive(max(current["rated_at"] + window - now, timedelta(seconds=1)))

    logger.info("Rating updated", product_id=existing["product_id"], user_id=existing["user_id"], score=score)
    return _result(existing["product_id"], existing["user_id"], score, "updated", now, "cooldown")


def _result(product_id: str, user_id: str, score: int, status: str, rated_at: datetime, policy: str) -> RatingResult:
    return RatingResult(
        product_id=product_id,
        user_id=user_id,
        score=score,
        status=status,
        rated_at=rated_at,
        retry_at=rated_at + cooldown_window() if policy == "cooldown" else None,
    )

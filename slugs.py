"""
Shop URL slugs.

A slug is derived from the shop name (or taken from an explicit value),
normalised to lowercase latin letters, digits and single hyphens, and made
unique with one lookup: on collision the creation time in epoch milliseconds
is appended.
"""

import re
from datetime import datetime, timezone
from typing import Optional

import structlog
from pymongo.database import Database

import settings
from database import SHOPS, store_errors, utcnow
from errors import InvalidShopName, InvalidSlug

logger = structlog.get_logger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_SEPARATORS = re.compile(r"[\s-]+")


def slugify(text: str) -> str:
    slug = _DISALLOWED.sub("", text.lower())
    slug = _SEPARATORS.sub("-", slug)
    return slug.strip("-")


def _fit(slug: str, max_length: int) -> str:
    return slug[:max_length].rstrip("-")


def is_valid_slug(slug: str) -> bool:
    return (
        settings.SLUG_MIN_LENGTH <= len(slug) <= settings.SLUG_MAX_LENGTH
        and SLUG_RE.match(slug) is not None
    )


def candidate_slug(shop_name: str, explicit_slug: Optional[str] = None) -> str:
    """Normalised slug before any collision handling."""
    if explicit_slug is not None and explicit_slug.strip():
        candidate = _fit(slugify(explicit_slug), settings.SLUG_MAX_LENGTH)
        if len(candidate) < settings.SLUG_MIN_LENGTH:
            raise InvalidSlug()
        return candidate

    candidate = _fit(slugify(shop_name or ""), settings.SLUG_MAX_LENGTH)
    if len(candidate) < settings.SLUG_MIN_LENGTH:
        raise InvalidShopName()
    return candidate


def disambiguate(candidate: str, now: datetime) -> str:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    suffix = str(int(now.timestamp() * 1000))
    base = _fit(candidate, settings.SLUG_MAX_LENGTH - len(suffix) - 1)
    return f"{base}-{suffix}"


def assign_slug(db: Database, shop_name: str, explicit_slug: Optional[str] = None, now: Optional[datetime] = None) -> str:
    candidate = candidate_slug(shop_name, explicit_slug)
    with store_errors("assign_slug"):
        taken = db[SHOPS].find_one({"url_slug": candidate}, {"_id": 1})
    if taken is None:
        return candidate

    slug = disambiguate(candidate, now or utcnow())
    logger.info("Shop slug collision resolved", candidate=candidate, slug=slug)
    return slug


def shop_url(slug: str) -> str:
    return f"{settings.PUBLIC_BASE_URL}/shop/{slug}"

"""
Error taxonomy for the storefront engine.

Validation and eligibility errors are deterministic and their messages are
shown to the end user as-is. StoreUnavailable is transient; callers offer a
retry instead of the engine retrying on its own.
"""

from datetime import timedelta
from typing import Optional


class EngineError(Exception):
    code = "engine_error"
    status_code = 500

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class ValidationError(EngineError):
    """Invalid input"""
    code = "validation_error"
    status_code = 422


class InvalidScore(ValidationError):
    """Score must be an integer between 1 and 5"""
    code = "invalid_score"


class InvalidPrice(ValidationError):
    """Price must be greater than 0"""
    code = "invalid_price"


class InvalidCategory(ValidationError):
    """Unknown product category"""
    code = "invalid_category"


class InvalidShopName(ValidationError):
    """Shop name must contain at least 3 latin letters or digits"""
    code = "invalid_shop_name"


class InvalidSlug(ValidationError):
    """Shop URL must contain at least 3 letters, digits or hyphens"""
    code = "invalid_slug"


class InvalidId(ValidationError):
    """Invalid id"""
    code = "invalid_id"


class Unauthenticated(EngineError):
    """Please login to continue"""
    code = "unauthenticated"
    status_code = 401


class PermissionDenied(EngineError):
    """Insufficient permissions"""
    code = "permission_denied"
    status_code = 403


class NotFound(EngineError):
    """Not found"""
    code = "not_found"
    status_code = 404


class AlreadyRated(EngineError):
    """You have already rated this product"""
    code = "already_rated"
    status_code = 409


class ShopAlreadyExists(EngineError):
    """You already have a shop"""
    code = "shop_exists"
    status_code = 409


class CooldownActive(EngineError):
    """You can rate this product again later"""
    code = "cooldown_active"
    status_code = 429

    def __init__(self, remaining: timedelta, detail: Optional[str] = None):
        self.remaining = remaining
        super().__init__(detail or f"You can rate this product again in {_humanize(remaining)}")

    @property
    def retry_after_seconds(self) -> int:
        # Round up so clients never retry a moment too early
        seconds = self.remaining.total_seconds()
        return max(1, int(seconds) + (0 if seconds.is_integer() else 1))


class StoreUnavailable(EngineError):
    """The store is temporarily unavailable, please retry"""
    code = "store_unavailable"
    status_code = 503


def _humanize(remaining: timedelta) -> str:
    minutes = max(1, int(remaining.total_seconds() // 60))
    hours, minutes = divmod(minutes, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"

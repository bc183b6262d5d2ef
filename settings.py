"""
Runtime configuration for the storefront engine.

Everything that varies per deployment is read from the environment; the
rest are constants shared by the engine modules.
"""

import os

# Document store
DATABASE_URL = os.getenv("DATABASE_URL", "")
DATABASE_NAME = os.getenv("DATABASE_NAME", "")

# Identity provider tokens
SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Rating eligibility: "cooldown" (re-rate after the window) or "one_time"
RATING_POLICY = os.getenv("RATING_POLICY", "cooldown")
RATING_COOLDOWN_HOURS = int(os.getenv("RATING_COOLDOWN_HOURS", "24"))

# Public links
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "https://dukkani.ly").rstrip("/")
MESSAGING_BASE_URL = "https://wa.me"

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Catalog
PRODUCT_CATEGORIES = [
    "clothing",
    "jewelry",
    "plants",
    "electronics",
    "home",
    "beauty",
    "food",
    "books",
    "sports",
    "toys",
    "automotive",
]
ALL_CATEGORIES = "all"
MAX_PRICE = 999999
CURRENCY = "د.ل"

# Slugs
SLUG_MIN_LENGTH = 3
SLUG_MAX_LENGTH = 50

"""
Database Schemas for the Storefront Engine

MongoDB collections are defined below using Pydantic models. Each class name is
converted to lowercase for the collection name (Shop -> "shop").

We will use these collections:
- shop: merchant storefronts, one per owner
- product: items listed under exactly one shop
- rating: one user's 1-5 score for a product

The remaining models are request bodies and derived read models.
"""

import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, computed_field, field_validator

Role = Literal["admin", "user"]
RatingPolicy = Literal["cooldown", "one_time"]
SortOrder = Literal["newest", "oldest", "price_low", "price_high", "rating"]
RatingStatus = Literal["created", "updated"]

CONTACT_NUMBER_RE = re.compile(r"^\+?[0-9]{8,15}$")


def clean_text(value):
    """Trim and drop angle brackets from user-entered text."""
    if isinstance(value, str):
        return value.strip().replace("<", "").replace(">", "")
    return value


def normalize_contact_number(value):
    if isinstance(value, str):
        value = re.sub(r"[\s-]+", "", value)
    if not isinstance(value, str) or not CONTACT_NUMBER_RE.match(value):
        raise ValueError("contact_number must be 8-15 digits")
    return value


CleanStr = Annotated[str, BeforeValidator(clean_text)]
ContactNumber = Annotated[str, BeforeValidator(normalize_contact_number)]


def reject_null(value):
    # Optional on partial updates means "may be omitted", not "may be cleared"
    if value is None:
        raise ValueError("field may be omitted but not set to null")
    return value


class SocialLinks(BaseModel):
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    tiktok: Optional[str] = None
    youtube: Optional[str] = None


class BusinessInfo(BaseModel):
    address: Optional[str] = Field(None, max_length=400)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    working_hours: Optional[str] = None


# Documents

class Shop(BaseModel):
    owner_id: str = Field(..., description="Identity provider user id of the owner")
    name: str = Field(..., min_length=1, max_length=120)
    url_slug: str = Field(..., description="Unique, immutable URL identifier")
    description: str = Field("", max_length=2000)
    contact_number: str = Field(..., description="Messaging number for orders")
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    business_info: BusinessInfo = Field(default_factory=BusinessInfo)


class Product(BaseModel):
    shop_id: str = Field(..., description="Reference to shop _id")
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    price: float = Field(..., gt=0)
    category: str
    image_url: str = Field(..., min_length=1, description="Asset host URL")


class Rating(BaseModel):
    product_id: str = Field(...)
    user_id: str = Field(...)
    score: int = Field(..., ge=1, le=5)
    rated_at: datetime = Field(..., description="Last accepted submission")


# Request Models

class ShopCreate(BaseModel):
    name: CleanStr = Field(..., min_length=1, max_length=120)
    url_slug: Optional[str] = Field(None, max_length=120, description="Explicit slug; derived from name when omitted")
    description: CleanStr = Field("", max_length=2000)
    contact_number: ContactNumber
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    business_info: BusinessInfo = Field(default_factory=BusinessInfo)


class ShopUpdate(BaseModel):
    name: Optional[CleanStr] = Field(None, min_length=1, max_length=120)
    description: Optional[CleanStr] = Field(None, max_length=2000)
    contact_number: Optional[ContactNumber] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    social_links: Optional[SocialLinks] = None
    business_info: Optional[BusinessInfo] = None

    @field_validator("name", "description", "contact_number", "social_links", "business_info", mode="before")
    @classmethod
    def not_null(cls, value):
        return reject_null(value)


class ProductCreate(BaseModel):
    name: CleanStr = Field(..., min_length=1, max_length=200)
    description: CleanStr = Field("", max_length=2000)
    price: float
    category: str
    image_url: str = Field(..., min_length=1)


class ProductUpdate(BaseModel):
    name: Optional[CleanStr] = Field(None, min_length=1, max_length=200)
    description: Optional[CleanStr] = Field(None, max_length=2000)
    price: Optional[float] = None
    category: Optional[str] = None
    image_url: Optional[str] = Field(None, min_length=1)

    @field_validator("name", "description", "price", "category", "image_url", mode="before")
    @classmethod
    def not_null(cls, value):
        return reject_null(value)


class RateProductRequest(BaseModel):
    # Raw value: type and range are checked by the rating ledger so true or 3.5
    # are reported as InvalidScore instead of being coerced
    score: Any = None


# Identity

class Principal(BaseModel):
    """Authenticated caller as vouched for by the identity provider."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# Read Models

class RatingAggregate(BaseModel):
    average: float = 0.0
    count: int = 0

    @computed_field
    @property
    def rated(self) -> bool:
        # average 0 with count 0 means "no ratings", never a 0-star score
        return self.count > 0


class ShopStats(BaseModel):
    product_count: int = 0
    average_of_averages: float = 0.0
    total_ratings: int = 0


class DashboardStats(BaseModel):
    scope: Literal["shop", "platform"]
    shop_count: int
    product_count: int
    total_ratings: int
    average_of_averages: float
    categories: Dict[str, int]


class RatingResult(BaseModel):
    product_id: str
    user_id: str
    score: int
    status: RatingStatus
    rated_at: datetime
    retry_at: Optional[datetime] = Field(None, description="When the user may rate again")


class FilterOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    search_term: str = ""
    category: str = "all"
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    sort_by: SortOrder = "newest"


class ShopSummary(BaseModel):
    id: str
    name: str
    url_slug: str
    description: str = ""
    contact_number: str
    logo_url: Optional[str] = None


class ProductView(BaseModel):
    id: str
    shop_id: str
    name: str
    description: str = ""
    price: float
    category: str
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    shop: ShopSummary
    rating: RatingAggregate
    my_rating: Optional[int] = None


class ShopPage(BaseModel):
    shop: Dict
    share_url: str
    stats: ShopStats
    products: List[ProductView]


class OrderLink(BaseModel):
    message: str
    url: str

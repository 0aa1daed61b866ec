from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

_TRUE_STRINGS = {"true", "1", "yes", "t", "y"}


def coerce_flag(value: Any) -> bool:
    """Promotion flags are definite booleans; anything unrecognised is False."""
    if value is True:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def coerce_number(value: Any) -> Optional[float]:
    """Finite number from a store value, or None when it cannot be read as one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def coerce_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def coerce_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds, as written by the hosted store
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class PricingType(str, Enum):
    CASH = "cash"
    FINANCE = "finance"


class BadgeKind(str, Enum):
    FEATURED = "featured"
    TOP_SPOT = "top_spot"
    BOOSTED = "boosted"
    URGENT = "urgent"


class Bucket(str, Enum):
    FEATURED = "featured"
    TOP_SPOT = "top_spot"
    BOOSTED = "boosted"
    REGULAR = "regular"


class PromotionType(str, Enum):
    FEATURED = "featured"
    TOP_SPOT = "top_spot"
    BOOST = "boost"
    URGENT = "urgent"


class Dealer(BaseModel):
    kind: Literal["dealer"] = "dealer"
    name: str
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    location: Optional[str] = None
    rating: Optional[float] = None
    review_count: int = 0

    @field_validator("name", "phone", "whatsapp", "location", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return coerce_text(v)

    @field_validator("rating", mode="before")
    @classmethod
    def _rating(cls, v: Any) -> Optional[float]:
        return coerce_number(v)

    @field_validator("review_count", mode="before")
    @classmethod
    def _review_count(cls, v: Any) -> int:
        n = coerce_number(v)
        return 0 if n is None else int(n)


class PrivateSeller(BaseModel):
    kind: Literal["private"] = "private"
    name: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None

    @field_validator("name", "phone", "whatsapp", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return coerce_text(v)


Seller = Annotated[Union[Dealer, PrivateSeller], Field(discriminator="kind")]


class Listing(BaseModel):
    id: str
    title: str = ""
    vehicle_type: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    location: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    views: int = 0
    created_at: Optional[datetime] = None
    is_sold: bool = False

    is_featured: bool = False
    is_top_spot: bool = False
    is_boosted: bool = False
    is_urgent: bool = False
    featured_until: Optional[datetime] = None
    top_spot_until: Optional[datetime] = None
    boosted_until: Optional[datetime] = None
    urgent_until: Optional[datetime] = None
    boost_score: float = 0.0

    pricing_type: PricingType = PricingType.CASH
    price: float = 0.0
    negotiable: bool = False
    finance_type: Optional[str] = None
    finance_provider: Optional[str] = None
    original_amount: Optional[float] = None
    outstanding_balance: Optional[float] = None
    asking_price: Optional[float] = None
    monthly_payment: Optional[float] = None
    remaining_term: Optional[str] = None
    early_settlement: Optional[str] = None

    seller: Seller = Field(default_factory=PrivateSeller)

    @field_validator("is_featured", "is_top_spot", "is_boosted", "is_urgent", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool:
        return coerce_flag(v)

    @field_validator(
        "featured_until", "top_spot_until", "boosted_until", "urgent_until", "created_at",
        mode="before",
    )
    @classmethod
    def _timestamp(cls, v: Any) -> Optional[datetime]:
        return coerce_timestamp(v)

    @field_validator("pricing_type", mode="before")
    @classmethod
    def _pricing_type(cls, v: Any) -> PricingType:
        if isinstance(v, PricingType):
            return v
        if isinstance(v, str) and v.strip().lower() == "finance":
            return PricingType.FINANCE
        return PricingType.CASH

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> float:
        return coerce_number(v) or 0.0

    @field_validator("boost_score", mode="before")
    @classmethod
    def _boost_score(cls, v: Any) -> float:
        return coerce_number(v) or 0.0

    @field_validator(
        "original_amount", "outstanding_balance", "asking_price", "monthly_payment",
        mode="before",
    )
    @classmethod
    def _amount(cls, v: Any) -> Optional[float]:
        return coerce_number(v)

    @field_validator("year", "mileage", mode="before")
    @classmethod
    def _whole(cls, v: Any) -> Optional[int]:
        n = coerce_number(v)
        return None if n is None else int(n)

    @field_validator("views", mode="before")
    @classmethod
    def _views(cls, v: Any) -> int:
        n = coerce_number(v)
        return 0 if n is None else int(n)

    @field_validator("negotiable", "is_sold", mode="before")
    @classmethod
    def _bool(cls, v: Any) -> bool:
        return coerce_flag(v)

    @field_validator("images", mode="before")
    @classmethod
    def _images(cls, v: Any) -> List[str]:
        if not isinstance(v, (list, tuple)):
            return []
        return [u for u in v if isinstance(u, str) and u]

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v: Any) -> str:
        return coerce_text(v) or ""

    @field_validator(
        "vehicle_type", "make", "model", "fuel_type", "transmission", "location",
        "finance_type", "finance_provider", "remaining_term", "early_settlement",
        mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return coerce_text(v)

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v: Any) -> str:
        text = coerce_text(v)
        if not text or not text.strip():
            raise ValueError("listing id is required")
        return text

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Listing:
        """Build a Listing from a store row, resolving the seller once.

        Rows carrying a ``dealer`` object become dealer listings; everything
        else is a private seller.
        """
        data = dict(record)
        seller = data.get("seller")
        if isinstance(seller, dict) and (
            seller.get("kind") not in ("dealer", "private")
            or (seller["kind"] == "dealer" and not seller.get("name"))
        ):
            data["seller"] = None
        if not isinstance(data.get("seller"), (dict, Dealer, PrivateSeller)):
            dealer = data.pop("dealer", None)
            if isinstance(dealer, dict) and dealer.get("name"):
                data["seller"] = {"kind": "dealer", **dealer}
            else:
                data["seller"] = {
                    "kind": "private",
                    "name": data.get("seller_name"),
                    "phone": data.get("phone"),
                    "whatsapp": data.get("whatsapp"),
                }
        else:
            data.pop("dealer", None)
        return cls.model_validate(data)

    @property
    def is_dealer(self) -> bool:
        return isinstance(self.seller, Dealer)


class Badge(BaseModel):
    kind: BadgeKind
    label: str
    size: str = "medium"
    show_label: bool = False
    expires_at: Optional[datetime] = None


class PlacementBuckets(BaseModel):
    featured: List[Listing] = Field(default_factory=list)
    top_spot: List[Listing] = Field(default_factory=list)
    boosted: List[Listing] = Field(default_factory=list)
    regular: List[Listing] = Field(default_factory=list)

    def get(self, bucket: Bucket) -> List[Listing]:
        return getattr(self, bucket.value)

    def bucket_of(self, listing_id: str) -> Optional[Bucket]:
        for bucket in Bucket:
            if any(l.id == listing_id for l in self.get(bucket)):
                return bucket
        return None

    @property
    def is_empty(self) -> bool:
        return not (self.featured or self.top_spot or self.boosted or self.regular)

    @property
    def total(self) -> int:
        return len(self.featured) + len(self.top_spot) + len(self.boosted) + len(self.regular)


class SectionKind(str, Enum):
    FEATURED = "featured"
    TOP_SPOT = "top_spot"
    SEPARATOR = "separator"
    BOOSTED = "boosted"
    REGULAR = "regular"
    EMPTY = "empty"


class Section(BaseModel):
    kind: SectionKind
    label: Optional[str] = None
    subtitle: Optional[str] = None
    layout: Optional[str] = None
    columns: int = 1
    corner_badge: Optional[str] = None
    listings: List[Listing] = Field(default_factory=list)


class RenderPlan(BaseModel):
    sections: List[Section] = Field(default_factory=list)

    def kinds(self) -> List[SectionKind]:
        return [s.kind for s in self.sections]

    def section(self, kind: SectionKind) -> Optional[Section]:
        for s in self.sections:
            if s.kind == kind:
                return s
        return None

    def labels(self) -> List[str]:
        return [s.label for s in self.sections if s.label]

    @property
    def is_empty(self) -> bool:
        return self.kinds() == [SectionKind.EMPTY]


class PriceLine(BaseModel):
    label: str
    value: Union[float, str]


class FinanceMeta(BaseModel):
    heading: str = "Finance/Lease Takeover"
    finance_type: Optional[str] = None
    finance_provider: Optional[str] = None
    early_settlement: Optional[str] = None


class PricePresentation(BaseModel):
    pricing_type: PricingType
    primary_label: Optional[str] = None
    primary_amount: float
    secondary_amounts: List[PriceLine] = Field(default_factory=list)
    negotiable_badge: bool = False
    finance_meta: Optional[FinanceMeta] = None


class Promotion(BaseModel):
    id: Optional[int] = None
    listing_id: str
    promotion_type: PromotionType
    expires_at: datetime
    is_active: bool = True
    amount: float = 0.0
    impressions: int = 0
    rotation_score: float = 0.0
    last_shown_at: Optional[datetime] = None
    last_boosted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    payment_id: Optional[str] = None

    @field_validator("expires_at", "last_shown_at", "last_boosted_at", "created_at", mode="before")
    @classmethod
    def _timestamp(cls, v: Any) -> Optional[datetime]:
        return coerce_timestamp(v) if v is not None else None

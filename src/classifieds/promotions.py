from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional, Sequence

from .config import PromotionPrice, default_promotion_pricing
from .schema import Listing, Promotion, PromotionType

log = logging.getLogger(__name__)

PROMOTION_PRICING: Dict[str, PromotionPrice] = default_promotion_pricing()

# Rs. off the summed price, keyed by number of distinct promotion types
BUNDLE_DISCOUNTS = {2: 200, 3: 400, 4: 600}

# (flag field, expiry field) per promotion type
FLAG_FIELDS: Dict[PromotionType, tuple[str, str]] = {
    PromotionType.FEATURED: ("is_featured", "featured_until"),
    PromotionType.TOP_SPOT: ("is_top_spot", "top_spot_until"),
    PromotionType.BOOST: ("is_boosted", "boosted_until"),
    PromotionType.URGENT: ("is_urgent", "urgent_until"),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_promotion_type(value: str | PromotionType) -> PromotionType:
    if isinstance(value, PromotionType):
        return value
    key = value.strip().lower().replace("-", "_")
    if key == "boosted":
        key = "boost"
    try:
        return PromotionType(key)
    except ValueError:
        raise ValueError(
            f"Unknown promotion type '{value}'. "
            f"Available: {', '.join(t.value for t in PromotionType)}"
        ) from None


def is_active(flag: bool, until: Optional[datetime], now: datetime) -> bool:
    """A flag counts only while its expiry (if any) lies in the future."""
    if not flag:
        return False
    if until is None:
        return True
    return until > now


def effective_flags(listing: Listing, now: Optional[datetime] = None) -> Listing:
    """Return a copy of ``listing`` with every expired promotion flag cleared."""
    now = now or utcnow()
    cleared: dict[str, bool] = {}
    for flag_field, until_field in FLAG_FIELDS.values():
        flag = getattr(listing, flag_field)
        if flag and not is_active(flag, getattr(listing, until_field), now):
            cleared[flag_field] = False
    if not cleared:
        return listing
    log.debug("Listing %s has expired flags: %s", listing.id, ", ".join(cleared))
    return listing.model_copy(update=cleared)


def clear_expired(listing: Listing, now: Optional[datetime] = None) -> Listing:
    """Drop lapsed flags together with their expiry; other flags are untouched."""
    now = now or utcnow()
    update: dict = {}
    for flag_field, until_field in FLAG_FIELDS.values():
        until = getattr(listing, until_field)
        if until is not None and until <= now:
            update[flag_field] = False
            update[until_field] = None
    return listing.model_copy(update=update) if update else listing


def new_promotion(
    listing_id: str,
    promotion_type: str | PromotionType,
    now: Optional[datetime] = None,
    pricing: Optional[Dict[str, PromotionPrice]] = None,
    payment_id: Optional[str] = None,
) -> Promotion:
    ptype = parse_promotion_type(promotion_type)
    now = now or utcnow()
    price = (pricing or PROMOTION_PRICING)[ptype.value]
    return Promotion(
        listing_id=listing_id,
        promotion_type=ptype,
        expires_at=now + timedelta(days=price.days),
        amount=price.price,
        created_at=now,
        payment_id=payment_id,
    )


def bundle_price(
    promotion_types: Iterable[str | PromotionType],
    pricing: Optional[Dict[str, PromotionPrice]] = None,
) -> float:
    types = {parse_promotion_type(t) for t in promotion_types}
    table = pricing or PROMOTION_PRICING
    total = sum(table[t.value].price for t in types)
    return total - BUNDLE_DISCOUNTS.get(len(types), 0)


def apply_promotions(
    listing: Listing,
    promotions: Sequence[Promotion],
    now: Optional[datetime] = None,
) -> Listing:
    """Recompute a listing's promotion flags from its promotions.

    Flags are reset first, so a listing whose promotions have all lapsed ends
    up with every flag false and every expiry cleared.
    """
    now = now or utcnow()
    update: dict = {}
    for flag_field, until_field in FLAG_FIELDS.values():
        update[flag_field] = False
        update[until_field] = None

    for promo in promotions:
        if not promo.is_active or promo.expires_at <= now:
            continue
        flag_field, until_field = FLAG_FIELDS[promo.promotion_type]
        update[flag_field] = True
        current = update[until_field]
        if current is None or promo.expires_at > current:
            update[until_field] = promo.expires_at
        if promo.promotion_type is PromotionType.BOOST:
            update["boost_score"] = now.timestamp() * 1000

    return listing.model_copy(update=update)

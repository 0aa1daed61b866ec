from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .config import Config
from .placement import classify
from .pricing import estimate_monthly_payment
from .promotions import utcnow
from .rotation import boosted_rotation, select_rotated
from .schema import Listing, PlacementBuckets, PricingType, PromotionType, RenderPlan
from .sections import compose
from .storage import Storage

log = logging.getLogger(__name__)


class Feed(BaseModel):
    buckets: PlacementBuckets
    plan: RenderPlan
    monthly_payments: Dict[str, int] = Field(default_factory=dict)


def monthly_estimates(listings: List[Listing], cfg: Config) -> Dict[str, int]:
    """Calculator estimates for cash listings, keyed by listing id."""
    out: Dict[str, int] = {}
    for listing in listings:
        if listing.pricing_type is not PricingType.CASH:
            continue
        payment = estimate_monthly_payment(
            listing.price,
            annual_rate_percent=cfg.finance.annual_rate_percent,
            term_years=cfg.finance.term_years,
            down_payment_ratio=cfg.finance.down_payment_ratio,
        )
        if payment is not None:
            out[listing.id] = payment
    return out


def _rotate(
    storage: Storage,
    candidates: List[Listing],
    cfg: Config,
    now: datetime,
    rng: Optional[random.Random],
) -> tuple[List[Listing], Dict[PromotionType, Dict[str, int]]]:
    """Reorder the page so this round's rotated promotions lead their buckets.

    Featured and top-spot slots go to the fairest promotions; boosted
    listings follow the hourly seeded shuffle. Returns the reordered
    candidates and, for the slot types, listing id -> promotion id of the
    promotions picked.
    """
    page_ids = {l.id for l in candidates}
    rot = cfg.rotation

    def _live(ptype: PromotionType) -> list:
        return [
            p for p in storage.active_promotions(promotion_type=ptype, now=now)
            if p.listing_id in page_ids
        ]

    picked = {
        PromotionType.FEATURED: select_rotated(
            _live(PromotionType.FEATURED), rot.featured_slots, now, rot, rng
        ),
        PromotionType.TOP_SPOT: select_rotated(
            _live(PromotionType.TOP_SPOT), rot.top_spot_slots, now, rot, rng
        ),
        PromotionType.BOOST: boosted_rotation(
            _live(PromotionType.BOOST), now, rot, rot.boosted_limit
        ),
    }
    ranks = {
        ptype: {p.listing_id: i for i, p in enumerate(promos)}
        for ptype, promos in picked.items()
    }

    def _key(listing: Listing) -> tuple:
        return tuple(r.get(listing.id, len(r)) for r in ranks.values())

    promo_ids = {
        ptype: {p.listing_id: p.id for p in picked[ptype]}
        for ptype in (PromotionType.FEATURED, PromotionType.TOP_SPOT)
    }
    return sorted(candidates, key=_key), promo_ids


def build_feed(
    storage: Storage,
    cfg: Config,
    filters: Optional[dict] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    now: Optional[datetime] = None,
    rotate: bool = False,
    rng: Optional[random.Random] = None,
) -> Feed:
    now = now or utcnow()
    candidates = storage.query_listings(filters, limit or cfg.app.page_size, offset)
    log.info("Store returned %d candidates (offset %d)", len(candidates), offset)

    tie_break = cfg.placement.tie_break
    promo_ids: Dict[PromotionType, Dict[str, int]] = {}
    if rotate:
        candidates, promo_ids = _rotate(storage, candidates, cfg, now, rng)
        tie_break = "arrival"

    buckets = classify(
        candidates,
        now=now,
        featured_cap=cfg.placement.featured_slots,
        tie_break=tie_break,
        enforce_expiry=cfg.placement.enforce_expiry,
    )
    if promo_ids:
        featured_ids = promo_ids[PromotionType.FEATURED]
        top_ids = promo_ids[PromotionType.TOP_SPOT]
        shown = [featured_ids[l.id] for l in buckets.featured if l.id in featured_ids]
        shown += [top_ids[l.id] for l in buckets.top_spot if l.id in top_ids]
        storage.record_impressions(shown, now)

    listed = buckets.featured + buckets.top_spot + buckets.boosted + buckets.regular
    return Feed(
        buckets=buckets,
        plan=compose(buckets),
        monthly_payments=monthly_estimates(listed, cfg),
    )

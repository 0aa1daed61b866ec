from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Optional, Sequence, TypeVar

from pydantic import BaseModel

from .config import RotationConfig
from .promotions import utcnow
from .schema import Promotion, PromotionType

log = logging.getLogger(__name__)

T = TypeVar("T")

# Hours credited to a promotion that has never been shown.
NEVER_SHOWN_HOURS = 1000.0


class FairShare(BaseModel):
    promotion_type: PromotionType
    total_competing_ads: int
    slots_available: int
    fair_share_percentage: float
    total_impressions: int
    avg_daily_impressions: float
    last_shown: Optional[datetime] = None
    status: str


def hours_since(ts: Optional[datetime], now: datetime) -> Optional[float]:
    if ts is None:
        return None
    return (now - ts).total_seconds() / 3600


def show_status(hours_since_shown: Optional[float]) -> str:
    if hours_since_shown is None:
        return "Never shown"
    if hours_since_shown < 1:
        return "Shown recently"
    if hours_since_shown < 6:
        return "Shown today"
    if hours_since_shown < 24:
        return "Shown yesterday"
    return "Not shown recently"


def rotation_score(
    promo: Promotion,
    now: datetime,
    cfg: RotationConfig,
    rng: random.Random,
) -> float:
    """Longer unseen and fewer impressions rank higher, plus a little noise."""
    hours = hours_since(promo.last_shown_at, now)
    if hours is None:
        hours = NEVER_SHOWN_HOURS
    return hours - promo.impressions * cfg.impression_weight + rng.random() * cfg.random_factor


def select_rotated(
    promotions: Sequence[Promotion],
    slots: int,
    now: Optional[datetime] = None,
    cfg: Optional[RotationConfig] = None,
    rng: Optional[random.Random] = None,
) -> list[Promotion]:
    """Pick which promotions fill ``slots`` premium positions this round."""
    now = now or utcnow()
    cfg = cfg or RotationConfig()
    rng = rng or random.Random()

    live = [p for p in promotions if p.is_active and p.expires_at > now]
    if len(live) <= slots:
        return live

    scored = [(rotation_score(p, now, cfg, rng), i, p) for i, p in enumerate(live)]
    scored.sort(key=lambda t: (-t[0], t[1]))
    selected = [p for _, _, p in scored[:slots]]
    log.debug(
        "Rotated %d of %d %s promotions",
        len(selected),
        len(live),
        selected[0].promotion_type.value if selected else "",
    )
    return selected


def seeded_shuffle(items: Sequence[T], seed: int) -> list[T]:
    """Deterministic Fisher-Yates shuffle driven by a small LCG."""
    shuffled = list(items)
    state = seed

    def _next() -> float:
        nonlocal state
        state = (state * 9301 + 49297) % 233280
        return state / 233280

    index = len(shuffled)
    while index:
        pick = int(_next() * index)
        index -= 1
        shuffled[index], shuffled[pick] = shuffled[pick], shuffled[index]
    return shuffled


def boosted_rotation(
    promotions: Sequence[Promotion],
    now: Optional[datetime] = None,
    cfg: Optional[RotationConfig] = None,
    limit: Optional[int] = None,
) -> list[Promotion]:
    """Boosted promotions reshuffled once per rotation interval of the day."""
    now = now or utcnow()
    cfg = cfg or RotationConfig()
    live = [p for p in promotions if p.is_active and p.expires_at > now]
    group = now.hour // max(cfg.rotation_interval_hours, 1)
    return seeded_shuffle(live, group)[: limit if limit is not None else cfg.boosted_limit]


def fair_share(
    promo: Promotion,
    competing: int,
    now: Optional[datetime] = None,
    cfg: Optional[RotationConfig] = None,
) -> FairShare:
    now = now or utcnow()
    cfg = cfg or RotationConfig()
    slots = (
        cfg.featured_slots
        if promo.promotion_type is PromotionType.FEATURED
        else cfg.top_spot_slots
    )
    share = min(100.0, slots / competing * 100) if competing else 100.0
    age_days = hours_since(promo.created_at, now)
    age_days = (age_days or 0) / 24
    return FairShare(
        promotion_type=promo.promotion_type,
        total_competing_ads=competing,
        slots_available=slots,
        fair_share_percentage=round(share, 1),
        total_impressions=promo.impressions,
        avg_daily_impressions=round(promo.impressions / max(age_days, 1)),
        last_shown=promo.last_shown_at,
        status=show_status(hours_since(promo.last_shown_at, now)),
    )

import random
from datetime import datetime, timedelta, timezone

from classifieds.config import RotationConfig
from classifieds.rotation import (
    boosted_rotation,
    fair_share,
    seeded_shuffle,
    select_rotated,
    show_status,
)
from classifieds.schema import Promotion, PromotionType

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _make_promo(**overrides) -> Promotion:
    defaults = dict(
        id=1,
        listing_id="L1",
        promotion_type=PromotionType.FEATURED,
        expires_at=NOW + timedelta(days=3),
        created_at=NOW - timedelta(days=4),
    )
    defaults.update(overrides)
    return Promotion(**defaults)


def test_fewer_promotions_than_slots_returns_all():
    promos = [_make_promo(id=1), _make_promo(id=2, listing_id="L2")]
    assert select_rotated(promos, slots=2, now=NOW) == promos


def test_expired_promotions_never_selected():
    promos = [
        _make_promo(id=1, expires_at=NOW - timedelta(hours=1)),
        _make_promo(id=2, listing_id="L2"),
    ]
    assert [p.id for p in select_rotated(promos, slots=2, now=NOW)] == [2]


def test_never_shown_beats_recently_shown():
    cfg = RotationConfig(random_factor=0)
    promos = [
        _make_promo(id=1, last_shown_at=NOW - timedelta(minutes=5), impressions=40),
        _make_promo(id=2, listing_id="L2", last_shown_at=None),
        _make_promo(id=3, listing_id="L3", last_shown_at=NOW - timedelta(hours=30)),
    ]
    picked = select_rotated(promos, slots=2, now=NOW, cfg=cfg, rng=random.Random(7))
    assert [p.id for p in picked] == [2, 3]


def test_seeded_shuffle_is_deterministic_permutation():
    items = list(range(10))
    a = seeded_shuffle(items, 5)
    assert a == seeded_shuffle(items, 5)
    assert sorted(a) == items
    assert items == list(range(10))


def test_boosted_rotation_respects_limit():
    promos = [
        _make_promo(id=i, listing_id=f"L{i}", promotion_type=PromotionType.BOOST)
        for i in range(15)
    ]
    picked = boosted_rotation(promos, now=NOW, limit=10)
    assert len(picked) == 10
    assert picked == boosted_rotation(promos, now=NOW + timedelta(minutes=20), limit=10)


def test_show_status():
    assert show_status(None) == "Never shown"
    assert show_status(0.5) == "Shown recently"
    assert show_status(3) == "Shown today"
    assert show_status(12) == "Shown yesterday"
    assert show_status(48) == "Not shown recently"


def test_fair_share():
    promo = _make_promo(impressions=80, last_shown_at=NOW - timedelta(hours=2))
    report = fair_share(promo, competing=8, now=NOW)
    assert report.slots_available == 2
    assert report.fair_share_percentage == 25.0
    assert report.avg_daily_impressions == 20
    assert report.status == "Shown today"


def test_fair_share_capped_at_hundred():
    report = fair_share(_make_promo(), competing=1, now=NOW)
    assert report.fair_share_percentage == 100.0

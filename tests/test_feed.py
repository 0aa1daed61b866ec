import random
from datetime import datetime, timedelta, timezone

from classifieds.config import Config
from classifieds.feed import build_feed
from classifieds.promotions import new_promotion
from classifieds.report import render_md
from classifieds.rotation import boosted_rotation
from classifieds.schema import Listing, PromotionType, SectionKind
from classifieds.storage import Storage

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _make_listing(**overrides) -> Listing:
    defaults = dict(
        id="1",
        title="Toyota Corolla 2014",
        vehicle_type="car",
        make="Toyota",
        model="Corolla",
        year=2014,
        mileage=92000,
        price=5500000,
        location="Gampaha",
        created_at=NOW - timedelta(days=2),
    )
    defaults.update(overrides)
    return Listing(**defaults)


def _seed(storage: Storage) -> None:
    storage.upsert_listing(_make_listing(id="L1", is_featured=True))
    storage.upsert_listing(_make_listing(id="L2", is_featured=True, is_urgent=True))
    storage.upsert_listing(_make_listing(id="L3", is_top_spot=True))
    storage.upsert_listing(_make_listing(id="L4", is_boosted=True))
    storage.upsert_listing(
        _make_listing(
            id="L5",
            pricing_type="finance",
            outstanding_balance=3500000,
            asking_price=3200000,
            monthly_payment=85000,
            finance_type="Lease",
            finance_provider="Commercial Bank",
        )
    )


def test_feed_end_to_end(storage):
    _seed(storage)
    feed = build_feed(storage, Config(), now=NOW)

    ids = [[l.id for l in s.listings] for s in feed.plan.sections]
    assert feed.plan.kinds() == [
        SectionKind.FEATURED,
        SectionKind.TOP_SPOT,
        SectionKind.SEPARATOR,
        SectionKind.BOOSTED,
        SectionKind.REGULAR,
    ]
    assert sorted(ids[0]) == ["L1", "L2"]
    assert ids[1:] == [["L3"], [], ["L4"], ["L5"]]
    assert feed.plan.section(SectionKind.REGULAR).label == "All Listings"

    # cash listings get calculator estimates, finance takeovers do not
    assert abs(feed.monthly_payments["L4"] - 97876) <= 1
    assert "L5" not in feed.monthly_payments


def test_feed_filters_reach_store(storage):
    _seed(storage)
    storage.upsert_listing(_make_listing(id="V1", vehicle_type="van"))
    feed = build_feed(storage, Config(), filters={"vehicle_type": "van"}, now=NOW)
    assert feed.plan.kinds() == [SectionKind.REGULAR]
    assert feed.plan.sections[0].label is None


def test_feed_empty_store(storage):
    assert build_feed(storage, Config(), now=NOW).plan.is_empty


def test_expired_flags_do_not_promote(storage):
    storage.upsert_listing(
        _make_listing(id="old", is_featured=True, featured_until=NOW - timedelta(hours=1))
    )
    feed = build_feed(storage, Config(), now=NOW)
    assert feed.plan.kinds() == [SectionKind.REGULAR]


def test_rotated_feed_records_impressions(storage):
    for i in range(4):
        storage.upsert_listing(_make_listing(id=f"F{i}"))
        storage.add_promotion(new_promotion(f"F{i}", "featured", now=NOW))
        storage.refresh_listing_promotions(f"F{i}", NOW)

    feed = build_feed(storage, Config(), now=NOW, rotate=True, rng=random.Random(3))
    shown = {l.id for l in feed.buckets.featured}
    assert len(shown) == 2

    promos = storage.active_promotions(promotion_type=PromotionType.FEATURED, now=NOW)
    impressions = {p.listing_id: p.impressions for p in promos}
    assert {k for k, v in impressions.items() if v == 1} == shown


def test_rotation_orders_boosted_and_counts_top_spot(storage):
    for i in range(5):
        storage.upsert_listing(_make_listing(id=f"B{i}"))
        storage.add_promotion(new_promotion(f"B{i}", "boost", now=NOW))
        storage.refresh_listing_promotions(f"B{i}", NOW)
    storage.upsert_listing(_make_listing(id="T1"))
    storage.add_promotion(new_promotion("T1", "top_spot", now=NOW))
    storage.refresh_listing_promotions("T1", NOW)

    cfg = Config()
    expected = [
        p.listing_id
        for p in boosted_rotation(
            storage.active_promotions(promotion_type=PromotionType.BOOST, now=NOW),
            NOW,
            cfg.rotation,
            cfg.rotation.boosted_limit,
        )
    ]
    feed = build_feed(storage, cfg, now=NOW, rotate=True, rng=random.Random(1))
    assert [l.id for l in feed.buckets.boosted] == expected
    assert [l.id for l in feed.buckets.top_spot] == ["T1"]

    (top,) = storage.active_promotions("T1", now=NOW)
    assert top.impressions == 1
    assert all(
        p.impressions == 0
        for p in storage.active_promotions(promotion_type=PromotionType.BOOST, now=NOW)
    )


def test_report_renders_sections(storage):
    _seed(storage)
    feed = build_feed(storage, Config(), now=NOW)
    md = render_md(feed.plan, monthly_payments=feed.monthly_payments)

    assert "## FEATURED LISTINGS" in md
    assert "## TOP SPOT" in md
    assert "### Recently Boosted" in md
    assert "### All Listings" in md
    assert "**[FEATURED]** **[URGENT]**" in md
    assert "Rs. 3,200,000" in md


def test_report_empty_state(storage):
    md = render_md(build_feed(storage, Config(), now=NOW).plan)
    assert "_No listings found_" in md

import tempfile
import os
from datetime import datetime, timedelta, timezone

import pytest

from classifieds.forms import PostingDraft
from classifieds.promotions import new_promotion
from classifieds.schema import Listing, PromotionType
from classifieds.storage import Storage

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _make_listing(**overrides) -> Listing:
    defaults = dict(
        id="abc123",
        title="Toyota Aqua 2015",
        vehicle_type="car",
        make="Toyota",
        model="Aqua",
        price=5500000,
        location="Colombo 05",
        created_at=NOW - timedelta(days=1),
    )
    defaults.update(overrides)
    return Listing(**defaults)


def test_new_listing_is_new():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        assert storage.upsert_listing(_make_listing()) is True
        assert storage.upsert_listing(_make_listing(price=5400000)) is False
        assert storage.get_listing("abc123").price == 5400000
        assert storage.count() == 1


def test_query_filters_and_excludes_sold():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        storage.upsert_listing(_make_listing(id="1"))
        storage.upsert_listing(_make_listing(id="2", make="Honda", model="Fit", price=4200000))
        storage.upsert_listing(_make_listing(id="3", is_sold=True))
        storage.upsert_listing(_make_listing(id="4", vehicle_type="van", location="Kandy"))

        assert {l.id for l in storage.query_listings()} == {"1", "2", "4"}
        assert [l.id for l in storage.query_listings({"make": "Honda"})] == ["2"]
        assert [l.id for l in storage.query_listings({"max_price": 5000000})] == ["2"]
        assert [l.id for l in storage.query_listings({"location": "kandy"})] == ["4"]
        assert [l.id for l in storage.query_listings({"vehicle_type": "van"})] == ["4"]


def test_query_feed_order_and_pagination():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        storage.upsert_listing(_make_listing(id="plain-old", created_at=NOW - timedelta(days=9)))
        storage.upsert_listing(_make_listing(id="plain-new", created_at=NOW))
        storage.upsert_listing(_make_listing(id="boost", is_boosted=True, boost_score=10))
        storage.upsert_listing(_make_listing(id="top", is_top_spot=True))
        storage.upsert_listing(_make_listing(id="feat", is_featured=True))

        ids = [l.id for l in storage.query_listings()]
        assert ids == ["feat", "top", "boost", "plain-new", "plain-old"]
        assert [l.id for l in storage.query_listings(limit=2, offset=2)] == ["boost", "plain-new"]


def test_unknown_filter_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        with pytest.raises(ValueError, match="colour"):
            storage.query_listings({"colour": "red"})


def test_promotion_sets_and_expires_flags():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        storage.upsert_listing(_make_listing())
        storage.add_promotion(new_promotion("abc123", "urgent", now=NOW))
        listing = storage.refresh_listing_promotions("abc123", NOW)
        assert listing.is_urgent
        assert listing.urgent_until == NOW + timedelta(days=5)

        later = NOW + timedelta(days=6)
        assert storage.expire_promotions(later) == 1
        listing = storage.get_listing("abc123")
        assert listing.is_urgent is False
        assert listing.urgent_until is None
        assert storage.active_promotions("abc123", now=later) == []


def test_daily_boost_and_impressions():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        storage.upsert_listing(_make_listing())
        promo = storage.add_promotion(new_promotion("abc123", "boost", now=NOW))
        storage.refresh_listing_promotions("abc123", NOW)

        tomorrow = NOW + timedelta(days=1)
        assert storage.apply_daily_boost(tomorrow) == 1
        assert storage.get_listing("abc123").boost_score == tomorrow.timestamp() * 1000

        storage.record_impressions([promo.id], tomorrow)
        (stored,) = storage.active_promotions(promotion_type=PromotionType.BOOST, now=tomorrow)
        assert stored.impressions == 1
        assert stored.last_shown_at == tomorrow
        assert storage.reset_rotation_scores(tomorrow) == 1
        assert storage.count_active(PromotionType.BOOST, tomorrow) == 1


def test_drafts_persist_and_clear():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        assert storage.load_draft("u1") == PostingDraft()
        draft = PostingDraft(title="Half done", step=2)
        storage.save_draft("u1", draft)
        assert storage.load_draft("u1") == draft
        storage.clear_draft("u1")
        assert storage.load_draft("u1") == PostingDraft()


def test_dealer_seller_survives_storage():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        record = {"id": "d1", "title": "BMW X1", "dealer": {"name": "Auto Lanka", "rating": 4.5}}
        storage.import_records([record])
        listing = storage.get_listing("d1")
        assert listing.is_dealer
        assert listing.seller.name == "Auto Lanka"


def test_import_keeps_untidy_rows_and_skips_rows_without_id():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        records = [
            {"id": "ok", "title": "Honda Civic", "price": 7200000},
            {"id": "untidy", "title": "Nissan March", "price": "lots", "views": None},
            {"title": "No id"},
            {"id": "  ", "title": "Blank id"},
        ]
        assert storage.import_records(records) == 2
        assert storage.get_listing("untidy").price == 0.0
        assert storage.count() == 2


def test_expiry_keeps_unrelated_imported_flags():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(os.path.join(tmpdir, "test.db"))
        storage.upsert_listing(
            _make_listing(is_featured=True, is_urgent=True, urgent_until=NOW - timedelta(hours=1))
        )
        storage.expire_promotions(NOW)
        listing = storage.get_listing("abc123")
        assert listing.is_featured is True
        assert listing.featured_until is None
        assert listing.is_urgent is False
        assert listing.urgent_until is None

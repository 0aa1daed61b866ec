from datetime import datetime, timezone

import pytest

from classifieds.badges import resolve_badges
from classifieds.promotions import effective_flags
from classifieds.schema import BadgeKind, Listing


def _make_listing(**overrides) -> Listing:
    defaults = dict(
        id="1",
        title="Toyota Aqua 2017",
        vehicle_type="car",
        make="Toyota",
        model="Aqua",
        price=5500000,
    )
    defaults.update(overrides)
    return Listing(**defaults)


def test_no_flags_no_badges():
    listing = _make_listing()
    assert resolve_badges(listing) == []


def test_resolving_twice_gives_same_empty_list():
    listing = _make_listing()
    assert resolve_badges(listing) == resolve_badges(listing) == []


def test_all_flags_in_fixed_order():
    listing = _make_listing(is_urgent=True, is_boosted=True, is_top_spot=True, is_featured=True)
    kinds = [b.kind for b in resolve_badges(listing)]
    assert kinds == [BadgeKind.FEATURED, BadgeKind.TOP_SPOT, BadgeKind.BOOSTED, BadgeKind.URGENT]


def test_badges_are_additive():
    listing = _make_listing(is_boosted=True, is_urgent=True)
    kinds = [b.kind for b in resolve_badges(listing)]
    assert kinds == [BadgeKind.BOOSTED, BadgeKind.URGENT]


def test_size_and_labels_carried():
    listing = _make_listing(is_featured=True)
    (badge,) = resolve_badges(listing, size="large", show_labels=True)
    assert badge.size == "large"
    assert badge.show_label is True
    assert badge.label == "FEATURED"


def test_badge_carries_expiry():
    until = datetime(2030, 1, 1, tzinfo=timezone.utc)
    listing = _make_listing(is_urgent=True, urgent_until=until)
    (badge,) = resolve_badges(listing)
    assert badge.expires_at == until


def test_resolver_does_not_check_expiry():
    past = datetime(2020, 1, 1, tzinfo=timezone.utc)
    listing = _make_listing(is_featured=True, featured_until=past)
    assert [b.kind for b in resolve_badges(listing)] == [BadgeKind.FEATURED]
    # callers filter expired flags first
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert resolve_badges(effective_flags(listing, now)) == []


def test_unknown_size_rejected():
    with pytest.raises(ValueError):
        resolve_badges(_make_listing(), size="huge")

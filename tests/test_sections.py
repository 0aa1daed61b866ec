from datetime import datetime, timezone

from classifieds.placement import classify
from classifieds.schema import Listing, PlacementBuckets, SectionKind
from classifieds.sections import compose

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _make_listing(**overrides) -> Listing:
    defaults = dict(id="1", title="Suzuki Alto 2015", vehicle_type="car", price=2900000)
    defaults.update(overrides)
    return Listing(**defaults)


def _buckets(featured=0, top_spot=0, boosted=0, regular=0) -> PlacementBuckets:
    return PlacementBuckets(
        featured=[_make_listing(id=f"f{i}") for i in range(featured)],
        top_spot=[_make_listing(id=f"t{i}") for i in range(top_spot)],
        boosted=[_make_listing(id=f"b{i}") for i in range(boosted)],
        regular=[_make_listing(id=f"r{i}") for i in range(regular)],
    )


def test_empty_buckets_give_empty_marker_only():
    plan = compose(_buckets())
    assert plan.kinds() == [SectionKind.EMPTY]
    assert plan.is_empty


def test_no_section_rendered_empty():
    for f in (0, 1):
        for t in (0, 1):
            for b in (0, 1):
                for r in (0, 1):
                    plan = compose(_buckets(f, t, b, r))
                    for section in plan.sections:
                        if section.kind in (SectionKind.SEPARATOR, SectionKind.EMPTY):
                            continue
                        assert section.listings


def test_separator_iff_premium_section():
    for f in (0, 1):
        for t in (0, 1):
            plan = compose(_buckets(f, t, 1, 1))
            has_separator = SectionKind.SEPARATOR in plan.kinds()
            assert has_separator == bool(f or t)


def test_all_listings_label_iff_boosted():
    with_boost = compose(_buckets(regular=2, boosted=1))
    without_boost = compose(_buckets(regular=2))
    assert with_boost.section(SectionKind.REGULAR).label == "All Listings"
    assert without_boost.section(SectionKind.REGULAR).label is None
    assert "All Listings" not in without_boost.labels()


def test_boosted_section_labelled():
    plan = compose(_buckets(boosted=2))
    section = plan.section(SectionKind.BOOSTED)
    assert section.label == "Recently Boosted"
    assert section.corner_badge == "BOOSTED"


def test_section_order():
    plan = compose(_buckets(1, 1, 1, 1))
    assert plan.kinds() == [
        SectionKind.FEATURED,
        SectionKind.TOP_SPOT,
        SectionKind.SEPARATOR,
        SectionKind.BOOSTED,
        SectionKind.REGULAR,
    ]


def test_featured_layout_hints():
    plan = compose(_buckets(featured=1, top_spot=2))
    assert plan.section(SectionKind.FEATURED).layout == "featured-card"
    assert plan.section(SectionKind.FEATURED).columns == 1
    assert plan.section(SectionKind.TOP_SPOT).columns == 2


def test_five_listing_scenario():
    listings = [
        _make_listing(id="L1", is_featured=True),
        _make_listing(id="L2", is_featured=True, is_urgent=True),
        _make_listing(id="L3", is_top_spot=True),
        _make_listing(id="L4", is_boosted=True),
        _make_listing(id="L5"),
    ]
    plan = compose(classify(listings, now=NOW, featured_cap=2))

    assert plan.kinds() == [
        SectionKind.FEATURED,
        SectionKind.TOP_SPOT,
        SectionKind.SEPARATOR,
        SectionKind.BOOSTED,
        SectionKind.REGULAR,
    ]
    ids = [[l.id for l in s.listings] for s in plan.sections]
    assert ids == [["L1", "L2"], ["L3"], [], ["L4"], ["L5"]]
    assert plan.section(SectionKind.BOOSTED).label == "Recently Boosted"
    assert plan.section(SectionKind.REGULAR).label == "All Listings"

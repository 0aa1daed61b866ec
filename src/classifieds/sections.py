from __future__ import annotations

from .schema import PlacementBuckets, RenderPlan, Section, SectionKind

FEATURED_LABEL = "FEATURED LISTINGS"
TOP_SPOT_LABEL = "TOP SPOT"
BOOSTED_LABEL = "Recently Boosted"
REGULAR_LABEL = "All Listings"
EMPTY_LABEL = "No listings found"


def compose(buckets: PlacementBuckets) -> RenderPlan:
    """Turn placement buckets into an ordered render plan.

    A section is emitted only for a non-empty bucket. The separator follows
    the premium sections when either was shown, and the regular section is
    labelled only when a boosted section sits above it.
    """
    sections: list[Section] = []

    if buckets.featured:
        sections.append(
            Section(
                kind=SectionKind.FEATURED,
                label=FEATURED_LABEL,
                subtitle="Premium placement • Maximum visibility",
                layout="featured-card",
                columns=1,
                listings=list(buckets.featured),
            )
        )

    if buckets.top_spot:
        sections.append(
            Section(
                kind=SectionKind.TOP_SPOT,
                label=TOP_SPOT_LABEL,
                subtitle="Premium positioning",
                layout="featured-card",
                columns=2,
                listings=list(buckets.top_spot),
            )
        )

    if buckets.featured or buckets.top_spot:
        sections.append(Section(kind=SectionKind.SEPARATOR))

    if buckets.boosted:
        sections.append(
            Section(
                kind=SectionKind.BOOSTED,
                label=BOOSTED_LABEL,
                layout="grid",
                columns=3,
                corner_badge="BOOSTED",
                listings=list(buckets.boosted),
            )
        )

    if buckets.regular:
        sections.append(
            Section(
                kind=SectionKind.REGULAR,
                label=REGULAR_LABEL if buckets.boosted else None,
                layout="grid",
                columns=3,
                listings=list(buckets.regular),
            )
        )

    if buckets.is_empty:
        sections.append(
            Section(
                kind=SectionKind.EMPTY,
                label=EMPTY_LABEL,
                subtitle="Try adjusting your filters",
            )
        )

    return RenderPlan(sections=sections)

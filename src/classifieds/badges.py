from __future__ import annotations

from .schema import Badge, BadgeKind, Listing

BADGE_SIZES = ("small", "medium", "large")

# Highest precedence first; resolution order never depends on the listing.
BADGE_ORDER: list[tuple[BadgeKind, str, str, str]] = [
    (BadgeKind.FEATURED, "is_featured", "featured_until", "FEATURED"),
    (BadgeKind.TOP_SPOT, "is_top_spot", "top_spot_until", "TOP SPOT"),
    (BadgeKind.BOOSTED, "is_boosted", "boosted_until", "BOOSTED"),
    (BadgeKind.URGENT, "is_urgent", "urgent_until", "URGENT"),
]


def resolve_badges(
    listing: Listing,
    size: str = "medium",
    show_labels: bool = False,
) -> list[Badge]:
    """Map a listing's promotion flags to badge descriptors.

    Badges are additive: every set flag yields one badge. No expiry check is
    made here; pass the listing through ``promotions.effective_flags`` first
    when expired flags must not show.
    """
    if size not in BADGE_SIZES:
        raise ValueError(f"Unknown badge size '{size}'. Available: {', '.join(BADGE_SIZES)}")

    badges: list[Badge] = []
    for kind, flag_field, until_field, label in BADGE_ORDER:
        if getattr(listing, flag_field):
            badges.append(
                Badge(
                    kind=kind,
                    label=label,
                    size=size,
                    show_label=show_labels,
                    expires_at=getattr(listing, until_field),
                )
            )
    return badges

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from .promotions import effective_flags, utcnow
from .schema import Listing, PlacementBuckets

log = logging.getLogger(__name__)

FEATURED_SLOTS = 2

Candidate = Union[Listing, dict]


def _most_recent(featured: list[Listing]) -> list[Listing]:
    # Promotions run for a fixed duration, so the latest expiry is the most
    # recently bought one. Listings without an expiry go after dated ones.
    dated = [l for l in featured if l.featured_until is not None]
    undated = [l for l in featured if l.featured_until is None]
    dated.sort(key=lambda l: l.featured_until, reverse=True)
    return dated + undated


def _soonest_expiring(featured: list[Listing]) -> list[Listing]:
    dated = [l for l in featured if l.featured_until is not None]
    undated = [l for l in featured if l.featured_until is None]
    dated.sort(key=lambda l: l.featured_until)
    return dated + undated


def _arrival(featured: list[Listing]) -> list[Listing]:
    return list(featured)


TIE_BREAKS: dict[str, Callable[[list[Listing]], list[Listing]]] = {
    "most_recent": _most_recent,
    "soonest_expiring": _soonest_expiring,
    "arrival": _arrival,
}


def _to_listing(candidate: Any) -> Optional[Listing]:
    if isinstance(candidate, Listing):
        return candidate
    if isinstance(candidate, dict):
        try:
            return Listing.from_record(candidate)
        except ValidationError:
            log.warning("Skipping malformed listing record %r", candidate.get("id"))
            return None
    log.warning("Skipping candidate of unsupported type %s", type(candidate).__name__)
    return None


def classify(
    candidates: Iterable[Candidate],
    now: Optional[datetime] = None,
    featured_cap: int = FEATURED_SLOTS,
    tie_break: str = "most_recent",
    enforce_expiry: bool = True,
) -> PlacementBuckets:
    """Partition candidate listings into featured, top-spot, boosted and regular.

    Bucket membership is exclusive and tested in precedence order, so a
    featured listing that is also boosted lands in featured only. Expired
    flags are cleared first unless ``enforce_expiry`` is off. The featured
    bucket is ordered by ``tie_break`` and truncated to ``featured_cap``;
    featured candidates beyond the cap are dropped from this page. The other
    buckets keep candidate order and are not capped, since the store has
    already applied the page window.
    """
    if tie_break not in TIE_BREAKS:
        raise ValueError(
            f"Unknown tie-break '{tie_break}'. Available: {', '.join(TIE_BREAKS)}"
        )
    now = now or utcnow()

    featured: list[Listing] = []
    top_spot: list[Listing] = []
    boosted: list[Listing] = []
    regular: list[Listing] = []
    seen: set[str] = set()

    for candidate in candidates:
        listing = _to_listing(candidate)
        if listing is None:
            continue
        if listing.id in seen:
            log.debug("Duplicate candidate %s ignored", listing.id)
            continue
        seen.add(listing.id)

        flags = effective_flags(listing, now) if enforce_expiry else listing
        if flags.is_featured:
            featured.append(flags)
        elif flags.is_top_spot:
            top_spot.append(flags)
        elif flags.is_boosted:
            boosted.append(flags)
        else:
            regular.append(flags)

    ordered = TIE_BREAKS[tie_break](featured)
    if len(ordered) > featured_cap:
        log.info(
            "%d featured candidates for %d slots, dropping %s",
            len(ordered),
            featured_cap,
            ", ".join(l.id for l in ordered[featured_cap:]),
        )

    return PlacementBuckets(
        featured=ordered[:max(featured_cap, 0)],
        top_spot=top_spot,
        boosted=boosted,
        regular=regular,
    )

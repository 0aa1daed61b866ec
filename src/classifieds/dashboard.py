"""Streamlit feed browser for the local listings store."""
from __future__ import annotations

import streamlit as st

from classifieds.badges import resolve_badges
from classifieds.config import Config
from classifieds.feed import Feed, build_feed
from classifieds.forms import VEHICLE_TYPES
from classifieds.pricing import resolve_price
from classifieds.schema import Listing, PricingType, Section, SectionKind
from classifieds.storage import Storage

# ---------------------------------------------------------------------------
# Data loading
# ---------------------------------------------------------------------------

DEFAULT_CONFIG = "config/config.yaml"


@st.cache_data(ttl=60)
def _load_config(path: str = DEFAULT_CONFIG) -> Config:
    return Config.from_yaml(path)


def _load_feed(cfg: Config, filters: dict, offset: int) -> Feed:
    storage = Storage(cfg.app.database_path)
    return build_feed(storage, cfg, filters, cfg.app.page_size, offset)


@st.cache_data(ttl=60)
def _load_summary(db_path: str) -> dict[str, int]:
    return Storage(db_path).get_vehicle_type_summary()


# ---------------------------------------------------------------------------
# UI helpers
# ---------------------------------------------------------------------------

def _fmt(amount: float, currency: str) -> str:
    return f"{currency} {round(amount):,}"


def _render_card(listing: Listing, currency: str, monthly: int | None, prominent: bool) -> None:
    price = resolve_price(listing, monthly)
    with st.container(border=True):
        cols = st.columns([1, 2]) if prominent else [st.container(), st.container()]
        with cols[0]:
            if listing.images:
                st.image(listing.images[0], use_container_width=True)
            else:
                st.markdown("*No image*")
        with cols[1]:
            badges = resolve_badges(listing, size="small", show_labels=True)
            if badges:
                st.markdown(" ".join(f"`{b.label}`" for b in badges))
            st.markdown(f"**{listing.title}**")

            label = price.primary_label or "Price"
            st.metric(label, _fmt(price.primary_amount, currency))
            if price.negotiable_badge:
                st.caption("Negotiable")
            if price.pricing_type is PricingType.FINANCE and price.finance_meta:
                st.caption(price.finance_meta.heading)
            for line in price.secondary_amounts:
                value = line.value if isinstance(line.value, str) else _fmt(line.value, currency)
                st.caption(f"{line.label}: {value}")

            facts = [
                str(listing.year) if listing.year else None,
                f"{listing.mileage:,} km" if listing.mileage else None,
                listing.fuel_type,
                listing.transmission,
                listing.location,
            ]
            st.caption(" · ".join(f for f in facts if f))
            if listing.is_dealer:
                st.caption(f"Dealer: {listing.seller.name}")


def _render_section(section: Section, feed: Feed, currency: str) -> None:
    if section.kind is SectionKind.SEPARATOR:
        st.divider()
        return
    if section.kind is SectionKind.EMPTY:
        st.info(f"{section.label}. {section.subtitle or ''}")
        return

    if section.label:
        if section.kind in (SectionKind.FEATURED, SectionKind.TOP_SPOT):
            st.subheader(section.label)
        else:
            st.markdown(f"**{section.label}**")
    if section.subtitle:
        st.caption(section.subtitle)

    prominent = section.layout == "featured-card"
    per_row = max(section.columns, 1)
    listings = section.listings
    for i in range(0, len(listings), per_row):
        cols = st.columns(per_row)
        for j, col in enumerate(cols):
            idx = i + j
            if idx < len(listings):
                with col:
                    l = listings[idx]
                    _render_card(l, currency, feed.monthly_payments.get(l.id), prominent)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    st.set_page_config(
        page_title="Vehicle Listings",
        page_icon="car",
        layout="wide",
    )
    st.title("Vehicle Listings")

    cfg = _load_config()
    summary = _load_summary(cfg.app.database_path)

    if not summary:
        st.warning("No listings in database. Run `classifieds import <file>` first.")
        return

    # ----- Sidebar -----
    with st.sidebar:
        st.header("Filters")
        vehicle_type = st.selectbox("Vehicle type", ["Any", *VEHICLE_TYPES])
        make = st.text_input("Make")
        model = st.text_input("Model")
        location = st.text_input("Location")
        min_price = st.number_input("Min price", min_value=0, value=0, step=100000)
        max_price = st.number_input("Max price", min_value=0, value=0, step=100000)
        page = st.number_input("Page", min_value=1, value=1, step=1)

        with st.expander("Listings by vehicle type"):
            st.json(summary)

    filters = {
        "vehicle_type": None if vehicle_type == "Any" else vehicle_type,
        "make": make or None,
        "model": model or None,
        "location": location or None,
        "min_price": min_price or None,
        "max_price": max_price or None,
    }
    feed = _load_feed(cfg, filters, (int(page) - 1) * cfg.app.page_size)

    b = feed.buckets
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Featured", len(b.featured))
    c2.metric("Top Spot", len(b.top_spot))
    c3.metric("Boosted", len(b.boosted))
    c4.metric("Regular", len(b.regular))

    for section in feed.plan.sections:
        _render_section(section, feed, cfg.app.currency)


if __name__ == "__main__":
    main()

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from .badges import resolve_badges
from .pricing import resolve_price
from .schema import Listing, PricePresentation, PricingType, RenderPlan, Section, SectionKind


def render_md(
    plan: RenderPlan,
    title: str = "Vehicle Listings",
    currency: str = "Rs.",
    monthly_payments: Optional[dict[str, int]] = None,
) -> str:
    now = datetime.now().isoformat(timespec="seconds")
    count = sum(len(s.listings) for s in plan.sections)

    lines: list[str] = [
        f"# {title}",
        "",
        f"Generated: {now}",
        "",
        f"**Listings on this page:** {count}",
        "",
    ]

    for section in plan.sections:
        if section.kind is SectionKind.SEPARATOR:
            lines.append("---")
            lines.append("")
            continue
        if section.kind is SectionKind.EMPTY:
            lines.append(f"_{section.label}_")
            if section.subtitle:
                lines.append("")
                lines.append(section.subtitle)
            lines.append("")
            continue
        lines.extend(_render_section(section, currency, monthly_payments or {}))

    return "\n".join(lines)


def _render_section(section: Section, currency: str, monthly: dict[str, int]) -> list[str]:
    lines: list[str] = []
    if section.label:
        heading = "##" if section.kind in (SectionKind.FEATURED, SectionKind.TOP_SPOT) else "###"
        lines.append(f"{heading} {section.label}")
        lines.append("")
    if section.subtitle:
        lines.append(f"_{section.subtitle}_")
        lines.append("")

    if section.layout == "featured-card":
        for listing in section.listings:
            lines.extend(_render_card(listing, currency, monthly.get(listing.id)))
        return lines

    lines.append("| Title | Price | Year | Mileage | Location | Badges |")
    lines.append("|---|---:|---:|---:|---|---|")
    for l in section.listings:
        price = resolve_price(l, monthly.get(l.id))
        badges = " ".join(f"[{b.label}]" for b in resolve_badges(l, size="small", show_labels=True))
        lines.append(
            f"| {l.title} | {_fmt_price(price.primary_amount, currency)}"
            f"{' (neg.)' if price.negotiable_badge else ''} | {l.year or 'N/A'} | "
            f"{_fmt_km(l.mileage)} | {l.location or 'N/A'} | {badges} |"
        )
    lines.append("")
    return lines


def _render_card(listing: Listing, currency: str, monthly: Optional[int]) -> list[str]:
    price = resolve_price(listing, monthly)
    badges = resolve_badges(listing, size="large", show_labels=True)

    lines = [f"#### {listing.title}", ""]
    if badges:
        lines.append(" ".join(f"**[{b.label}]**" for b in badges))
        lines.append("")
    lines.append("| Field | Value |")
    lines.append("|---|---|")
    lines.extend(_price_rows(price, currency))
    lines.append(f"| Year | {listing.year or 'N/A'} |")
    lines.append(f"| Mileage | {_fmt_km(listing.mileage)} |")
    lines.append(f"| Fuel | {listing.fuel_type or 'N/A'} |")
    lines.append(f"| Transmission | {listing.transmission or 'N/A'} |")
    lines.append(f"| Location | {listing.location or 'N/A'} |")
    lines.append(f"| Seller | {_seller(listing)} |")
    lines.append(f"| Views | {listing.views} |")
    lines.append("")
    return lines


def _price_rows(price: PricePresentation, currency: str) -> list[str]:
    label = price.primary_label or "Price"
    rows = [f"| {label} | {_fmt_price(price.primary_amount, currency)} |"]
    if price.negotiable_badge:
        rows.append("| Negotiable | Yes |")
    if price.pricing_type is PricingType.FINANCE and price.finance_meta:
        meta = price.finance_meta
        rows.append(f"| Sale type | {meta.heading} |")
        if meta.finance_type and meta.finance_provider:
            rows.append(f"| Finance | {meta.finance_type} - {meta.finance_provider} |")
    for line in price.secondary_amounts:
        value = line.value if isinstance(line.value, str) else _fmt_price(line.value, currency)
        rows.append(f"| {line.label} | {value} |")
    if price.finance_meta and price.finance_meta.early_settlement:
        rows.append(f"| Early Settlement | {price.finance_meta.early_settlement} |")
    return rows


def _seller(listing: Listing) -> str:
    seller = listing.seller
    if listing.is_dealer:
        rating = f" ({seller.rating}/5, {seller.review_count} reviews)" if seller.rating else ""
        return f"Dealer: {seller.name}{rating}"
    return f"Private seller{': ' + seller.name if seller.name else ''}"


def _fmt_price(price: float | None, currency: str = "Rs.") -> str:
    if price is None:
        return "N/A"
    return f"{currency} {round(price):,}"


def _fmt_km(km: int | None) -> str:
    if km is None:
        return "N/A"
    return f"{km:,} km"


def write_report(path: str, content: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")

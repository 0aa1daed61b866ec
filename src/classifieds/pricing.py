from __future__ import annotations

from typing import Optional

from .schema import FinanceMeta, Listing, PriceLine, PricePresentation, PricingType


def amortized_payment(principal: float, monthly_rate: float, months: int) -> Optional[float]:
    """Fixed-rate monthly payment, M = P*r*(1+r)^n / ((1+r)^n - 1).

    Returns None when the payment cannot be computed (r, n or P not positive).
    """
    if principal <= 0 or monthly_rate <= 0 or months <= 0:
        return None
    growth = (1 + monthly_rate) ** months
    return principal * monthly_rate * growth / (growth - 1)


def estimate_monthly_payment(
    price: float,
    down_payment: Optional[float] = None,
    annual_rate_percent: float = 12.0,
    term_years: int = 5,
    down_payment_ratio: float = 0.2,
) -> Optional[int]:
    if down_payment is None:
        down_payment = round(price * down_payment_ratio)
    payment = amortized_payment(
        principal=price - down_payment,
        monthly_rate=annual_rate_percent / 100 / 12,
        months=term_years * 12,
    )
    if payment is None:
        return None
    return round(payment)


def _finance(listing: Listing) -> PricePresentation:
    balance = listing.outstanding_balance
    if balance is None:
        balance = listing.price
    primary = listing.asking_price
    if primary is None:
        primary = balance

    lines = [PriceLine(label="Outstanding Balance", value=balance)]
    if listing.monthly_payment is not None:
        lines.append(PriceLine(label="Monthly Payment", value=listing.monthly_payment))
    if listing.remaining_term:
        lines.append(PriceLine(label="Remaining Term", value=listing.remaining_term))
    if listing.original_amount is not None:
        lines.append(PriceLine(label="Original Loan Amount", value=listing.original_amount))

    return PricePresentation(
        pricing_type=PricingType.FINANCE,
        primary_label="Asking Price",
        primary_amount=primary,
        secondary_amounts=lines,
        negotiable_badge=listing.negotiable,
        finance_meta=FinanceMeta(
            finance_type=listing.finance_type,
            finance_provider=listing.finance_provider,
            early_settlement=listing.early_settlement,
        ),
    )


def resolve_price(
    listing: Listing,
    calculated_monthly_payment: Optional[float] = None,
    show_finance_calculator: bool = True,
) -> PricePresentation:
    """Pick the amounts a card or detail view should show for a listing.

    Finance takeovers show the asking price, falling back to the outstanding
    balance and then the stored price. Cash listings show the price plus an
    estimated monthly payment only when the caller computed one.
    """
    if listing.pricing_type is PricingType.FINANCE:
        return _finance(listing)

    lines: list[PriceLine] = []
    if show_finance_calculator and calculated_monthly_payment:
        lines.append(PriceLine(label="Estimated Monthly Payment", value=calculated_monthly_payment))
    return PricePresentation(
        pricing_type=PricingType.CASH,
        primary_amount=listing.price,
        secondary_amounts=lines,
        negotiable_badge=listing.negotiable,
    )

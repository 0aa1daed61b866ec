from __future__ import annotations

import yaml
from pathlib import Path
from pydantic import BaseModel, Field
from typing import Dict


class AppConfig(BaseModel):
    timezone: str = "Asia/Colombo"
    report_path: str = "reports/feed.md"
    database_path: str = "data/classifieds.db"
    currency: str = "Rs."
    page_size: int = 20


class PlacementConfig(BaseModel):
    featured_slots: int = 2
    tie_break: str = "most_recent"
    enforce_expiry: bool = True


class PromotionPrice(BaseModel):
    price: float
    days: int


def default_promotion_pricing() -> Dict[str, PromotionPrice]:
    return {
        "featured": PromotionPrice(price=3500, days=7),
        "top_spot": PromotionPrice(price=1200, days=7),
        "boost": PromotionPrice(price=800, days=7),
        "urgent": PromotionPrice(price=600, days=5),
    }


class PromotionsConfig(BaseModel):
    pricing: Dict[str, PromotionPrice] = Field(default_factory=default_promotion_pricing)


class RotationConfig(BaseModel):
    featured_slots: int = 2
    top_spot_slots: int = 2
    rotation_interval_hours: int = 1
    impression_weight: float = 0.1
    random_factor: float = 10.0
    boosted_limit: int = 10


class FinanceConfig(BaseModel):
    down_payment_ratio: float = 0.2
    annual_rate_percent: float = 12.0
    term_years: int = 5


class Config(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    placement: PlacementConfig = Field(default_factory=PlacementConfig)
    promotions: PromotionsConfig = Field(default_factory=PromotionsConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)
    finance: FinanceConfig = Field(default_factory=FinanceConfig)

    @classmethod
    def from_yaml(cls, path: str | Path = "config/config.yaml") -> Config:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        pricing = default_promotion_pricing()
        for name, price_raw in (raw.get("promotions", {}) or {}).get("pricing", {}).items():
            pricing[name] = PromotionPrice(**(price_raw or {}))
        return cls(
            app=AppConfig(**(raw.get("app") or {})),
            placement=PlacementConfig(**(raw.get("placement") or {})),
            promotions=PromotionsConfig(pricing=pricing),
            rotation=RotationConfig(**(raw.get("rotation") or {})),
            finance=FinanceConfig(**(raw.get("finance") or {})),
        )

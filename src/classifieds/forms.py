"""Vehicle posting form: per-type field rules, draft state and step validation."""
from __future__ import annotations

import json
import logging
import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .promotions import utcnow
from .schema import PricingType

log = logging.getLogger(__name__)

FIRST_STEP = 1
LAST_STEP = 3

FUEL_TYPES = ["Petrol", "Diesel", "Hybrid", "Electric", "CNG", "LPG"]
TRANSMISSION_TYPES = ["Manual", "Automatic", "CVT", "Tiptronic"]
VEHICLE_CONDITIONS = ["New", "Used", "Reconditioned"]
COLORS = ["White", "Black", "Silver", "Gray", "Blue", "Red", "Brown", "Green", "Pearl", "Other"]
FINANCE_TYPES = ["Bank Loan", "Lease", "Hire Purchase"]

SAFETY_FEATURES = [
    "Multiple Airbags", "ABS Brakes", "Stability Control",
    "Traction Control", "Lane Departure Warning", "Blind Spot Detection",
    "Rear Cross Traffic Alert", "Emergency Braking",
]
TECH_FEATURES = [
    "Touch Display", "Bluetooth", "USB Ports", "Backup Camera",
    "Parking Sensors", "Wireless Charging", "Premium Audio",
    "Apple CarPlay", "Android Auto", "Navigation System",
]
COMFORT_FEATURES = [
    "Climate Control", "Power Windows", "Power Mirrors",
    "Keyless Entry", "Push Start", "Cruise Control",
    "Leather Seats", "Sunroof", "Power Seats",
]


class FieldRule(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    HIDDEN = "hidden"


R, O, H = FieldRule.REQUIRED, FieldRule.OPTIONAL, FieldRule.HIDDEN

CONFIGURABLE_FIELDS = (
    "model", "year", "mileage", "trim", "engine_capacity",
    "fuel_type", "transmission", "color", "pricing_type", "features",
)


def _rules(*rules: FieldRule) -> Dict[str, FieldRule]:
    return dict(zip(CONFIGURABLE_FIELDS, rules))


#                     model year mileage trim engine fuel trans color pricing features
FIELD_RULES: Dict[str, Dict[str, FieldRule]] = {
    "car":             _rules(R, R, R, R, O, O, O, O, O, O),
    "van":             _rules(O, R, R, O, O, O, O, O, O, O),
    "bus":             _rules(O, R, R, H, O, O, O, H, O, O),
    "lorry":           _rules(O, R, R, H, O, O, O, H, O, O),
    "motorcycle":      _rules(O, R, R, H, O, O, H, H, O, H),
    "three-wheeler":   _rules(O, R, R, H, O, O, O, H, O, H),
    "bicycle":         _rules(H, H, H, H, H, H, H, H, H, H),
    "plant-machinery": _rules(O, R, O, H, O, O, O, H, O, H),
    "tractor":         _rules(O, R, O, H, O, O, O, H, O, H),
    "boat":            _rules(O, R, O, H, O, O, H, H, O, H),
}

VEHICLE_TYPES = list(FIELD_RULES)

# Always required on step 1, whatever the vehicle type.
BASE_REQUIRED = ("title", "make", "condition", "district", "city")

FIELD_LABELS = {
    "title": "Title",
    "make": "Make",
    "model": "Model",
    "year": "Year",
    "mileage": "Mileage",
    "condition": "Vehicle condition",
    "trim": "Trim/grade",
    "engine_capacity": "Engine capacity",
    "fuel_type": "Fuel type",
    "transmission": "Transmission",
    "color": "Color",
    "district": "District",
    "city": "City",
    "price": "Price",
    "finance_type": "Finance type",
    "outstanding_balance": "Outstanding balance",
    "asking_price": "Asking price",
    "monthly_payment": "Monthly payment",
    "remaining_term": "Remaining term",
}

FINANCE_REQUIRED = (
    "finance_type", "outstanding_balance", "asking_price", "monthly_payment", "remaining_term",
)
NUMERIC_FIELDS = (
    "year", "mileage", "engine_capacity", "price",
    "original_amount", "outstanding_balance", "asking_price", "monthly_payment",
)


def field_rules(vehicle_type: str) -> Dict[str, FieldRule]:
    if vehicle_type not in FIELD_RULES:
        raise ValueError(
            f"Unknown vehicle type '{vehicle_type}'. Available: {', '.join(VEHICLE_TYPES)}"
        )
    return FIELD_RULES[vehicle_type]


def visible_fields(vehicle_type: str) -> List[str]:
    return [f for f, rule in field_rules(vehicle_type).items() if rule is not FieldRule.HIDDEN]


class PostingDraft(BaseModel):
    step: int = FIRST_STEP
    vehicle_type: str = ""
    title: str = ""
    make: str = ""
    custom_make: str = ""
    model: str = ""
    custom_model: str = ""
    year: str = ""
    mileage: str = ""
    condition: str = ""
    engine_capacity: str = ""
    fuel_type: str = ""
    transmission: str = ""
    color: str = ""
    trim: str = ""
    district: str = ""
    city: str = ""
    pricing_type: PricingType = PricingType.CASH
    price: str = ""
    negotiable: bool = False
    finance_type: str = ""
    finance_provider: str = ""
    original_amount: str = ""
    outstanding_balance: str = ""
    monthly_payment: str = ""
    remaining_term: str = ""
    early_settlement: str = ""
    asking_price: str = ""
    features: List[str] = Field(default_factory=list)
    image_urls: List[str] = Field(default_factory=list)
    description: str = ""
    phone: str = ""
    whatsapp: str = ""
    whatsapp_same_as_phone: bool = True
    email: str = ""

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: Optional[str]) -> PostingDraft:
        """Resume a saved draft; unreadable drafts start over from scratch."""
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("Discarding unreadable draft")
            return cls()
        if not isinstance(data, dict):
            log.warning("Discarding draft with unexpected shape")
            return cls()
        try:
            return cls.model_validate({**cls().model_dump(), **data})
        except ValidationError as e:
            log.warning("Discarding invalid draft: %s", e.error_count())
            return cls()


def _is_number(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


def _step_one(draft: PostingDraft) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if draft.vehicle_type not in FIELD_RULES:
        errors["vehicle_type"] = "Please select vehicle type"
        return errors
    rules = FIELD_RULES[draft.vehicle_type]

    required = list(BASE_REQUIRED)
    required += [f for f, rule in rules.items() if rule is FieldRule.REQUIRED]

    finance = (
        rules["pricing_type"] is not FieldRule.HIDDEN
        and draft.pricing_type is PricingType.FINANCE
    )
    if finance:
        required += list(FINANCE_REQUIRED)
    else:
        required.append("price")

    for name in required:
        if name in ("pricing_type", "features"):
            continue
        value = getattr(draft, name)
        if not str(value).strip():
            errors[name] = f"{FIELD_LABELS[name]} is required"

    for name in NUMERIC_FIELDS:
        if name in errors:
            continue
        value = getattr(draft, name).strip()
        if value and not _is_number(value):
            errors[name] = f"{FIELD_LABELS.get(name, name)} must be a number"

    if draft.condition and "condition" not in errors and draft.condition not in VEHICLE_CONDITIONS:
        errors["condition"] = f"Vehicle condition must be one of {', '.join(VEHICLE_CONDITIONS)}"
    if finance and draft.finance_type and draft.finance_type not in FINANCE_TYPES:
        errors["finance_type"] = f"Finance type must be one of {', '.join(FINANCE_TYPES)}"
    return errors


def _step_two(draft: PostingDraft) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not draft.image_urls:
        errors["images"] = "At least one image is required"
    if not draft.description.strip():
        errors["description"] = "Description is required"
    return errors


def _step_three(draft: PostingDraft) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not draft.phone.strip():
        errors["phone"] = "Phone number is required"
    if not draft.whatsapp.strip() and not draft.whatsapp_same_as_phone:
        errors["whatsapp"] = "WhatsApp number is required"
    return errors


_STEP_VALIDATORS = {1: _step_one, 2: _step_two, 3: _step_three}


def validate_step(draft: PostingDraft, step: Optional[int] = None) -> Dict[str, str]:
    """Return field -> message for everything blocking ``step``, in form order."""
    step = draft.step if step is None else step
    if step not in _STEP_VALIDATORS:
        raise ValueError(f"Step must be between {FIRST_STEP} and {LAST_STEP}, got {step}")
    return _STEP_VALIDATORS[step](draft)


def validate_all(draft: PostingDraft) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for step in range(FIRST_STEP, LAST_STEP + 1):
        errors.update(validate_step(draft, step))
    return errors


def advance(draft: PostingDraft) -> tuple[PostingDraft, Dict[str, str]]:
    """Move to the next step when the current one validates."""
    errors = validate_step(draft)
    if errors:
        return draft, errors
    return draft.model_copy(update={"step": min(draft.step + 1, LAST_STEP)}), errors


def go_back(draft: PostingDraft) -> PostingDraft:
    return draft.model_copy(update={"step": max(draft.step - 1, FIRST_STEP)})


def _num(value: str) -> Optional[float]:
    value = value.strip()
    return float(value) if value else None


def _int(value: str) -> Optional[int]:
    n = _num(value)
    return int(n) if n is not None else None


def to_listing_record(
    draft: PostingDraft,
    listing_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Build the store record for a fully validated draft."""
    errors = validate_all(draft)
    if errors:
        raise ValueError(f"Draft is incomplete: {', '.join(errors)}")

    rules = FIELD_RULES[draft.vehicle_type]
    finance = (
        rules["pricing_type"] is not FieldRule.HIDDEN
        and draft.pricing_type is PricingType.FINANCE
    )

    def shown(name: str) -> bool:
        return rules[name] is not FieldRule.HIDDEN

    # the price column mirrors the outstanding balance for takeovers
    price = _num(draft.outstanding_balance) if finance else _num(draft.price)

    return {
        "id": listing_id or uuid.uuid4().hex,
        "vehicle_type": draft.vehicle_type,
        "title": draft.title.strip(),
        "make": draft.custom_make.strip() or draft.make,
        "model": (draft.custom_model.strip() or draft.model or None) if shown("model") else None,
        "year": _int(draft.year) if shown("year") else None,
        "mileage": _int(draft.mileage) if shown("mileage") else None,
        "fuel_type": draft.fuel_type or None if shown("fuel_type") else None,
        "transmission": draft.transmission or None if shown("transmission") else None,
        "location": f"{draft.city}, {draft.district}",
        "images": list(draft.image_urls),
        "created_at": (now or utcnow()).isoformat(),
        "pricing_type": PricingType.FINANCE.value if finance else PricingType.CASH.value,
        "price": price,
        "negotiable": draft.negotiable,
        "finance_type": draft.finance_type or None if finance else None,
        "finance_provider": draft.finance_provider or None if finance else None,
        "original_amount": _num(draft.original_amount) if finance else None,
        "outstanding_balance": _num(draft.outstanding_balance) if finance else None,
        "asking_price": _num(draft.asking_price) if finance else None,
        "monthly_payment": _num(draft.monthly_payment) if finance else None,
        "remaining_term": draft.remaining_term or None if finance else None,
        "early_settlement": draft.early_settlement or None if finance else None,
        "features": list(draft.features) if shown("features") else [],
        "description": draft.description,
        "phone": draft.phone,
        "whatsapp": draft.phone if draft.whatsapp_same_as_phone else draft.whatsapp,
        "email": draft.email or None,
    }

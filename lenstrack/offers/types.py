"""
lenstrack/offers/types.py
-------------------------
Typed records that flow through the offer engine.

Rules and coupons arrive already materialised by the rule repository;
the engine never touches the database. Every record here is frozen so a
PricingResult can be handed to any caller without being mutated later.

Money is Decimal end to end. Nothing is rounded until it reaches the
price breakdown (see to_units).
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Optional, Tuple, Union


ZERO    = Decimal('0')
HUNDRED = Decimal('100')
UNIT    = Decimal('1')   # whole rupees


def to_units(amount: Decimal) -> Decimal:
    """Round to whole currency units, half away from zero."""
    return amount.quantize(UNIT, rounding=ROUND_HALF_UP)


def payable_units(amount: Decimal, ceiling: Decimal) -> Decimal:
    """Whole units, half up, but never above `ceiling` (e.g. 1999.75 base pays 1999)."""
    rounded = to_units(amount)
    if rounded > ceiling:
        rounded = amount.quantize(UNIT, rounding=ROUND_FLOOR)
    return rounded


def _coerce_amounts(record, *names):
    """Turn int/float amounts from Python callers into Decimal; JSON input already is."""
    for name in names:
        value = getattr(record, name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            object.__setattr__(record, name, Decimal(str(value)))


# ── Enumerations (stored as plain strings, like the admin UI does) ─

class OfferType:
    YOPO               = 'YOPO'
    COMBO_PRICE        = 'COMBO_PRICE'
    FREE_LENS          = 'FREE_LENS'
    PERCENT_OFF        = 'PERCENT_OFF'
    FLAT_OFF           = 'FLAT_OFF'
    BOG50              = 'BOG50'
    CATEGORY_DISCOUNT  = 'CATEGORY_DISCOUNT'
    BONUS_FREE_PRODUCT = 'BONUS_FREE_PRODUCT'


OFFER_TYPES = [
    (OfferType.YOPO,               'You Pay Only the higher price'),
    (OfferType.COMBO_PRICE,        'Fixed combo price'),
    (OfferType.FREE_LENS,          'Free lens (capped)'),
    (OfferType.PERCENT_OFF,        '% Off pair'),
    (OfferType.FLAT_OFF,           'Flat ₹ Off pair'),
    (OfferType.BOG50,              'Buy one, get 50% off the cheaper item'),
    (OfferType.CATEGORY_DISCOUNT,  'Customer category discount'),
    (OfferType.BONUS_FREE_PRODUCT, 'Bonus free product'),
]
OFFER_TYPE_CHOICES = [t[0] for t in OFFER_TYPES]

# Mutually exclusive: at most one of these wins per calculation.
EXCLUSIVE_OFFER_TYPES = frozenset({
    OfferType.YOPO,
    OfferType.COMBO_PRICE,
    OfferType.FREE_LENS,
    OfferType.PERCENT_OFF,
    OfferType.FLAT_OFF,
    OfferType.BOG50,
})


class DiscountType:
    PERCENTAGE  = 'PERCENTAGE'
    FLAT_AMOUNT = 'FLAT_AMOUNT'



class YopoFree:
    BEST_OF = 'BEST_OF'
    FRAME   = 'FRAME'
    LENS    = 'LENS'


class PercentBase:
    BASE       = 'BASE'
    FRAME_ONLY = 'FRAME_ONLY'
    LENS_ONLY  = 'LENS_ONLY'


# ── Per-type rule configuration (tagged union keyed by offer type) ─

@dataclass(frozen=True)
class YopoConfig:
    free_under_yopo: str = YopoFree.BEST_OF


@dataclass(frozen=True)
class ComboPriceConfig:
    combo_price:                    Decimal
    required_frame_sub_category:    Optional[str] = None
    frame_sub_category_combo_price: Optional[Decimal] = None
    required_lens_brand_line:       Optional[str] = None
    lens_brand_line_combo_price:    Optional[Decimal] = None
    required_vision_type:           Optional[str] = None
    vision_type_combo_price:        Optional[Decimal] = None


@dataclass(frozen=True)
class FreeLensConfig:
    free_lens_cap: Decimal


@dataclass(frozen=True)
class PercentOffConfig:
    discount_value: Decimal
    max_discount:   Optional[Decimal] = None
    applies_to:     str = PercentBase.BASE


@dataclass(frozen=True)
class FlatOffConfig:
    discount_value: Decimal
    min_bill_value: Decimal = ZERO


@dataclass(frozen=True)
class Bog50Config:
    second_pair_percent: Decimal = Decimal('50')


@dataclass(frozen=True)
class CategoryDiscountConfig:
    eligible_categories: Tuple[str, ...]
    discount_percent:    Decimal
    max_discount:        Optional[Decimal] = None


@dataclass(frozen=True)
class BonusFreeProductConfig:
    trigger_min_bill:    Decimal
    bonus_limit:         Decimal
    bonus_category:      str = 'ACCESSORY'
    eligible_brands:     Tuple[str, ...] = ()
    eligible_categories: Tuple[str, ...] = ()


OfferConfig = Union[
    YopoConfig, ComboPriceConfig, FreeLensConfig, PercentOffConfig,
    FlatOffConfig, Bog50Config, CategoryDiscountConfig, BonusFreeProductConfig,
]


# ── Rule & coupon snapshots ───────────────────────────────────────

@dataclass(frozen=True)
class OfferRule:
    """A promotional rule, as handed to the engine by the repository."""
    code:                 str
    offer_type:           str
    organization_id:      str
    config:               Optional[OfferConfig] = None
    frame_brands:         Tuple[str, ...] = ()
    frame_sub_categories: Tuple[str, ...] = ()
    lens_brand_lines:     Tuple[str, ...] = ()
    min_frame_mrp:        Optional[Decimal] = None
    max_frame_mrp:        Optional[Decimal] = None
    priority:             int = 100
    is_active:            bool = True
    valid_from:           Optional[datetime] = None
    valid_until:          Optional[datetime] = None
    upsell_enabled:       bool = False
    upsell_threshold:     Optional[Decimal] = None
    upsell_reward_text:   Optional[str] = None
    is_second_pair_rule:  bool = False
    second_pair_percent:  Decimal = Decimal('50')
    config_error:         Optional[str] = None   # set when config failed validation

    @property
    def sort_key(self) -> tuple:
        """Lower priority wins; equal priorities fall back to code."""
        return (self.priority, self.code)

    @property
    def is_exclusive(self) -> bool:
        return self.offer_type in EXCLUSIVE_OFFER_TYPES


@dataclass(frozen=True)
class Coupon:
    code:            str
    discount_type:   str
    discount_value:  Decimal
    valid_from:      Optional[datetime] = None
    valid_until:     Optional[datetime] = None
    max_discount:    Optional[Decimal] = None
    min_cart_value:  Optional[Decimal] = None
    is_active:       bool = True
    usage_limit:     Optional[int] = None
    used_count:      int = 0
    organization_id: Optional[str] = None


# ── Request ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class FrameInput:
    brand:        str
    mrp:          Decimal
    sub_category: Optional[str] = None
    frame_type:   Optional[str] = None   # FULL_RIM | HALF_RIM | RIMLESS

    def __post_init__(self):
        _coerce_amounts(self, 'mrp')


@dataclass(frozen=True)
class LensInput:
    it_code:       str
    price:         Decimal
    brand_line:    str
    yopo_eligible: bool = False
    vision_type:   Optional[str] = None

    def __post_init__(self):
        _coerce_amounts(self, 'price')


@dataclass(frozen=True)
class SecondPairInput:
    first_pair_total:       Decimal
    second_pair_frame_mrp:  Decimal
    second_pair_lens_price: Decimal

    def __post_init__(self):
        _coerce_amounts(self, 'first_pair_total', 'second_pair_frame_mrp',
                        'second_pair_lens_price')

    @property
    def total(self) -> Decimal:
        return self.second_pair_frame_mrp + self.second_pair_lens_price


@dataclass(frozen=True)
class PricingRequest:
    frame:                FrameInput
    lens:                 LensInput
    organization_id:      str
    customer_category:    Optional[str] = None
    coupon_code:          Optional[str] = None
    second_pair:          Optional[SecondPairInput] = None
    preferred_offer_type: Optional[str] = None

    @property
    def base_total(self) -> Decimal:
        return self.frame.mrp + self.lens.price


# ── Result ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OfferApplied:
    rule_code:   str
    offer_type:  str
    description: str
    savings:     Decimal
    is_bonus:    bool = False


@dataclass(frozen=True)
class CategoryDiscount:
    rule_code:   str
    description: str
    savings:     Decimal


@dataclass(frozen=True)
class CouponDiscount:
    code:        str
    description: str
    savings:     Decimal


@dataclass(frozen=True)
class SecondPairDiscount:
    rule_code:   str
    description: str
    savings:     Decimal
    payable:     Decimal   # informational, never folded into final_payable


@dataclass(frozen=True)
class PriceComponent:
    label:  str
    amount: Decimal   # negative = discount


@dataclass(frozen=True)
class UpsellSuggestion:
    rule_code:   str
    reward_text: str
    message:     str
    remaining:   Decimal


@dataclass(frozen=True)
class AvailableOffer:
    rule_code:         str
    offer_type:        str
    description:       str
    estimated_savings: Decimal


@dataclass(frozen=True)
class PricingResult:
    """Everything the caller needs to display or persist one calculation."""
    frame_mrp:            Decimal
    lens_price:           Decimal
    base_total:           Decimal
    effective_base:       Decimal
    final_payable:        Decimal
    offers_applied:       Tuple[OfferApplied, ...] = ()
    price_components:     Tuple[PriceComponent, ...] = ()
    category_discount:    Optional[CategoryDiscount] = None
    coupon_discount:      Optional[CouponDiscount] = None
    coupon_error:         Optional[str] = None
    second_pair_discount: Optional[SecondPairDiscount] = None
    upsell:               Optional[UpsellSuggestion] = None
    available_offers:     Tuple[AvailableOffer, ...] = ()
    warnings:             Tuple[str, ...] = ()

    @property
    def total_savings(self) -> Decimal:
        """All savings, second pair and bonus items included."""
        total = sum((o.savings for o in self.offers_applied), start=ZERO)
        if self.category_discount:
            total += self.category_discount.savings
        if self.coupon_discount:
            total += self.coupon_discount.savings
        if self.second_pair_discount:
            total += self.second_pair_discount.savings
        return total

    @property
    def combined_payable(self) -> Decimal:
        """First pair plus the second pair's payable, for callers that show one total."""
        if self.second_pair_discount is None:
            return self.final_payable
        return self.final_payable + to_units(self.second_pair_discount.payable)

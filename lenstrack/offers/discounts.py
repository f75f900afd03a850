"""
lenstrack/offers/discounts.py
-----------------------------
The layers applied after the primary offer:

  category discount → coupon → second pair → upsell advice

Each layer reads the running subtotal it is given and returns its own
result object; none of them touches the primary offer or each other.
"""
from __future__ import annotations
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from lenstrack.offers.errors import CouponInvalid
from lenstrack.offers.matcher import in_filter, is_live
from lenstrack.offers.primary import describe, fmt_amount, pair_savings
from lenstrack.offers.types import (
    OfferRule, OfferType, Coupon, DiscountType, PricingRequest,
    CategoryDiscount, CouponDiscount, SecondPairDiscount, UpsellSuggestion,
    ZERO, HUNDRED, to_units,
)


logger = logging.getLogger(__name__)

REMAINING_PLACEHOLDER = '{remaining}'


# ── Category discount ─────────────────────────────────────────────

def apply_category_discount(eligible: Iterable[OfferRule], request: PricingRequest,
                            subtotal: Decimal) -> Optional[CategoryDiscount]:
    """Percentage off `subtotal` for the customer's category (e.g. STUDENT)."""
    if not request.customer_category:
        return None
    category = request.customer_category.strip().upper()

    matches = [
        r for r in eligible
        if r.offer_type == OfferType.CATEGORY_DISCOUNT
        and category in r.config.eligible_categories
    ]
    if not matches:
        return None

    rule = min(matches, key=lambda r: r.sort_key)
    cfg = rule.config
    savings = subtotal * cfg.discount_percent / HUNDRED
    if cfg.max_discount is not None:
        savings = min(savings, cfg.max_discount)
    if savings <= ZERO:
        return None

    return CategoryDiscount(
        rule_code=rule.code,
        description=f'{category} Discount ({fmt_amount(cfg.discount_percent)}%)',
        savings=savings,
    )


# ── Coupon ────────────────────────────────────────────────────────

def check_coupon(coupon: Optional[Coupon], code: str, subtotal: Decimal,
                 now: datetime, organization_id: Optional[str] = None) -> Coupon:
    """
    Validate a coupon against the code the customer typed.

    Raises:
        CouponInvalid with a message fit for the cashier's screen.
    """
    typed = code.strip().upper()
    if coupon is None or coupon.code.strip().upper() != typed:
        raise CouponInvalid(f'Coupon code "{typed}" not found')
    if organization_id and coupon.organization_id and coupon.organization_id != organization_id:
        raise CouponInvalid(f'Coupon code "{typed}" not found')
    if not coupon.is_active:
        raise CouponInvalid(f'Coupon "{coupon.code}" is not active')
    if coupon.valid_from and now < coupon.valid_from:
        raise CouponInvalid(f'Coupon "{coupon.code}" is not yet valid')
    if coupon.valid_until and now > coupon.valid_until:
        raise CouponInvalid(f'Coupon "{coupon.code}" has expired')
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponInvalid(f'Coupon "{coupon.code}" has reached its usage limit')
    min_cart = coupon.min_cart_value or ZERO
    if subtotal < min_cart:
        raise CouponInvalid(
            f'Coupon "{coupon.code}" requires minimum cart value of ₹{fmt_amount(min_cart)}. '
            f'Current cart value is ₹{fmt_amount(to_units(subtotal))}'
        )
    return coupon


def coupon_savings(coupon: Coupon, subtotal: Decimal) -> Decimal:
    if coupon.discount_type == DiscountType.PERCENTAGE:
        savings = subtotal * coupon.discount_value / HUNDRED
        if coupon.max_discount is not None:
            savings = min(savings, coupon.max_discount)
        return min(savings, subtotal)
    return min(coupon.discount_value, subtotal)


def apply_coupon(coupon: Optional[Coupon], request: PricingRequest, subtotal: Decimal,
                 now: datetime) -> Tuple[Optional[CouponDiscount], Optional[str]]:
    """
    Returns (coupon_discount, coupon_error). Exactly one of them is set
    when a coupon code was supplied; both are None otherwise.
    """
    if not request.coupon_code or not request.coupon_code.strip():
        return None, None

    try:
        valid = check_coupon(coupon, request.coupon_code, subtotal, now,
                             organization_id=request.organization_id)
    except CouponInvalid as e:
        logger.warning('Coupon rejected: %s', e.message)
        return None, e.message

    savings = coupon_savings(valid, subtotal)
    if savings <= ZERO:
        return None, f'Coupon "{valid.code}" discount could not be calculated'

    if valid.discount_type == DiscountType.PERCENTAGE:
        label = f'{fmt_amount(valid.discount_value)}%'
    else:
        label = f'₹{fmt_amount(valid.discount_value)}'
    return CouponDiscount(
        code=valid.code,
        description=f'Coupon {valid.code} ({label} OFF)',
        savings=savings,
    ), None


# ── Second pair ───────────────────────────────────────────────────

def _second_pair_rule(eligible: Iterable[OfferRule]) -> Optional[OfferRule]:
    """A rule flagged isSecondPairRule wins; otherwise any eligible BOG50 rule."""
    priced = [r for r in eligible if r.is_exclusive]
    flagged = [r for r in priced if r.is_second_pair_rule]
    pool = flagged or [r for r in priced if r.offer_type == OfferType.BOG50]
    return min(pool, key=lambda r: r.sort_key) if pool else None


def apply_second_pair(eligible: Iterable[OfferRule],
                      request: PricingRequest) -> Optional[SecondPairDiscount]:
    """
    Price the second pair on its own. The result is reported next to the
    first pair's final payable and never folded into it.
    """
    pair = request.second_pair
    if pair is None:
        return None

    rule = _second_pair_rule(eligible)
    if rule is None:
        return None

    frame_mrp, lens_price = pair.second_pair_frame_mrp, pair.second_pair_lens_price
    if rule.offer_type == OfferType.BOG50:
        pct = rule.second_pair_percent if rule.is_second_pair_rule \
            else rule.config.second_pair_percent
        savings = min(frame_mrp, lens_price) * pct / HUNDRED
        description = f'Second pair {fmt_amount(pct)}% off (cheaper item)'
    else:
        savings = pair_savings(rule, frame_mrp, lens_price, request)
        description = f'Second pair: {describe(rule, request, frame_mrp, lens_price)}'

    if savings <= ZERO:
        return None

    return SecondPairDiscount(
        rule_code=rule.code,
        description=description,
        savings=savings,
        payable=pair.total - savings,
    )


# ── Upsell advisor ────────────────────────────────────────────────

def render_upsell_message(reward_text: str, remaining: Decimal) -> str:
    amount = fmt_amount(remaining)
    if REMAINING_PLACEHOLDER in reward_text:
        return reward_text.replace(REMAINING_PLACEHOLDER, amount)
    return f'Add ₹{amount} more to unlock {reward_text}'


def advise_upsell(rules: Iterable[OfferRule], request: PricingRequest,
                  final_payable: Decimal, now: datetime) -> Optional[UpsellSuggestion]:
    """
    Nearest unmet spend threshold across all upsell-enabled rules.
    Only the frame-brand filter applies here: the customer may still switch
    lens or frame, so the other filters would hide valid nudges.
    """
    best = None
    for rule in rules:
        if not rule.upsell_enabled or rule.upsell_threshold is None:
            continue
        if rule.config is None:
            continue
        if not rule.upsell_reward_text:
            continue
        if not is_live(rule, request.organization_id, now):
            continue
        if not in_filter(rule.frame_brands, request.frame.brand):
            continue
        if rule.upsell_threshold <= final_payable:
            continue
        key = (rule.upsell_threshold, rule.priority, rule.code)
        if best is None or key < best[0]:
            best = (key, rule)

    if best is None:
        return None

    rule = best[1]
    remaining = to_units(rule.upsell_threshold - final_payable)
    return UpsellSuggestion(
        rule_code=rule.code,
        reward_text=rule.upsell_reward_text,
        message=render_upsell_message(rule.upsell_reward_text, remaining),
        remaining=remaining,
    )

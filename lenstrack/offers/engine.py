"""
lenstrack/offers/engine.py
--------------------------
Pure-Python offer calculation engine.

Evaluate a frame + lens request against the organization's offer rules
and an optional coupon, and return a PricingResult with the applied
offers, the line-item breakdown and the amount the customer pays.

Pipeline (single pass, no state kept between calls):
  1. Eligibility Matcher   – matcher.match
  2. Primary Offer         – primary.resolve_primary
  3. Category discount     – discounts.apply_category_discount
  4. Coupon                – discounts.apply_coupon
  5. Second pair           – discounts.apply_second_pair
  6. Upsell advice         – discounts.advise_upsell
  7. Breakdown             – assemble_components

No DB access happens here. The caller (API route, CLI or tests) fetches
rules and the coupon first, then decides what to do with the result.
"""
from __future__ import annotations
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from lenstrack.offers.discounts import (
    apply_category_discount, apply_coupon, apply_second_pair, advise_upsell,
)
from lenstrack.offers.matcher import match
from lenstrack.offers.primary import PrimaryOutcome, resolve_primary
from lenstrack.offers.types import (
    Coupon, OfferRule, PricingRequest, PricingResult, PriceComponent,
    CategoryDiscount, CouponDiscount, ZERO, payable_units, to_units,
)


logger = logging.getLogger(__name__)


# ── Breakdown ─────────────────────────────────────────────────────

def assemble_components(request: PricingRequest, primary: PrimaryOutcome,
                        category: Optional[CategoryDiscount],
                        coupon: Optional[CouponDiscount],
                        final_payable: Decimal) -> List[PriceComponent]:
    """
    Line items in display order: base items, primary offer, category,
    coupon, then the closing Final Payable line. Discounts are negative.
    Values are rounded here and nowhere earlier.
    """
    components = [
        PriceComponent('Frame MRP', to_units(request.frame.mrp)),
        PriceComponent('Lens Price', to_units(request.lens.price)),
    ]
    if primary.exclusive:
        components.append(PriceComponent(primary.exclusive.description,
                                         -to_units(primary.exclusive.savings)))
    if category:
        components.append(PriceComponent(category.description, -to_units(category.savings)))
    if coupon:
        components.append(PriceComponent(coupon.description, -to_units(coupon.savings)))
    components.append(PriceComponent('Final Payable', final_payable))
    return components


# ── Main public function ──────────────────────────────────────────

def calculate(request: PricingRequest, rules: Iterable[OfferRule],
              coupon: Optional[Coupon] = None,
              now: Optional[datetime] = None) -> PricingResult:
    """
    Price one frame + lens request.

    Stacking order:
    1. At most one exclusive primary offer, on frame MRP + lens price.
    2. A bonus free product may be added next to it (does not cut the price).
    3. The category discount applies to what is left after step 1.
    4. The coupon applies to what is left after step 3.
    5. The second pair is priced separately and never folded into
       final_payable; see PricingResult.combined_payable.

    Raises:
        ValidationError if the request cannot be priced. Bad rule configs
        and invalid coupons never raise; they surface as `warnings` and
        `coupon_error` on the result.
    """
    rules = list(rules)
    now = now or datetime.utcnow()

    matched = match(rules, request, now)
    primary = resolve_primary(matched.eligible, request)

    base_total = request.base_total
    effective_base = base_total - primary.exclusive_savings

    category = apply_category_discount(matched.eligible, request, effective_base)
    after_category = effective_base - (category.savings if category else ZERO)

    coupon_discount, coupon_error = apply_coupon(coupon, request, after_category, now)
    after_coupon = after_category - (coupon_discount.savings if coupon_discount else ZERO)

    second_pair = apply_second_pair(matched.eligible, request)

    final_payable = payable_units(max(ZERO, after_coupon), base_total)
    upsell = advise_upsell(rules, request, final_payable, now)

    logger.info(
        'Priced %s + %s for org %s: base=%s final=%s offers=%s',
        request.frame.brand, request.lens.it_code, request.organization_id,
        base_total, final_payable, [o.rule_code for o in primary.offers],
    )

    return PricingResult(
        frame_mrp=request.frame.mrp,
        lens_price=request.lens.price,
        base_total=base_total,
        effective_base=effective_base,
        final_payable=final_payable,
        offers_applied=primary.offers,
        price_components=tuple(assemble_components(
            request, primary, category, coupon_discount, final_payable)),
        category_discount=category,
        coupon_discount=coupon_discount,
        coupon_error=coupon_error,
        second_pair_discount=second_pair,
        upsell=upsell,
        available_offers=primary.available,
        warnings=matched.warnings,
    )

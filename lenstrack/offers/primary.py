"""
lenstrack/offers/primary.py
---------------------------
Primary Offer Resolver.

Exclusive offers (YOPO, COMBO_PRICE, FREE_LENS, PERCENT_OFF, FLAT_OFF,
BOG50) compete: the eligible rule with the lowest (priority, code) wins
and is the only one applied. BONUS_FREE_PRODUCT is evaluated on its own
and may be added next to the winner, since it rewards a separate free
item rather than discounting the frame + lens pair.

Every handler returns an unrounded Decimal saving for the given pair.
The same handlers price the second pair in discounts.py.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from lenstrack.offers.matcher import in_filter
from lenstrack.offers.types import (
    OfferRule, OfferType, PricingRequest, OfferApplied, AvailableOffer,
    YopoFree, PercentBase, ZERO, HUNDRED,
)


logger = logging.getLogger(__name__)


def fmt_amount(amount: Decimal) -> str:
    """Render 1499 as '1499' and 12.50 as '12.5' for offer labels."""
    return format(amount.normalize(), 'f')


@dataclass(frozen=True)
class PrimaryOutcome:
    exclusive: Optional[OfferApplied] = None
    bonus:     Optional[OfferApplied] = None
    available: Tuple[AvailableOffer, ...] = ()

    @property
    def offers(self) -> Tuple[OfferApplied, ...]:
        return tuple(o for o in (self.exclusive, self.bonus) if o is not None)

    @property
    def exclusive_savings(self) -> Decimal:
        return self.exclusive.savings if self.exclusive else ZERO


# ── Individual handlers ───────────────────────────────────────────

def _handle_yopo(rule, frame_mrp: Decimal, lens_price: Decimal, request) -> Decimal:
    """You Pay Only the higher of frame and lens (or the configured item)."""
    mode = rule.config.free_under_yopo
    if mode == YopoFree.FRAME:
        pay = lens_price
    elif mode == YopoFree.LENS:
        pay = frame_mrp
    else:
        pay = max(frame_mrp, lens_price)
    return (frame_mrp + lens_price) - pay


def combo_price_for(rule, request: PricingRequest) -> Decimal:
    """
    Pick the combo price that applies to this request.
    Sub-category, then lens brand line, then vision type; first match wins.
    Falls back to the rule's plain comboPrice.
    """
    cfg = rule.config
    frame, lens = request.frame, request.lens
    tiers = (
        (cfg.required_frame_sub_category, frame.sub_category, cfg.frame_sub_category_combo_price),
        (cfg.required_lens_brand_line,    lens.brand_line,    cfg.lens_brand_line_combo_price),
        (cfg.required_vision_type,        lens.vision_type,   cfg.vision_type_combo_price),
    )
    for required, actual, price in tiers:
        if required and price is not None and actual \
                and actual.strip().upper() == required.upper():
            return price
    return cfg.combo_price


def _handle_combo_price(rule, frame_mrp, lens_price, request) -> Decimal:
    combo = combo_price_for(rule, request)
    return max(ZERO, (frame_mrp + lens_price) - combo)


def _handle_free_lens(rule, frame_mrp, lens_price, request) -> Decimal:
    return min(lens_price, rule.config.free_lens_cap)


def _handle_percent_off(rule, frame_mrp, lens_price, request) -> Decimal:
    cfg = rule.config
    if cfg.applies_to == PercentBase.FRAME_ONLY:
        base = frame_mrp
    elif cfg.applies_to == PercentBase.LENS_ONLY:
        base = lens_price
    else:
        base = frame_mrp + lens_price
    savings = base * cfg.discount_value / HUNDRED
    if cfg.max_discount is not None:
        savings = min(savings, cfg.max_discount)
    return savings


def _handle_flat_off(rule, frame_mrp, lens_price, request) -> Decimal:
    return min(rule.config.discount_value, frame_mrp + lens_price)


def _handle_bog50(rule, frame_mrp, lens_price, request) -> Decimal:
    """The cheaper item of the pair gets secondPairPercent (50 by default) off."""
    return min(frame_mrp, lens_price) * rule.config.second_pair_percent / HUNDRED


PAIR_HANDLERS = {
    OfferType.YOPO:        _handle_yopo,
    OfferType.COMBO_PRICE: _handle_combo_price,
    OfferType.FREE_LENS:   _handle_free_lens,
    OfferType.PERCENT_OFF: _handle_percent_off,
    OfferType.FLAT_OFF:    _handle_flat_off,
    OfferType.BOG50:       _handle_bog50,
}


def pair_savings(rule: OfferRule, frame_mrp: Decimal, lens_price: Decimal,
                 request: PricingRequest) -> Decimal:
    """Saving `rule` gives on a frame + lens pair with these prices."""
    return PAIR_HANDLERS[rule.offer_type](rule, frame_mrp, lens_price, request)


def describe(rule: OfferRule, request: PricingRequest,
             frame_mrp: Optional[Decimal] = None, lens_price: Optional[Decimal] = None) -> str:
    """
    Human readable label, shown in the breakdown next to the saving.
    Pass frame_mrp/lens_price when labelling a pair other than the request's own.
    """
    cfg = rule.config
    if frame_mrp is None:
        frame_mrp = request.frame.mrp
    if lens_price is None:
        lens_price = request.lens.price
    t = rule.offer_type
    if t == OfferType.YOPO:
        if cfg.free_under_yopo == YopoFree.FRAME:
            return 'YOPO - Frame Free (Pay Lens Price)'
        if cfg.free_under_yopo == YopoFree.LENS:
            return 'YOPO - Lens Free (Pay Frame Price)'
        free = 'LENS' if frame_mrp > lens_price else 'FRAME'
        return f'YOPO - Pay higher of frame or lens ({free} free)'
    if t == OfferType.COMBO_PRICE:
        return f'Combo Price: ₹{fmt_amount(combo_price_for(rule, request))}'
    if t == OfferType.FREE_LENS:
        return f'Free Lens (up to ₹{fmt_amount(cfg.free_lens_cap)})'
    if t == OfferType.PERCENT_OFF:
        scope = '' if cfg.applies_to == PercentBase.BASE else f' ({cfg.applies_to})'
        return f'{fmt_amount(cfg.discount_value)}% OFF{scope}'
    if t == OfferType.FLAT_OFF:
        return f'Flat ₹{fmt_amount(cfg.discount_value)} OFF'
    if t == OfferType.BOG50:
        return f'Buy One Get {fmt_amount(cfg.second_pair_percent)}% Off (cheaper item)'
    if t == OfferType.BONUS_FREE_PRODUCT:
        return f'Bonus: Free {cfg.bonus_category} worth up to ₹{fmt_amount(cfg.bonus_limit)}'
    return t


def is_applicable(rule: OfferRule, request: PricingRequest) -> bool:
    """Type-specific conditions on top of the generic eligibility filters."""
    if rule.offer_type == OfferType.YOPO:
        return request.lens.yopo_eligible
    if rule.offer_type == OfferType.FLAT_OFF:
        return request.base_total >= rule.config.min_bill_value
    return True


# ── Bonus free product ────────────────────────────────────────────

def _bonus_matches(rule: OfferRule, request: PricingRequest) -> bool:
    cfg = rule.config
    if request.base_total < cfg.trigger_min_bill:
        return False
    if cfg.eligible_brands and not (in_filter(cfg.eligible_brands, request.frame.brand)
                                    or in_filter(cfg.eligible_brands, request.lens.brand_line)):
        return False
    if not in_filter(cfg.eligible_categories, request.frame.sub_category):
        return False
    return True


# ── Main public function ──────────────────────────────────────────

def resolve_primary(eligible: Iterable[OfferRule], request: PricingRequest) -> PrimaryOutcome:
    """
    Pick the winning exclusive offer and the additive bonus, if any.

    `eligible` must already be filtered by the matcher. The returned
    `available` list holds every exclusive rule the customer could have
    chosen, with its estimated saving, for the offer picker.
    """
    frame_mrp, lens_price = request.frame.mrp, request.lens.price

    candidates: List[OfferRule] = []
    bonus_rules: List[OfferRule] = []
    for rule in sorted(eligible, key=lambda r: r.sort_key):
        if rule.is_second_pair_rule:
            continue
        if rule.is_exclusive and is_applicable(rule, request):
            candidates.append(rule)
        elif rule.offer_type == OfferType.BONUS_FREE_PRODUCT:
            bonus_rules.append(rule)

    available = tuple(
        AvailableOffer(
            rule_code=r.code,
            offer_type=r.offer_type,
            description=describe(r, request),
            estimated_savings=pair_savings(r, frame_mrp, lens_price, request),
        )
        for r in candidates
    )

    if request.preferred_offer_type:
        wanted = request.preferred_offer_type.strip().upper()
        candidates = [r for r in candidates if r.offer_type == wanted]

    exclusive = None
    if candidates:
        winner = candidates[0]
        exclusive = OfferApplied(
            rule_code=winner.code,
            offer_type=winner.offer_type,
            description=describe(winner, request),
            savings=pair_savings(winner, frame_mrp, lens_price, request),
        )
        logger.debug('Primary offer %s (%s) saves %s', winner.code,
                     winner.offer_type, exclusive.savings)

    bonus = None
    for rule in bonus_rules:
        if _bonus_matches(rule, request):
            bonus = OfferApplied(
                rule_code=rule.code,
                offer_type=rule.offer_type,
                description=describe(rule, request),
                savings=rule.config.bonus_limit,
                is_bonus=True,
            )
            break

    return PrimaryOutcome(exclusive=exclusive, bonus=bonus, available=available)

"""
lenstrack/offers/serializers.py
-------------------------------
JSON boundary of the offer engine.

  parse_pricing_request  camelCase JSON body → PricingRequest
  result_to_dict         PricingResult → camelCase JSON-safe dict
  rule_to_legacy_dict    OfferRuleRecord → shape the older admin/frontend
                         screens expect (config values hoisted onto the
                         rule: discountType, discountValue, comboPrice …)

The legacy hoisting lives only here; the engine itself never sees it.
"""
from __future__ import annotations
from decimal import Decimal, InvalidOperation
from typing import Optional

from lenstrack.offers.errors import ValidationError
from lenstrack.offers.types import (
    FrameInput, LensInput, SecondPairInput, PricingRequest, PricingResult,
    OfferType, DiscountType, OFFER_TYPE_CHOICES, to_units,
)


FRAME_TYPES = ('FULL_RIM', 'HALF_RIM', 'RIMLESS')


# ── Request ───────────────────────────────────────────────────────

class _Reader:
    """Collects every field error before raising, like a form validator."""

    def __init__(self):
        self.errors = []

    def error(self, field: str, message: str):
        self.errors.append({'field': field, 'message': message})

    def obj(self, data, key: str, path: str, required: bool = True) -> Optional[dict]:
        value = data.get(key) if isinstance(data, dict) else None
        if value is None:
            if required:
                self.error(path, 'This field is required.')
            return None
        if not isinstance(value, dict):
            self.error(path, 'Must be an object.')
            return None
        return value

    def text(self, data: dict, key: str, path: str, required: bool = False) -> Optional[str]:
        value = data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                self.error(path, 'This field is required.')
            return None
        if not isinstance(value, str):
            self.error(path, 'Must be a string.')
            return None
        return value.strip()

    def amount(self, data: dict, key: str, path: str, required: bool = True,
               positive: bool = False) -> Optional[Decimal]:
        value = data.get(key)
        if value is None or value == '':
            if required:
                self.error(path, 'This field is required.')
            return None
        if isinstance(value, bool):
            self.error(path, 'Must be a number.')
            return None
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            self.error(path, 'Must be a number.')
            return None
        if not amount.is_finite():
            self.error(path, 'Must be a number.')
            return None
        if positive and amount <= 0:
            self.error(path, 'Must be greater than zero.')
        elif amount < 0:
            self.error(path, 'Cannot be negative.')
        return amount

    def flag(self, data: dict, key: str, path: str) -> bool:
        value = data.get(key, False)
        if not isinstance(value, bool):
            self.error(path, 'Must be true or false.')
            return False
        return value


def parse_pricing_request(payload) -> PricingRequest:
    """
    Build a PricingRequest from the JSON body of /api/offers/calculate.

    Raises:
        ValidationError with a list of {field, message} details.
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid input', [{'field': '', 'message': 'Expected a JSON object.'}])

    r = _Reader()
    frame_raw = r.obj(payload, 'frame', 'frame')
    lens_raw = r.obj(payload, 'lens', 'lens')
    pair_raw = r.obj(payload, 'secondPair', 'secondPair', required=False)

    org = r.text(payload, 'organizationId', 'organizationId', required=True)
    category = r.text(payload, 'customerCategory', 'customerCategory')
    coupon_code = r.text(payload, 'couponCode', 'couponCode')
    preferred = r.text(payload, 'preferredOfferType', 'preferredOfferType')
    if preferred and preferred.upper() not in OFFER_TYPE_CHOICES:
        r.error('preferredOfferType', 'Unknown offer type.')

    frame = lens = second_pair = None
    if frame_raw is not None:
        frame_type = r.text(frame_raw, 'frameType', 'frame.frameType')
        if frame_type and frame_type.upper() not in FRAME_TYPES:
            r.error('frame.frameType', f'Must be one of {", ".join(FRAME_TYPES)}.')
        frame = FrameInput(
            brand=r.text(frame_raw, 'brand', 'frame.brand', required=True),
            mrp=r.amount(frame_raw, 'mrp', 'frame.mrp', positive=True),
            sub_category=r.text(frame_raw, 'subCategory', 'frame.subCategory'),
            frame_type=frame_type.upper() if frame_type else None,
        )

    if lens_raw is not None:
        lens = LensInput(
            it_code=r.text(lens_raw, 'itCode', 'lens.itCode', required=True),
            price=r.amount(lens_raw, 'price', 'lens.price', positive=True),
            brand_line=r.text(lens_raw, 'brandLine', 'lens.brandLine', required=True),
            yopo_eligible=r.flag(lens_raw, 'yopoEligible', 'lens.yopoEligible'),
            vision_type=r.text(lens_raw, 'visionType', 'lens.visionType'),
        )

    # The original screens post {"enabled": false} instead of omitting the block.
    if pair_raw is not None and pair_raw.get('enabled', True) is not False:
        second_pair = SecondPairInput(
            first_pair_total=r.amount(pair_raw, 'firstPairTotal', 'secondPair.firstPairTotal',
                                      required=False) or Decimal('0'),
            second_pair_frame_mrp=r.amount(pair_raw, 'secondPairFrameMRP',
                                           'secondPair.secondPairFrameMRP',
                                           required=False) or Decimal('0'),
            second_pair_lens_price=r.amount(pair_raw, 'secondPairLensPrice',
                                            'secondPair.secondPairLensPrice',
                                            required=False) or Decimal('0'),
        )

    if r.errors:
        raise ValidationError('Invalid input', r.errors)

    return PricingRequest(
        frame=frame,
        lens=lens,
        organization_id=org,
        customer_category=category.upper() if category else None,
        coupon_code=coupon_code,
        second_pair=second_pair,
        preferred_offer_type=preferred.upper() if preferred else None,
    )


# ── Result ────────────────────────────────────────────────────────

def money(amount: Optional[Decimal]):
    """Whole amounts as int, anything else as a 2-dp float."""
    if amount is None:
        return None
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount.quantize(Decimal('0.01')))


def result_to_dict(result: PricingResult, combined: bool = False) -> dict:
    data = {
        'frameMRP':       money(result.frame_mrp),
        'lensPrice':      money(result.lens_price),
        'baseTotal':      money(result.base_total),
        'effectiveBase':  money(result.effective_base),
        'offersApplied': [{
            'ruleCode':    o.rule_code,
            'offerType':   o.offer_type,
            'description': o.description,
            'savings':     money(o.savings),
            'isBonus':     o.is_bonus,
        } for o in result.offers_applied],
        'priceComponents': [{
            'label':  c.label,
            'amount': money(c.amount),
        } for c in result.price_components],
        'categoryDiscount': None,
        'couponDiscount':   None,
        'couponError':      result.coupon_error,
        'secondPairDiscount': None,
        'finalPayable':   money(result.final_payable),
        'totalSavings':   money(to_units(result.total_savings)),
        'upsell':         None,
        'availableOffers': [{
            'ruleCode':         a.rule_code,
            'offerType':        a.offer_type,
            'description':      a.description,
            'estimatedSavings': money(to_units(a.estimated_savings)),
        } for a in result.available_offers],
        'warnings': list(result.warnings),
    }
    if result.category_discount:
        cd = result.category_discount
        data['categoryDiscount'] = {
            'ruleCode': cd.rule_code, 'description': cd.description, 'savings': money(cd.savings),
        }
    if result.coupon_discount:
        cp = result.coupon_discount
        data['couponDiscount'] = {
            'code': cp.code, 'description': cp.description, 'savings': money(cp.savings),
        }
    if result.second_pair_discount:
        sp = result.second_pair_discount
        data['secondPairDiscount'] = {
            'ruleCode':    sp.rule_code,
            'description': sp.description,
            'savings':     money(sp.savings),
            'payable':     money(to_units(sp.payable)),
        }
    if result.upsell:
        up = result.upsell
        data['upsell'] = {
            'ruleCode':   up.rule_code,
            'rewardText': up.reward_text,
            'message':    up.message,
            'remaining':  money(up.remaining),
        }
    if combined:
        data['combinedPayable'] = money(result.combined_payable)
    return data


# ── Legacy rule view ──────────────────────────────────────────────

_LEGACY_DISCOUNT_TYPE = {
    OfferType.PERCENT_OFF:       DiscountType.PERCENTAGE,
    OfferType.CATEGORY_DISCOUNT: DiscountType.PERCENTAGE,
    OfferType.FLAT_OFF:          DiscountType.FLAT_AMOUNT,
    OfferType.COMBO_PRICE:       'COMBO_PRICE',
    OfferType.YOPO:              'YOPO_LOGIC',
    OfferType.FREE_LENS:         'FREE_ITEM',
    OfferType.BOG50:             DiscountType.PERCENTAGE,
    OfferType.BONUS_FREE_PRODUCT: 'FREE_ITEM',
}


def rule_to_legacy_dict(record) -> dict:
    """
    Flatten an OfferRuleRecord for the older screens, which read
    discountType/discountValue/comboPrice straight off the rule.
    """
    config = record.config_dict
    rule = record.to_rule()
    data = {
        'id':                 record.id,
        'code':               record.code,
        'name':               record.name,
        'offerType':          record.offer_type,
        'frameBrands':        record.frame_brands_list,
        'frameSubCategories': record.frame_sub_categories_list,
        'lensBrandLines':     record.lens_brand_lines_list,
        'minFrameMRP':        money(rule.min_frame_mrp),
        'maxFrameMRP':        money(rule.max_frame_mrp),
        'priority':           record.priority,
        'isActive':           bool(record.is_active),
        'upsellEnabled':      bool(record.upsell_enabled),
        'upsellThreshold':    money(rule.upsell_threshold),
        'upsellRewardText':   record.upsell_reward_text,
        'isSecondPairRule':   rule.is_second_pair_rule,
        'config':             config,
        'configError':        rule.config_error,
        'discountType':       _LEGACY_DISCOUNT_TYPE.get(record.offer_type),
        'discountValue':      config.get('discountValue', config.get('discountPercent')),
    }
    for key, value in config.items():
        data.setdefault(key, value)
    return data

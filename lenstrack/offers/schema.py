"""
lenstrack/offers/schema.py
--------------------------
Turns the untyped config bag stored with each OfferRule into the typed
config dataclass for its offer type.

Raw keys are camelCase, exactly as the admin screens save them:
  YOPO                → {"freeUnderYopo": "BEST_OF"}
  COMBO_PRICE         → {"comboPrice": 4999, "requiredLensBrandLine": "DIGI360",
                         "lensBrandLineComboPrice": 3999}
  FREE_LENS           → {"freeLensCap": 2000}
  PERCENT_OFF         → {"discountValue": 10, "maxDiscount": 500, "appliesTo": "BASE"}
  FLAT_OFF            → {"discountValue": 500, "minBillValue": 3000}
  BOG50               → {"secondPairPercent": 50}
  CATEGORY_DISCOUNT   → {"eligibleCategories": ["STUDENT"], "discountPercent": 10}
  BONUS_FREE_PRODUCT  → {"triggerMinBill": 5000, "bonusLimit": 1499,
                         "bonusCategory": "SUNGLASS"}

Any type may also carry {"isSecondPairRule": true, "secondPairPercent": 40}.
Unknown keys are ignored. Missing or malformed required keys raise
RuleConfigError, which the repository records on the rule instead of
failing the whole calculation.
"""
from __future__ import annotations
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from lenstrack.offers.errors import RuleConfigError
from lenstrack.offers.types import (
    OfferRule, OfferType, YopoFree, PercentBase, ZERO, HUNDRED,
    OfferConfig, YopoConfig, ComboPriceConfig, FreeLensConfig, PercentOffConfig,
    FlatOffConfig, Bog50Config, CategoryDiscountConfig, BonusFreeProductConfig,
)


logger = logging.getLogger(__name__)

_MISSING = object()


# ── Field readers ─────────────────────────────────────────────────

def _amount(code: str, raw: dict, key: str, required: bool = False,
            default=None) -> Optional[Decimal]:
    value = raw.get(key, _MISSING)
    if value is _MISSING or value is None or value == '':
        if required:
            raise RuleConfigError(code, f'missing required config key "{key}"')
        return default
    if isinstance(value, bool):
        raise RuleConfigError(code, f'"{key}" must be a number')
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise RuleConfigError(code, f'"{key}" must be a number, got {value!r}')
    if not amount.is_finite() or amount < ZERO:
        raise RuleConfigError(code, f'"{key}" must be a non-negative number')
    return amount


def _percent(code: str, raw: dict, key: str, required: bool = False,
             default=None) -> Optional[Decimal]:
    pct = _amount(code, raw, key, required=required, default=default)
    if pct is not None and pct > HUNDRED:
        raise RuleConfigError(code, f'"{key}" must be between 0 and 100')
    return pct


def _text(code: str, raw: dict, key: str, default: Optional[str] = None) -> Optional[str]:
    value = raw.get(key)
    if value is None or value == '':
        return default
    if not isinstance(value, str):
        raise RuleConfigError(code, f'"{key}" must be a string')
    return value.strip()


def _choice(code: str, raw: dict, key: str, choices: Tuple[str, ...], default: str) -> str:
    value = _text(code, raw, key, default)
    value = value.upper()
    if value not in choices:
        raise RuleConfigError(code, f'"{key}" must be one of {", ".join(choices)}')
    return value


def _str_list(code: str, raw: dict, key: str, required: bool = False) -> Tuple[str, ...]:
    value = raw.get(key)
    if value is None:
        if required:
            raise RuleConfigError(code, f'missing required config key "{key}"')
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise RuleConfigError(code, f'"{key}" must be a list of strings')
    items = tuple(v.strip() for v in value if v.strip())
    if required and not items:
        raise RuleConfigError(code, f'"{key}" must not be empty')
    return items


# ── Per-type parsers ──────────────────────────────────────────────

def _yopo(code, raw):
    return YopoConfig(
        free_under_yopo=_choice(code, raw, 'freeUnderYopo',
                                (YopoFree.BEST_OF, YopoFree.FRAME, YopoFree.LENS),
                                YopoFree.BEST_OF),
    )


def _combo_price(code, raw):
    return ComboPriceConfig(
        combo_price=_amount(code, raw, 'comboPrice', required=True),
        required_frame_sub_category=_text(code, raw, 'requiredFrameSubCategory'),
        frame_sub_category_combo_price=_amount(code, raw, 'frameSubCategoryComboPrice'),
        required_lens_brand_line=_text(code, raw, 'requiredLensBrandLine'),
        lens_brand_line_combo_price=_amount(code, raw, 'lensBrandLineComboPrice'),
        required_vision_type=_text(code, raw, 'requiredVisionType'),
        vision_type_combo_price=_amount(code, raw, 'visionTypeComboPrice'),
    )


def _free_lens(code, raw):
    return FreeLensConfig(free_lens_cap=_amount(code, raw, 'freeLensCap', required=True))


def _percent_off(code, raw):
    return PercentOffConfig(
        discount_value=_percent(code, raw, 'discountValue', required=True),
        max_discount=_amount(code, raw, 'maxDiscount'),
        applies_to=_choice(code, raw, 'appliesTo',
                           (PercentBase.BASE, PercentBase.FRAME_ONLY, PercentBase.LENS_ONLY),
                           PercentBase.BASE),
    )


def _flat_off(code, raw):
    return FlatOffConfig(
        discount_value=_amount(code, raw, 'discountValue', required=True),
        min_bill_value=_amount(code, raw, 'minBillValue', default=ZERO),
    )


def _bog50(code, raw):
    return Bog50Config(
        second_pair_percent=_percent(code, raw, 'secondPairPercent', default=Decimal('50')),
    )


def _category_discount(code, raw):
    return CategoryDiscountConfig(
        eligible_categories=tuple(c.upper() for c in
                                  _str_list(code, raw, 'eligibleCategories', required=True)),
        discount_percent=_percent(code, raw, 'discountPercent', required=True),
        max_discount=_amount(code, raw, 'maxDiscount'),
    )


def _bonus_free_product(code, raw):
    return BonusFreeProductConfig(
        trigger_min_bill=_amount(code, raw, 'triggerMinBill', required=True),
        bonus_limit=_amount(code, raw, 'bonusLimit', required=True),
        bonus_category=_text(code, raw, 'bonusCategory', 'ACCESSORY'),
        eligible_brands=_str_list(code, raw, 'eligibleBrands'),
        eligible_categories=_str_list(code, raw, 'eligibleCategories'),
    )


_PARSERS = {
    OfferType.YOPO:               _yopo,
    OfferType.COMBO_PRICE:        _combo_price,
    OfferType.FREE_LENS:          _free_lens,
    OfferType.PERCENT_OFF:        _percent_off,
    OfferType.FLAT_OFF:           _flat_off,
    OfferType.BOG50:              _bog50,
    OfferType.CATEGORY_DISCOUNT:  _category_discount,
    OfferType.BONUS_FREE_PRODUCT: _bonus_free_product,
}


# ── Public API ────────────────────────────────────────────────────

def parse_config(code: str, offer_type: str, raw) -> OfferConfig:
    """Validate `raw` against the schema of `offer_type`."""
    parser = _PARSERS.get(offer_type)
    if parser is None:
        raise RuleConfigError(code, f'unknown offer type "{offer_type}"')
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise RuleConfigError(code, 'config must be a JSON object')
    return parser(code, raw)


def parse_second_pair(code: str, raw) -> Tuple[bool, Decimal]:
    """Return (is_second_pair_rule, second_pair_percent) for any offer type."""
    if not isinstance(raw, dict):
        return False, Decimal('50')
    flag = raw.get('isSecondPairRule', False)
    if not isinstance(flag, bool):
        raise RuleConfigError(code, '"isSecondPairRule" must be true or false')
    pct = _percent(code, raw, 'secondPairPercent', default=Decimal('50'))
    return flag, pct


def build_rule(code: str, offer_type: str, organization_id: str, config=None,
               **fields) -> OfferRule:
    """
    Build a typed OfferRule from a raw config bag.

    A bad config does not raise: the rule is returned with config=None and
    config_error set, so the matcher can skip it and tell the caller why.
    """
    try:
        typed = parse_config(code, offer_type, config)
        is_second_pair, second_pair_pct = parse_second_pair(code, config)
    except RuleConfigError as e:
        logger.warning('Invalid offer rule config: %s', e.message)
        return OfferRule(code=code, offer_type=offer_type,
                         organization_id=organization_id,
                         config_error=e.message, **fields)

    return OfferRule(code=code, offer_type=offer_type,
                     organization_id=organization_id, config=typed,
                     is_second_pair_rule=is_second_pair,
                     second_pair_percent=second_pair_pct, **fields)

"""
test_offer_rules.py — Tests for rule config parsing and eligibility matching.
Run: pytest test_offer_rules.py -v
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from lenstrack.offers.errors import RuleConfigError
from lenstrack.offers.matcher import in_filter, match
from lenstrack.offers.schema import build_rule, parse_config, parse_second_pair
from lenstrack.offers.types import (
    ComboPriceConfig, FrameInput, LensInput, PricingRequest, PercentOffConfig,
)


ORG = 'org-1'
NOW = datetime(2026, 1, 15, 12, 0)


def make_request(brand='LENSTRACK', frame_mrp='2500', sub_category=None,
                 brand_line='BLUEXPERT'):
    return PricingRequest(
        frame=FrameInput(brand=brand, mrp=Decimal(frame_mrp), sub_category=sub_category),
        lens=LensInput(it_code='LX-100', price=Decimal('4000'), brand_line=brand_line),
        organization_id=ORG,
    )


def make_rule(code='R1', offer_type='FLAT_OFF', config=None, **fields):
    return build_rule(code, offer_type, ORG,
                      config=config if config is not None else {'discountValue': 100},
                      **fields)


def eligible_codes(rules, request):
    return [r.code for r in match(rules, request, NOW).eligible]


# ── 1. Config parsing ─────────────────────────────────────────────

def test_parse_combo_config():
    cfg = parse_config('C1', 'COMBO_PRICE', {
        'comboPrice': '4999', 'requiredLensBrandLine': ' DIGI360 ',
        'lensBrandLineComboPrice': 3999, 'legacyField': 'ignored',
    })
    assert isinstance(cfg, ComboPriceConfig)
    assert cfg.combo_price == Decimal('4999')
    assert cfg.required_lens_brand_line == 'DIGI360'
    assert cfg.frame_sub_category_combo_price is None


def test_parse_percent_off_defaults():
    cfg = parse_config('P1', 'PERCENT_OFF', {'discountValue': 12.5})
    assert isinstance(cfg, PercentOffConfig)
    assert cfg.discount_value == Decimal('12.5')
    assert cfg.max_discount is None
    assert cfg.applies_to == 'BASE'


def test_parse_category_uppercases_categories():
    cfg = parse_config('S1', 'CATEGORY_DISCOUNT',
                       {'eligibleCategories': ['student', 'Senior_Citizen'], 'discountPercent': 10})
    assert cfg.eligible_categories == ('STUDENT', 'SENIOR_CITIZEN')


@pytest.mark.parametrize('offer_type, raw, fragment', [
    ('COMBO_PRICE',        {},                                       'comboPrice'),
    ('FREE_LENS',          {'freeLensCap': -1},                      'non-negative'),
    ('PERCENT_OFF',        {'discountValue': 150},                   'between 0 and 100'),
    ('PERCENT_OFF',        {'discountValue': True},                  'must be a number'),
    ('FLAT_OFF',           {'discountValue': 'abc'},                 'must be a number'),
    ('YOPO',               {'freeUnderYopo': 'BOTH'},                'freeUnderYopo'),
    ('CATEGORY_DISCOUNT',  {'eligibleCategories': [], 'discountPercent': 5}, 'must not be empty'),
    ('BONUS_FREE_PRODUCT', {'triggerMinBill': 5000},                 'bonusLimit'),
    ('SPIN_THE_WHEEL',     {},                                       'unknown offer type'),
])
def test_bad_config_raises(offer_type, raw, fragment):
    with pytest.raises(RuleConfigError) as exc:
        parse_config('BAD', offer_type, raw)
    assert fragment in exc.value.message
    assert exc.value.rule_code == 'BAD'


def test_config_must_be_object():
    with pytest.raises(RuleConfigError):
        parse_config('BAD', 'YOPO', ['not', 'a', 'dict'])


def test_second_pair_flag_parsed_for_any_type():
    assert parse_second_pair('R', {'isSecondPairRule': True, 'secondPairPercent': 40}) == \
        (True, Decimal('40'))
    assert parse_second_pair('R', {}) == (False, Decimal('50'))
    with pytest.raises(RuleConfigError):
        parse_second_pair('R', {'isSecondPairRule': 'yes'})


def test_build_rule_records_config_error():
    rule = build_rule('BROKEN', 'FREE_LENS', ORG, config={})
    assert rule.config is None
    assert 'freeLensCap' in rule.config_error


def test_build_rule_keeps_fields():
    rule = build_rule('BOG', 'BOG50', ORG, config={'isSecondPairRule': True},
                      priority=5, frame_brands=('RAYBAN',))
    assert rule.config_error is None
    assert rule.is_second_pair_rule is True
    assert rule.priority == 5
    assert rule.frame_brands == ('RAYBAN',)


# ── 2. Filters ────────────────────────────────────────────────────

def test_in_filter_wildcards_and_case():
    assert in_filter((), 'ANY')
    assert in_filter(('*',), None)
    assert in_filter(('rayban',), 'RayBan')
    assert not in_filter(('RAYBAN',), None)
    assert not in_filter(('RAYBAN',), 'LENSTRACK')


def test_or_within_field_and_across_fields():
    rule = make_rule(frame_brands=('RAYBAN', 'LENSTRACK'), lens_brand_lines=('DIGI360',))
    assert eligible_codes([rule], make_request(brand_line='BLUEXPERT')) == []
    assert eligible_codes([rule], make_request(brand_line='DIGI360')) == ['R1']


def test_sub_category_filter_needs_sub_category():
    rule = make_rule(frame_sub_categories=('ESSENTIAL',))
    assert eligible_codes([rule], make_request()) == []
    assert eligible_codes([rule], make_request(sub_category='essential')) == ['R1']


def test_mrp_bounds_inclusive():
    assert eligible_codes([make_rule(min_frame_mrp=Decimal('2500'))], make_request()) == ['R1']
    assert eligible_codes([make_rule(max_frame_mrp=Decimal('2500'))], make_request()) == ['R1']
    assert eligible_codes([make_rule(max_frame_mrp=Decimal('2499'))], make_request()) == []
    assert eligible_codes([make_rule(min_frame_mrp=Decimal('2501'))], make_request()) == []


def test_validity_window_inclusive():
    rule = make_rule(valid_from=NOW, valid_until=NOW)
    assert eligible_codes([rule], make_request()) == ['R1']
    later = make_rule(valid_from=NOW + timedelta(seconds=1))
    assert eligible_codes([later], make_request()) == []


def test_eligible_sorted_by_priority_then_code():
    rules = [
        make_rule('ZETA', priority=5),
        make_rule('BETA', priority=10),
        make_rule('ALPHA', priority=10),
    ]
    assert eligible_codes(rules, make_request()) == ['ZETA', 'ALPHA', 'BETA']


def test_config_error_becomes_warning():
    rules = [make_rule('GOOD'), make_rule('BROKEN', 'FREE_LENS', {})]
    result = match(rules, make_request(), NOW)
    assert [r.code for r in result.eligible] == ['GOOD']
    assert result.warnings[0].startswith('Offer BROKEN skipped:')

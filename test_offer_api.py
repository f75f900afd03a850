"""
test_offer_api.py — Tests for the /api/offers routes, the rule repository
and the seed CLI.
Run: pytest test_offer_api.py -v
"""
import json
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from lenstrack import create_app, db
from lenstrack.offers.models import OfferRuleRecord, CouponRecord
from lenstrack.offers.repository import find_coupon, get_active_rules


ORG = 'org-1'


# ── Fixtures ──────────────────────────────────────────────────────

@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_rule(code, offer_type, config=None, **kwargs):
    defaults = dict(organization_id=ORG, priority=100, is_active=True)
    defaults.update(kwargs)
    rule = OfferRuleRecord(code=code, offer_type=offer_type,
                           config=json.dumps(config or {}), **defaults)
    db.session.add(rule)
    db.session.commit()
    return rule


def make_coupon(code='WELCOME10', discount_type='PERCENTAGE', value=10, **kwargs):
    defaults = dict(organization_id=ORG, valid_from=datetime.utcnow() - timedelta(days=1))
    defaults.update(kwargs)
    coupon = CouponRecord(code=code, discount_type=discount_type,
                          discount_value=Decimal(str(value)), **defaults)
    db.session.add(coupon)
    db.session.commit()
    return coupon


def payload(**overrides):
    body = {
        'organizationId': ORG,
        'frame': {'brand': 'LENSTRACK', 'mrp': 2500, 'subCategory': 'ESSENTIAL'},
        'lens': {'itCode': 'LX-100', 'price': 4000, 'brandLine': 'BLUEXPERT',
                 'yopoEligible': True},
    }
    body.update(overrides)
    return body


def post(client, body, query=''):
    return client.post(f'/api/offers/calculate{query}', json=body)


# ── 1. Calculate ──────────────────────────────────────────────────

def test_calculate_without_rules(client):
    resp = post(client, payload())
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    data = body['data']
    assert data['baseTotal'] == 6500
    assert data['finalPayable'] == 6500
    assert data['offersApplied'] == []
    assert data['priceComponents'][-1] == {'label': 'Final Payable', 'amount': 6500}
    assert 'combinedPayable' not in data


def test_calculate_applies_yopo(client):
    make_rule('YOPO_ALL', 'YOPO', priority=20)
    data = post(client, payload()).get_json()['data']
    assert data['offersApplied'][0]['ruleCode'] == 'YOPO_ALL'
    assert data['offersApplied'][0]['savings'] == 2500
    assert data['finalPayable'] == 4000
    assert data['totalSavings'] == 2500


def test_calculate_uses_lowest_priority_rule(client):
    make_rule('YOPO_ALL', 'YOPO', priority=20)
    make_rule('COMBO', 'COMBO_PRICE', {'comboPrice': 4999}, priority=10,
              frame_sub_categories=json.dumps(['ESSENTIAL']))
    data = post(client, payload()).get_json()['data']
    assert [o['ruleCode'] for o in data['offersApplied']] == ['COMBO']
    assert data['finalPayable'] == 4999
    assert {a['ruleCode'] for a in data['availableOffers']} == {'COMBO', 'YOPO_ALL'}


def test_calculate_ignores_other_org_and_inactive(client):
    make_rule('OTHER', 'FLAT_OFF', {'discountValue': 500}, organization_id='org-2')
    make_rule('OFF', 'FLAT_OFF', {'discountValue': 500}, is_active=False)
    make_rule('EXPIRED', 'FLAT_OFF', {'discountValue': 500},
              valid_until=datetime.utcnow() - timedelta(days=1))
    data = post(client, payload()).get_json()['data']
    assert data['offersApplied'] == []


def test_calculate_with_coupon_lowercase(client):
    make_coupon('WELCOME10', 'PERCENTAGE', 10, max_discount=Decimal('300'))
    data = post(client, payload(couponCode='welcome10')).get_json()['data']
    assert data['couponDiscount']['code'] == 'WELCOME10'
    assert data['couponDiscount']['savings'] == 300
    assert data['couponError'] is None
    assert data['finalPayable'] == 6200


def test_calculate_expired_coupon_still_200(client):
    make_coupon('OLD', 'FLAT_AMOUNT', 200, valid_until=datetime.utcnow() - timedelta(days=1))
    resp = post(client, payload(couponCode='OLD'))
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['couponDiscount'] is None
    assert 'has expired' in data['couponError']
    assert data['finalPayable'] == 6500


def test_calculate_unknown_coupon(client):
    data = post(client, payload(couponCode='NOPE')).get_json()['data']
    assert 'not found' in data['couponError']


def test_calculate_category_discount(client):
    make_rule('STUDENT10', 'CATEGORY_DISCOUNT',
              {'eligibleCategories': ['STUDENT'], 'discountPercent': 10, 'maxDiscount': 500})
    data = post(client, payload(customerCategory='student')).get_json()['data']
    assert data['categoryDiscount']['savings'] == 500
    assert data['finalPayable'] == 6000


def test_calculate_reports_bad_rule_config(client):
    make_rule('BROKEN', 'PERCENT_OFF', {'maxDiscount': 100})
    resp = post(client, payload())
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert len(data['warnings']) == 1
    assert 'BROKEN' in data['warnings'][0]


def test_calculate_second_pair_combined(client):
    make_rule('BOG50_SECOND', 'BOG50', {'isSecondPairRule': True, 'secondPairPercent': 50})
    body = payload(secondPair={'enabled': True, 'firstPairTotal': 6500,
                               'secondPairFrameMRP': 2000, 'secondPairLensPrice': 3000})

    data = post(client, body).get_json()['data']
    assert data['secondPairDiscount']['savings'] == 1000
    assert data['secondPairDiscount']['payable'] == 4000
    assert data['finalPayable'] == 6500
    assert 'combinedPayable' not in data

    data = post(client, body, '?combined=1').get_json()['data']
    assert data['combinedPayable'] == 10500


def test_calculate_second_pair_disabled(client):
    make_rule('BOG50_SECOND', 'BOG50', {'isSecondPairRule': True})
    data = post(client, payload(secondPair={'enabled': False})).get_json()['data']
    assert data['secondPairDiscount'] is None


def test_calculate_upsell(client):
    make_rule('BONUS_SUNGLASS', 'BONUS_FREE_PRODUCT',
              {'triggerMinBill': 8000, 'bonusLimit': 1499, 'bonusCategory': 'SUNGLASS'},
              upsell_enabled=True, upsell_threshold=Decimal('8000'),
              upsell_reward_text='FREE Sunglasses worth ₹1499')
    data = post(client, payload()).get_json()['data']
    assert data['upsell']['remaining'] == 1500
    assert data['upsell']['message'] == 'Add ₹1500 more to unlock FREE Sunglasses worth ₹1499'


# ── 2. Validation errors ──────────────────────────────────────────

def test_calculate_rejects_zero_mrp(client):
    body = payload(frame={'brand': 'LENSTRACK', 'mrp': 0})
    resp = post(client, body)
    assert resp.status_code == 400
    err = resp.get_json()
    assert err['success'] is False
    assert err['error']['message'] == 'Invalid input'
    assert {d['field'] for d in err['error']['details']} == {'frame.mrp'}


def test_calculate_collects_every_field_error(client):
    resp = post(client, {'frame': {'mrp': 'abc'}, 'lens': {'price': -5}})
    assert resp.status_code == 400
    fields = {d['field'] for d in resp.get_json()['error']['details']}
    assert {'organizationId', 'frame.brand', 'frame.mrp',
            'lens.itCode', 'lens.price', 'lens.brandLine'} <= fields


def test_calculate_rejects_non_json(client):
    resp = client.post('/api/offers/calculate', data='not json', content_type='text/plain')
    assert resp.status_code == 400
    assert resp.get_json()['success'] is False


def test_calculate_rejects_unknown_preferred_type(client):
    resp = post(client, payload(preferredOfferType='MYSTERY'))
    assert resp.status_code == 400


def test_calculate_uses_default_org(app, client):
    app.config['OFFERS_DEFAULT_ORGANIZATION'] = ORG
    make_rule('FLAT500', 'FLAT_OFF', {'discountValue': 500})
    body = payload()
    del body['organizationId']
    data = post(client, body).get_json()['data']
    assert data['finalPayable'] == 6000


# ── 3. Rules listing ──────────────────────────────────────────────

def test_rules_legacy_view(client):
    make_rule('COMBO', 'COMBO_PRICE', {'comboPrice': 4999}, name='Combo')
    make_rule('PCT10', 'PERCENT_OFF', {'discountValue': 10}, priority=5)
    resp = client.get(f'/api/offers/rules?organizationId={ORG}')
    assert resp.status_code == 200
    rules = resp.get_json()['data']
    assert [r['code'] for r in rules] == ['PCT10', 'COMBO']
    assert rules[0]['discountType'] == 'PERCENTAGE'
    assert rules[0]['discountValue'] == 10
    assert rules[1]['comboPrice'] == 4999
    assert rules[1]['configError'] is None


def test_rules_requires_org(client):
    resp = client.get('/api/offers/rules')
    assert resp.status_code == 400


def test_health(client):
    assert client.get('/health').get_json() == {'status': 'ok'}


# ── 4. Repository ─────────────────────────────────────────────────

def test_find_coupon_case_insensitive(app):
    make_coupon('FLAT200', 'FLAT_AMOUNT', 200)
    coupon = find_coupon(ORG, ' flat200 ')
    assert coupon.code == 'FLAT200'
    assert coupon.discount_value == Decimal('200')
    assert find_coupon('org-2', 'FLAT200') is None
    assert find_coupon(ORG, '') is None


def test_find_coupon_returns_inactive(app):
    make_coupon('OFF', 'FLAT_AMOUNT', 100, is_active=False)
    assert find_coupon(ORG, 'OFF').is_active is False


def test_get_active_rules_typed(app):
    make_rule('FLAT500', 'FLAT_OFF', {'discountValue': 500},
              frame_brands=json.dumps(['LENSTRACK']), min_frame_mrp=Decimal('1000'))
    make_rule('BROKEN', 'FREE_LENS', {})
    rules = {r.code: r for r in get_active_rules(ORG)}
    assert rules['FLAT500'].config.discount_value == Decimal('500')
    assert rules['FLAT500'].frame_brands == ('LENSTRACK',)
    assert rules['FLAT500'].min_frame_mrp == Decimal('1000')
    assert rules['BROKEN'].config is None
    assert rules['BROKEN'].config_error


# ── 5. CLI ────────────────────────────────────────────────────────

def test_seed_offers_command(app, client):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['seed-offers', '--org', ORG])
    assert result.exit_code == 0
    assert 'Seeded 8' in result.output

    again = runner.invoke(args=['seed-offers', '--org', ORG])
    assert 'Seeded 0' in again.output

    # demo set: Essential frame + BlueXpert lens → tiered combo 3999
    data = post(client, payload()).get_json()['data']
    assert data['offersApplied'][0]['ruleCode'] == 'COMBO_ESSENTIAL'
    assert data['finalPayable'] == 3999


def test_list_rules_command(app):
    make_rule('BROKEN', 'FREE_LENS', {})
    result = app.test_cli_runner().invoke(args=['list-rules', '--org', ORG])
    assert result.exit_code == 0
    assert 'BROKEN' in result.output
    assert 'invalid' in result.output

"""
lenstrack/offers/routes.py
--------------------------
JSON routes around the offer engine.

Every response has the shape:
    {"success": true,  "data": {...}}
    {"success": false, "error": {"message": str, "details": ...}}
"""
from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from lenstrack.offers import offers
from lenstrack.offers.engine import calculate
from lenstrack.offers.errors import OfferEngineError
from lenstrack.offers.repository import active_rule_records, find_coupon, get_active_rules
from lenstrack.offers.serializers import (
    parse_pricing_request, result_to_dict, rule_to_legacy_dict,
)


def _ok(data, status=200):
    return jsonify({'success': True, 'data': data}), status


def _fail(message, details=None, status=400):
    return jsonify({'success': False, 'error': {'message': message, 'details': details}}), status


def _wants_combined() -> bool:
    flag = request.args.get('combined')
    if flag is None:
        return current_app.config.get('OFFERS_COMBINE_SECOND_PAIR', False)
    return flag.lower() in ('1', 'true', 'yes', 'on')


@offers.errorhandler(OfferEngineError)
def handle_engine_error(e):
    current_app.logger.warning('Offer request rejected: %s %s', e.message, e.details)
    return _fail(e.message, e.details, e.status_code)


@offers.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return _fail(e.description, status=e.code)
    current_app.logger.exception('Offer calculation failed')
    return _fail('Could not calculate offers. Please try again.', status=500)


# ── Calculate ─────────────────────────────────────────────────────

@offers.route('/calculate', methods=['POST'])
def calculate_offers():
    """
    Body: camelCase pricing request (frame, lens, organizationId, …).
    Query: ?combined=1 adds combinedPayable (first + second pair).
    """
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and not payload.get('organizationId'):
        default_org = current_app.config.get('OFFERS_DEFAULT_ORGANIZATION')
        if default_org:
            payload = dict(payload, organizationId=default_org)

    pricing_request = parse_pricing_request(payload)

    rules = get_active_rules(pricing_request.organization_id)
    coupon = find_coupon(pricing_request.organization_id, pricing_request.coupon_code)

    result = calculate(pricing_request, rules, coupon)
    return _ok(result_to_dict(result, combined=_wants_combined()))


# ── Rules (legacy read-only view) ─────────────────────────────────

@offers.route('/rules')
def list_rules():
    org = request.args.get('organizationId') or current_app.config.get('OFFERS_DEFAULT_ORGANIZATION')
    if not org:
        return _fail('Invalid input', [{'field': 'organizationId',
                                        'message': 'This field is required.'}])
    records = active_rule_records(org)
    return _ok([rule_to_legacy_dict(r) for r in records])

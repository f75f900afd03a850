"""
lenstrack/offers/matcher.py
---------------------------
Eligibility Matcher: filters OfferRules against a PricingRequest.

Filter semantics:
  - a rule matches only if every non-empty filter field is satisfied
    (AND across fields)
  - inside one list field any entry may match (OR within the field);
    "*" matches everything
  - empty lists and unset MRP bounds impose no constraint

No DB access; skipped rules are logged at WARNING.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from lenstrack.offers.errors import ValidationError
from lenstrack.offers.types import OfferRule, PricingRequest, ZERO


logger = logging.getLogger(__name__)

WILDCARD = '*'


@dataclass(frozen=True)
class MatchResult:
    eligible: Tuple[OfferRule, ...]
    warnings: Tuple[str, ...] = ()


# ── Request validation ────────────────────────────────────────────

def validate_request(request: PricingRequest) -> None:
    """
    Reject requests the engine cannot safely price.

    Raises:
        ValidationError with `details` as a list of {field, message}.
    """
    errors = []

    if not request.organization_id or not str(request.organization_id).strip():
        errors.append({'field': 'organizationId', 'message': 'Organization is required.'})

    frame = request.frame
    if frame is None:
        errors.append({'field': 'frame', 'message': 'Frame is required.'})
    else:
        if not frame.brand or not frame.brand.strip():
            errors.append({'field': 'frame.brand', 'message': 'Frame brand is required.'})
        if not _is_positive(frame.mrp):
            errors.append({'field': 'frame.mrp', 'message': 'Frame MRP must be greater than zero.'})

    lens = request.lens
    if lens is None:
        errors.append({'field': 'lens', 'message': 'Lens is required.'})
    elif not _is_positive(lens.price):
        errors.append({'field': 'lens.price', 'message': 'Lens price must be greater than zero.'})

    pair = request.second_pair
    if pair is not None:
        for name, value in (('firstPairTotal', pair.first_pair_total),
                            ('secondPairFrameMRP', pair.second_pair_frame_mrp),
                            ('secondPairLensPrice', pair.second_pair_lens_price)):
            if not _is_non_negative(value):
                errors.append({'field': f'secondPair.{name}',
                               'message': 'Amount cannot be negative.'})

    if errors:
        raise ValidationError('Invalid pricing request', errors)


def _is_positive(value) -> bool:
    return isinstance(value, Decimal) and value.is_finite() and value > ZERO


def _is_non_negative(value) -> bool:
    return isinstance(value, Decimal) and value.is_finite() and value >= ZERO


# ── Filters ───────────────────────────────────────────────────────

def in_filter(allowed: Iterable[str], value: Optional[str]) -> bool:
    """True if `allowed` is empty, contains "*", or contains `value` (case-insensitive)."""
    allowed = [a.upper() for a in allowed]
    if not allowed or WILDCARD in allowed:
        return True
    return value is not None and value.strip().upper() in allowed


def is_live(rule: OfferRule, organization_id: str, now: datetime) -> bool:
    """Active, in the right organization and inside its validity window."""
    if not rule.is_active or rule.organization_id != organization_id:
        return False
    if rule.valid_from and now < rule.valid_from:
        return False
    if rule.valid_until and now > rule.valid_until:
        return False
    return True


def matches_filters(rule: OfferRule, request: PricingRequest) -> bool:
    frame, lens = request.frame, request.lens

    if not in_filter(rule.frame_brands, frame.brand):
        return False
    if not in_filter(rule.frame_sub_categories, frame.sub_category):
        return False
    if not in_filter(rule.lens_brand_lines, lens.brand_line):
        return False
    if rule.min_frame_mrp is not None and frame.mrp < rule.min_frame_mrp:
        return False
    if rule.max_frame_mrp is not None and frame.mrp > rule.max_frame_mrp:
        return False
    return True


# ── Main public function ──────────────────────────────────────────

def match(rules: Iterable[OfferRule], request: PricingRequest,
          now: Optional[datetime] = None) -> MatchResult:
    """
    Return the rules eligible for `request`, sorted by (priority, code).

    A rule that passes every filter but whose config failed validation is
    left out and reported in `warnings`.
    """
    validate_request(request)
    now = now or datetime.utcnow()

    eligible: List[OfferRule] = []
    warnings: List[str] = []

    for rule in rules:
        if not is_live(rule, request.organization_id, now):
            continue
        if not matches_filters(rule, request):
            continue
        if rule.config is None:
            reason = rule.config_error or 'config missing'
            warnings.append(f'Offer {rule.code} skipped: {reason}')
            logger.warning('Skipping rule %s: %s', rule.code, reason)
            continue
        eligible.append(rule)

    eligible.sort(key=lambda r: r.sort_key)
    return MatchResult(eligible=tuple(eligible), warnings=tuple(warnings))

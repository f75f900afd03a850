"""
lenstrack/offers/repository.py
------------------------------
Rule Repository: reads active rules and coupons for one organization and
hands them to the engine as typed, frozen records.

Read-only. Date windows are still checked again inside the engine, so a
cached rule list stays correct across midnight.
"""
from datetime import datetime
from typing import List, Optional

from lenstrack import db
from lenstrack.offers.models import OfferRuleRecord, CouponRecord
from lenstrack.offers.types import Coupon, OfferRule


def active_rule_records(organization_id: str, now: Optional[datetime] = None) -> List[OfferRuleRecord]:
    """All currently date-valid active rule rows, ordered by (priority, code)."""
    now = now or datetime.utcnow()
    return OfferRuleRecord.query.filter(
        OfferRuleRecord.organization_id == organization_id,
        OfferRuleRecord.is_active == True,  # noqa: E712
        db.or_(OfferRuleRecord.valid_from.is_(None),  OfferRuleRecord.valid_from <= now),
        db.or_(OfferRuleRecord.valid_until.is_(None), OfferRuleRecord.valid_until >= now),
    ).order_by(OfferRuleRecord.priority, OfferRuleRecord.code).all()


def get_active_rules(organization_id: str, now: Optional[datetime] = None) -> List[OfferRule]:
    return [r.to_rule() for r in active_rule_records(organization_id, now)]


def find_coupon(organization_id: str, code: Optional[str]) -> Optional[Coupon]:
    """
    Case-insensitive exact lookup. Inactive and expired coupons are returned
    too, so the engine can tell the customer why the code was refused.
    """
    if not code or not code.strip():
        return None
    record = CouponRecord.query.filter(
        CouponRecord.organization_id == organization_id,
        db.func.upper(CouponRecord.code) == code.strip().upper(),
    ).first()
    return record.to_coupon() if record else None

"""
lenstrack/offers/models.py
--------------------------
OfferRuleRecord and CouponRecord tables.

List filters and the rule config are JSON-encoded text, the same way the
admin screens post them. to_rule() / to_coupon() turn a row into the
frozen records the engine works with; config validation happens there,
once, at the repository boundary.
"""
import json
from datetime import datetime
from decimal import Decimal

from lenstrack import db
from lenstrack.offers.schema import build_rule
from lenstrack.offers.types import Coupon


def _loads_list(raw) -> list:
    try:
        value = json.loads(raw or '[]')
    except (ValueError, TypeError):
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


def _dec(value):
    return None if value is None else Decimal(str(value))


class OfferRuleRecord(db.Model):
    """A configurable offer rule, scoped to one organization."""
    __tablename__ = 'offer_rules'
    __table_args__ = (db.UniqueConstraint('organization_id', 'code', name='uq_offer_rule_org_code'),)

    id                   = db.Column(db.Integer, primary_key=True)
    organization_id      = db.Column(db.String(64),  nullable=False, index=True)
    code                 = db.Column(db.String(64),  nullable=False)
    name                 = db.Column(db.String(200), nullable=True)
    offer_type           = db.Column(db.String(30),  nullable=False)   # see OFFER_TYPE_CHOICES
    frame_brands         = db.Column(db.Text, nullable=False, default='[]')   # JSON list
    frame_sub_categories = db.Column(db.Text, nullable=False, default='[]')   # JSON list
    lens_brand_lines     = db.Column(db.Text, nullable=False, default='[]')   # JSON list
    min_frame_mrp        = db.Column(db.Numeric(12, 2), nullable=True)
    max_frame_mrp        = db.Column(db.Numeric(12, 2), nullable=True)
    config               = db.Column(db.Text, nullable=False, default='{}')   # JSON object
    priority             = db.Column(db.Integer, nullable=False, default=100)
    is_active            = db.Column(db.Boolean, nullable=False, default=True)
    valid_from           = db.Column(db.DateTime, nullable=True)    # None = always eligible
    valid_until          = db.Column(db.DateTime, nullable=True)    # None = never expires
    upsell_enabled       = db.Column(db.Boolean, nullable=False, default=False)
    upsell_threshold     = db.Column(db.Numeric(12, 2), nullable=True)
    upsell_reward_text   = db.Column(db.String(300), nullable=True)
    created_at           = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # ── Helpers ───────────────────────────────────────────────────

    @property
    def config_dict(self) -> dict:
        try:
            value = json.loads(self.config or '{}')
        except (ValueError, TypeError):
            return {}
        return value if isinstance(value, dict) else {}

    @config_dict.setter
    def config_dict(self, value: dict):
        self.config = json.dumps(value)

    @property
    def frame_brands_list(self) -> list:
        return _loads_list(self.frame_brands)

    @frame_brands_list.setter
    def frame_brands_list(self, value: list):
        self.frame_brands = json.dumps(list(value or []))

    @property
    def frame_sub_categories_list(self) -> list:
        return _loads_list(self.frame_sub_categories)

    @frame_sub_categories_list.setter
    def frame_sub_categories_list(self, value: list):
        self.frame_sub_categories = json.dumps(list(value or []))

    @property
    def lens_brand_lines_list(self) -> list:
        return _loads_list(self.lens_brand_lines)

    @lens_brand_lines_list.setter
    def lens_brand_lines_list(self, value: list):
        self.lens_brand_lines = json.dumps(list(value or []))

    def to_rule(self):
        """Typed OfferRule for the engine; a bad config is recorded, not raised."""
        return build_rule(
            self.code,
            self.offer_type,
            self.organization_id,
            config=self.config_dict,
            frame_brands=tuple(self.frame_brands_list),
            frame_sub_categories=tuple(self.frame_sub_categories_list),
            lens_brand_lines=tuple(self.lens_brand_lines_list),
            min_frame_mrp=_dec(self.min_frame_mrp),
            max_frame_mrp=_dec(self.max_frame_mrp),
            priority=self.priority if self.priority is not None else 100,
            is_active=bool(self.is_active),
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            upsell_enabled=bool(self.upsell_enabled),
            upsell_threshold=_dec(self.upsell_threshold),
            upsell_reward_text=self.upsell_reward_text,
        )

    def __repr__(self):
        return f'<OfferRule {self.code!r} {self.offer_type} org={self.organization_id}>'


class CouponRecord(db.Model):
    """A coupon code a customer can type at checkout."""
    __tablename__ = 'coupons'
    __table_args__ = (db.UniqueConstraint('organization_id', 'code', name='uq_coupon_org_code'),)

    id              = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(64), nullable=False, index=True)
    code            = db.Column(db.String(64), nullable=False)    # stored upper-case
    discount_type   = db.Column(db.String(20), nullable=False)    # PERCENTAGE | FLAT_AMOUNT
    discount_value  = db.Column(db.Numeric(12, 2), nullable=False)
    max_discount    = db.Column(db.Numeric(12, 2), nullable=True)  # cap for PERCENTAGE
    min_cart_value  = db.Column(db.Numeric(12, 2), nullable=True)
    valid_from      = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    valid_until     = db.Column(db.DateTime, nullable=True)       # None = open-ended
    is_active       = db.Column(db.Boolean, nullable=False, default=True)
    usage_limit     = db.Column(db.Integer, nullable=True)        # None = unlimited
    used_count      = db.Column(db.Integer, nullable=False, default=0)
    created_at      = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_coupon(self) -> Coupon:
        return Coupon(
            code=self.code,
            discount_type=self.discount_type,
            discount_value=_dec(self.discount_value),
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            max_discount=_dec(self.max_discount),
            min_cart_value=_dec(self.min_cart_value),
            is_active=bool(self.is_active),
            usage_limit=self.usage_limit,
            used_count=self.used_count or 0,
            organization_id=self.organization_id,
        )

    def __repr__(self):
        return f'<Coupon {self.code!r} {self.discount_type} {self.discount_value}>'

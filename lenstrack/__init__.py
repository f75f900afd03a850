import json

import click
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def create_app(config_name='default'):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from lenstrack.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from lenstrack.offers import offers as offers_blueprint
    app.register_blueprint(offers_blueprint, url_prefix='/api/offers')

    @app.route('/health')
    def health():
        return {'status': 'ok'}

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    return app


# Demo rule set used by `flask seed-offers`; mirrors a typical store setup.
DEMO_RULES = [
    dict(code='COMBO_ESSENTIAL', name='Essential frame + BlueXpert combo',
         offer_type='COMBO_PRICE', priority=10,
         frame_sub_categories=['ESSENTIAL'],
         config={'comboPrice': 4999, 'requiredLensBrandLine': 'BLUEXPERT',
                 'lensBrandLineComboPrice': 3999}),
    dict(code='YOPO_ALL', name='You Pay Only the higher price',
         offer_type='YOPO', priority=20, config={}),
    dict(code='FLAT500', name='Flat ₹500 off above ₹3000',
         offer_type='FLAT_OFF', priority=40,
         config={'discountValue': 500, 'minBillValue': 3000}),
    dict(code='BOG50_SECOND', name='Second pair 50% off',
         offer_type='BOG50', priority=50,
         config={'isSecondPairRule': True, 'secondPairPercent': 50}),
    dict(code='STUDENT10', name='Student discount',
         offer_type='CATEGORY_DISCOUNT', priority=10,
         config={'eligibleCategories': ['STUDENT'], 'discountPercent': 10, 'maxDiscount': 500}),
    dict(code='BONUS_SUNGLASS', name='Free sunglasses above ₹5000',
         offer_type='BONUS_FREE_PRODUCT', priority=10,
         config={'triggerMinBill': 5000, 'bonusLimit': 1499, 'bonusCategory': 'SUNGLASS'},
         upsell_enabled=True, upsell_threshold=5000,
         upsell_reward_text='FREE Sunglasses worth ₹1499'),
]

DEMO_COUPONS = [
    dict(code='WELCOME10', discount_type='PERCENTAGE', discount_value=10, max_discount=300),
    dict(code='FLAT200', discount_type='FLAT_AMOUNT', discount_value=200, min_cart_value=1000),
]


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        import lenstrack.offers.models  # noqa: F401  (registers tables)
        db.create_all()
        click.echo('✅  Database tables created.')

    @app.cli.command('seed-offers')
    @click.option('--org', required=True, help='Organization id to seed')
    def seed_offers(org):
        """Insert the demo offer rules and coupons for one organization."""
        from lenstrack.offers.models import OfferRuleRecord, CouponRecord

        created = 0
        for item in DEMO_RULES:
            item = dict(item)
            if OfferRuleRecord.query.filter_by(organization_id=org, code=item['code']).first():
                click.echo(f'ℹ️   Rule {item["code"]} already exists.')
                continue
            rule = OfferRuleRecord(
                organization_id=org,
                code=item.pop('code'),
                name=item.pop('name'),
                offer_type=item.pop('offer_type'),
                config=json.dumps(item.pop('config')),
                frame_sub_categories=json.dumps(item.pop('frame_sub_categories', [])),
                **item,
            )
            db.session.add(rule)
            created += 1

        for item in DEMO_COUPONS:
            if CouponRecord.query.filter_by(organization_id=org, code=item['code']).first():
                click.echo(f'ℹ️   Coupon {item["code"]} already exists.')
                continue
            db.session.add(CouponRecord(organization_id=org, **item))
            created += 1

        db.session.commit()
        click.echo(f'✅  Seeded {created} offer rules/coupons for {org}.')

    @app.cli.command('list-rules')
    @click.option('--org', required=True, help='Organization id')
    def list_rules(org):
        """Show active rules in evaluation order (diagnostic)."""
        from lenstrack.offers.repository import active_rule_records

        rows = active_rule_records(org)
        if not rows:
            click.echo('No active rules. Run flask seed-offers first.')
            return
        click.echo(f'{"Prio":<6} {"Code":<20} {"Type":<20} {"Status"}')
        click.echo('─' * 60)
        for row in rows:
            rule = row.to_rule()
            status = f'invalid: {rule.config_error}' if rule.config_error else 'ok'
            click.echo(f'{row.priority:<6} {row.code:<20} {row.offer_type:<20} {status}')

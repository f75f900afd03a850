"""
lenstrack/offers/errors.py
--------------------------
Exceptions raised by the offer engine and the rule repository.

Only ValidationError ever escapes a calculation. RuleConfigError and
CouponInvalid are caught inside the pipeline and turned into a warning
or a coupon_error string on the result.
"""


class OfferEngineError(Exception):
    """Base class for every offer-engine failure."""
    status_code = 500

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {'message': self.message, 'details': self.details}


class ValidationError(OfferEngineError):
    """The pricing request is malformed; nothing is calculated."""
    status_code = 400


class RuleConfigError(OfferEngineError):
    """A rule's config does not fit its offer type; the rule is skipped."""

    def __init__(self, rule_code: str, message: str):
        super().__init__(f'Rule {rule_code}: {message}')
        self.rule_code = rule_code


class CouponInvalid(OfferEngineError):
    """Coupon not found, expired, inactive, used up or below minimum cart."""

"""
lenstrack/offers/__init__.py
----------------------------
Offer engine API blueprint.
URL prefix: /api/offers
"""
from flask import Blueprint

offers = Blueprint('offers', __name__)

from lenstrack.offers import routes  # noqa: E402, F401

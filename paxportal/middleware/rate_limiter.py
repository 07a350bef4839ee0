"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in paxportal/__init__.py with no default limits; this module
applies granular limits per route category.

Usage:
    from paxportal.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Blueprint name → limit (per remote IP)
BLUEPRINT_LIMITS = {
    "sync": "6/minute",          # each trigger reads the whole sheet
    "captures": "30/minute",     # dispatch may send e-mail
    "forms": "120/minute",       # client saves while filling forms
    "users": "60/minute",
    "clients": "60/minute",
    "proposals": "200/minute",
    "dashboard": "200/minute",
    "audit": "200/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Health check is exempt. Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured for %d blueprints", len(BLUEPRINT_LIMITS))

"""
Rate limiting configuration.

The Limiter instance is created in commissioning/__init__.py with no default
limits; this module applies per-blueprint limits after blueprints are
registered.

Limits (per remote IP):
    - auth blueprint:  AUTH_RATE_LIMIT (default 10/minute). It accepts the
                       shared edit password, so guessing must be throttled.
    - admin blueprint: 60/minute
    - health check:    exempt

Rate limiting is disabled in testing mode.

Usage:
    from commissioning.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """Apply rate limits to the credential and admin blueprints."""
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    auth_limit = app.config.get("AUTH_RATE_LIMIT", "10/minute")
    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(auth_limit)(bp)

    bp = app.blueprints.get("admin")
    if bp:
        limiter.limit("60/minute")(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured (auth: %s, admin: 60/min)", auth_limit)

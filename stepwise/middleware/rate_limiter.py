"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in stepwise/__init__.py with no default
limits; this module applies limits per route category.

Usage:
    from stepwise.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

_WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]
_READ_METHODS = ["GET"]


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Write endpoints:  60/minute  (POST/PUT/DELETE: reorder, bulk delete, clone)
        - Read endpoints:   200/minute (GET)
        - Health check:     exempt

    Rate limiting is disabled in testing mode and when RATELIMIT_ENABLED
    is false.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    bp = app.blueprints.get("testing")
    if bp:
        limiter.limit(WRITE_LIMIT, methods=_WRITE_METHODS)(bp)
        limiter.limit(READ_LIMIT, methods=_READ_METHODS)(bp)

    # Health check: exempt from rate limiting
    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: write=%s read=%s", WRITE_LIMIT, READ_LIMIT,
    )

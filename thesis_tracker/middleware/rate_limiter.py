"""
Rate limiting configuration.

The Limiter instance is created in thesis_tracker/__init__.py with no default
limits; this module applies per-blueprint limits.

Usage:
    from thesis_tracker.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Mutation blueprints (abm, weeks):        60/minute
        - Read blueprints (structure, audit):      200/minute
        - Health check:                            exempt

    Rate limiting is disabled when RATELIMIT_ENABLED is False (testing).
    """
    if not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (RATELIMIT_ENABLED=False)")
        return

    for bp_name in ("abm", "weeks"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("structure", "audit"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: write: %s, read: %s", WRITE_LIMIT, READ_LIMIT)

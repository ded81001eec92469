"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in atelier/__init__.py with no default limits;
this module applies limits per route category.

Usage:
    from atelier.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"


def tenant_rate_limit_key():
    """Rate limit key: tenant from the verified token if present, else remote IP."""
    tenant_id = getattr(g, "jwt_tenant_id", None)
    if tenant_id:
        return f"tenant:{tenant_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per tenant, falling back to remote IP):
        - Projects / phases / sub-phases: 120/minute
        - Template catalogue:             300/minute
        - Health check:                   exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("projects", "phases", "sub_phases"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=tenant_rate_limit_key)(bp)

    bp = app.blueprints.get("phase_templates")
    if bp:
        limiter.limit(READ_LIMIT, key_func=tenant_rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — workflow: %s, templates: %s",
                    WRITE_LIMIT, READ_LIMIT)

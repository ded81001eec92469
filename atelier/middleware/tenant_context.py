"""
Tenant Context Middleware — Enforces tenant validity on API requests.

When a JWT-authenticated user makes a request:
  1. g.jwt_tenant_id is already set by jwt_auth middleware
  2. This middleware verifies the tenant exists and is active
  3. Sets g.tenant for easy access to the Tenant model instance

Chain order:
  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, jsonify, request

from atelier.models import db
from atelier.models.auth import Tenant

logger = logging.getLogger(__name__)

TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None

        if not request.path.startswith("/api/v1/"):
            return None

        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        tenant_id = getattr(g, "jwt_tenant_id", None)
        if tenant_id is None:
            return None  # blueprints reject the request themselves

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            logger.warning("JWT tenant_id %d not found in DB", tenant_id,
                           extra={"tenant_id": tenant_id, "request_id": getattr(g, "request_id", None)})
            return jsonify({"error": "Tenant not found"}), 403

        if not tenant.is_active:
            logger.warning("JWT tenant_id %d is deactivated", tenant_id,
                           extra={"tenant_id": tenant_id, "request_id": getattr(g, "request_id", None)})
            return jsonify({"error": "Tenant account is deactivated"}), 403

        g.tenant = tenant
        return None

    logger.debug("Tenant context middleware installed")

"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

    Authorization: Bearer <token>  →  g.jwt_user_id, g.jwt_tenant_id, g.jwt_roles

Invalid or expired tokens leave the context empty; API blueprints turn an
empty context into 401 / 403.
"""

import logging

import jwt as pyjwt
from flask import g, request

from atelier.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def _as_int(value):
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_tenant_id = None
        g.jwt_roles = []

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s %s", request.method, path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid access token on %s %s: %s", request.method, path, exc)
            return

        g.jwt_user_id = _as_int(payload.get("sub"))
        g.jwt_tenant_id = _as_int(payload.get("tenant_id"))
        g.jwt_roles = payload.get("roles", [])

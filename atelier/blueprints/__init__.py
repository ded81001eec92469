"""
Atelier — blueprint registry and shared request helpers.
"""

import logging

from flask import g, jsonify, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

from atelier.core.exceptions import ConflictError, NotFoundError, ValidationError
from atelier.models import db
from atelier.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def page_args(default_limit=50, max_limit=200):
    """Read limit/offset query params.

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def require_jwt_tenant():
    """Require JWT identity and tenant scope. Returns an error response or None."""
    if not getattr(g, "jwt_user_id", None):
        return api_error(E.UNAUTHENTICATED, "Authentication required (JWT)")
    if not getattr(g, "jwt_tenant_id", None):
        return api_error(E.FORBIDDEN, "Tenant context required")
    return None


def current_user_id() -> int | None:
    return getattr(g, "jwt_user_id", None)


def current_tenant_id() -> int | None:
    return getattr(g, "jwt_tenant_id", None)


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(bp):
    """Map service exceptions to JSON responses for every route of *bp*."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        logger.info("Not found: %s", error)
        return api_error(E.NOT_FOUND, error.public_message)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(error.code or E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        code = E.CONFLICT_DUPLICATE if error.field else E.CONFLICT_STATE
        return api_error(code, str(error), details=error.details)

    @bp.errorhandler(IntegrityError)
    def _handle_integrity(error: IntegrityError):
        db.session.rollback()
        logger.warning("Integrity error on %s: %s", request.endpoint, error.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Conflict with existing data")

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp

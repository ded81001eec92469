"""
Phase template Blueprint — read-only view of the template catalogue.

Endpoints:
    GET /api/v1/phase-templates?category=turnkey   — Templates visible to the tenant
"""

from flask import Blueprint, jsonify, request

from atelier.blueprints import current_tenant_id, register_error_handlers, require_jwt_tenant
from atelier.services.phase_template_service import list_categories, list_templates
from atelier.utils.helpers import parse_bool

phase_template_bp = Blueprint("phase_templates", __name__, url_prefix="/api/v1")
register_error_handlers(phase_template_bp)


@phase_template_bp.before_request
def _guard():
    return require_jwt_tenant()


@phase_template_bp.route("/phase-templates", methods=["GET"])
def get_phase_templates():
    include_children = parse_bool(request.args.get("include_children", True))
    templates = list_templates(current_tenant_id(), request.args.get("category"))
    return jsonify({
        "categories": [c.to_dict() for c in list_categories()],
        "templates": [t.to_dict(include_children=include_children) for t in templates],
        "total": len(templates),
    })

"""
Project Blueprint — tenant-scoped project CRUD and phase initialization.

Endpoints:
    GET    /api/v1/projects                              — List (status, is_active, search, limit, offset)
    POST   /api/v1/projects                              — Create (+ phase initialization)
    GET    /api/v1/projects/<id>                         — Detail
    PATCH  /api/v1/projects/<id>                         — Update
    DELETE /api/v1/projects/<id>                         — Soft delete
    POST   /api/v1/projects/<id>/initialize-phases       — Build phases from templates
"""

import logging

from flask import Blueprint, jsonify, request

from atelier.blueprints import (
    current_tenant_id,
    current_user_id,
    json_body,
    page_args,
    register_error_handlers,
    require_jwt_tenant,
)
from atelier.services import project_service
from atelier.services.phase_initializer import initialize_project_phases
from atelier.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.before_request
def _guard():
    return require_jwt_tenant()


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    limit, offset = page_args()
    is_active = request.args.get("is_active")
    items, total = project_service.list_projects(
        current_tenant_id(),
        status=request.args.get("status"),
        is_active=True if is_active is None else (None if is_active == "all" else parse_bool(is_active)),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "projects": [p.to_dict() for p in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@project_bp.route("/projects", methods=["POST"])
def create_project():
    project, summary = project_service.create_project(
        current_tenant_id(), json_body(), user_id=current_user_id(),
    )
    return jsonify({"project": project.to_dict(), "phase_initialization": summary}), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(current_tenant_id(), project_id)
    return jsonify({"project": project.to_dict()})


@project_bp.route("/projects/<int:project_id>", methods=["PATCH", "PUT"])
def update_project(project_id):
    project = project_service.get_project(current_tenant_id(), project_id)
    project = project_service.update_project(project, json_body(), user_id=current_user_id())
    return jsonify({"project": project.to_dict()})


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project = project_service.get_project(current_tenant_id(), project_id)
    project_service.delete_project(project, user_id=current_user_id())
    return jsonify({"success": True})


@project_bp.route("/projects/<int:project_id>/initialize-phases", methods=["POST"])
def initialize_phases(project_id):
    """Create the project's phases from templates; 409 if phases exist and force is not set."""
    project = project_service.get_project(current_tenant_id(), project_id)
    data = json_body()
    force = parse_bool(data.get("force", request.args.get("force", False)))
    summary = initialize_project_phases(project, force=force, user_id=current_user_id())
    return jsonify({
        "success": True,
        "message": f"Initialized {summary['phases']} phases",
        "summary": summary,
    })

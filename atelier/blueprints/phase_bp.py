"""
Phase Blueprint — project phases, their dependencies and status history.

Endpoints:
    Phases:
        GET    /api/v1/projects/<pid>/phases                         — List (resolved)
        POST   /api/v1/projects/<pid>/phases                         — Add custom phase
        GET    /api/v1/projects/<pid>/phases/summary                 — Progress summary
        GET    /api/v1/projects/<pid>/phases/<id>                    — Detail
        PATCH  /api/v1/projects/<pid>/phases/<id>                    — Validate + update
        DELETE /api/v1/projects/<pid>/phases/<id>                    — Delete

    Dependencies:
        GET    /api/v1/projects/<pid>/phases/<id>/dependencies        — List edges
        POST   /api/v1/projects/<pid>/phases/<id>/dependencies        — Add edge
        DELETE /api/v1/projects/<pid>/phases/<id>/dependencies/<dep>  — Remove edge

    History:
        GET    /api/v1/projects/<pid>/phases/<id>/status-logs         — Newest first
"""

import logging

from flask import Blueprint, jsonify

from atelier.blueprints import (
    current_tenant_id,
    current_user_id,
    json_body,
    register_error_handlers,
    require_jwt_tenant,
)
from atelier.services import phase_dependency, phase_service, project_service
from atelier.services.status_log_service import list_status_logs

logger = logging.getLogger(__name__)

phase_bp = Blueprint("phases", __name__, url_prefix="/api/v1")
register_error_handlers(phase_bp)


@phase_bp.before_request
def _guard():
    return require_jwt_tenant()


def _project(project_id):
    return project_service.get_project(current_tenant_id(), project_id)


def _phase(project_id, phase_id):
    return phase_service.get_phase(_project(project_id), phase_id)


# ── Phases ───────────────────────────────────────────────────────────────────


@phase_bp.route("/projects/<int:project_id>/phases", methods=["GET"])
def list_phases(project_id):
    """Phases in display order with sub-phases, assignee and dependency state."""
    return jsonify({"phases": phase_service.list_phases(_project(project_id))})


@phase_bp.route("/projects/<int:project_id>/phases", methods=["POST"])
def create_phase(project_id):
    phase = phase_service.create_phase(_project(project_id), json_body(), user_id=current_user_id())
    return jsonify({"phase": phase_service.serialize_phase(phase)}), 201


@phase_bp.route("/projects/<int:project_id>/phases/summary", methods=["GET"])
def phase_summary(project_id):
    return jsonify({"summary": phase_service.phase_summary(_project(project_id))})


@phase_bp.route("/projects/<int:project_id>/phases/<int:phase_id>", methods=["GET"])
def get_phase(project_id, phase_id):
    return jsonify({"phase": phase_service.get_phase_detail(_project(project_id), phase_id)})


@phase_bp.route("/projects/<int:project_id>/phases/<int:phase_id>", methods=["PATCH", "PUT"])
def update_phase(project_id, phase_id):
    """Partial update through the transition validator.

    A status change needs ``status_change_notes``; entering in_progress
    also needs an assignee and no incomplete hard dependencies.
    """
    phase = _phase(project_id, phase_id)
    phase = phase_service.update_phase(phase, json_body(), user_id=current_user_id())
    return jsonify({"phase": phase_service.serialize_phase(phase)})


@phase_bp.route("/projects/<int:project_id>/phases/<int:phase_id>", methods=["DELETE"])
def delete_phase(project_id, phase_id):
    phase_service.delete_phase(_phase(project_id, phase_id), user_id=current_user_id())
    return jsonify({"success": True})


# ── Dependencies ─────────────────────────────────────────────────────────────


@phase_bp.route("/projects/<int:project_id>/phases/<int:phase_id>/dependencies", methods=["GET"])
def list_dependencies(project_id, phase_id):
    phase = _phase(project_id, phase_id)
    return jsonify({"dependencies": phase_dependency.list_dependencies(phase)})


@phase_bp.route("/projects/<int:project_id>/phases/<int:phase_id>/dependencies", methods=["POST"])
def add_dependency(project_id, phase_id):
    phase = _phase(project_id, phase_id)
    data = json_body()
    dep = phase_dependency.add_dependency(
        phase,
        data.get("depends_on_phase_id"),
        data.get("dependency_type") or "hard",
        user_id=current_user_id(),
    )
    return jsonify({"dependency": dep.to_dict(), "phase": phase_service.serialize_phase(phase)}), 201


@phase_bp.route(
    "/projects/<int:project_id>/phases/<int:phase_id>/dependencies/<int:dependency_id>",
    methods=["DELETE"],
)
def remove_dependency(project_id, phase_id, dependency_id):
    phase = _phase(project_id, phase_id)
    phase_dependency.remove_dependency(phase, dependency_id, user_id=current_user_id())
    return jsonify({"success": True})


# ── History ──────────────────────────────────────────────────────────────────


@phase_bp.route("/projects/<int:project_id>/phases/<int:phase_id>/status-logs", methods=["GET"])
def list_phase_status_logs(project_id, phase_id):
    phase = _phase(project_id, phase_id)
    return jsonify({"status_logs": [log.to_dict() for log in list_status_logs(phase_id=phase.id)]})

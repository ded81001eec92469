"""
Sub-phase Blueprint — sub-phases of a project phase, their actions,
checklist items and comments.

All routes hang off ``/api/v1/projects/<pid>/phases/<phase_id>/sub-phases``.

Endpoints:
    GET    .../sub-phases                         — List
    POST   .../sub-phases                         — Create
    GET    .../sub-phases/<id>                    — Detail (template info, comments, status logs)
    PATCH  .../sub-phases/<id>                    — Validate + update
    DELETE .../sub-phases/<id>                    — Delete
    POST   .../sub-phases/<id>/start              — Start (assignee required)
    POST   .../sub-phases/<id>/complete           — Complete (notes required)
    POST   .../sub-phases/<id>/skip               — Skip (reason required)
    GET    .../sub-phases/<id>/checklist          — List checklist items
    POST   .../sub-phases/<id>/checklist          — Add checklist item
    PATCH  .../sub-phases/<id>/checklist/<item>   — Edit / toggle
    DELETE .../sub-phases/<id>/checklist/<item>   — Delete
    GET    .../sub-phases/<id>/comments           — List comments
    POST   .../sub-phases/<id>/comments           — Add comment
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
from atelier.services import phase_service, project_service, sub_phase_service

logger = logging.getLogger(__name__)

sub_phase_bp = Blueprint("sub_phases", __name__, url_prefix="/api/v1")
register_error_handlers(sub_phase_bp)

_BASE = "/projects/<int:project_id>/phases/<int:phase_id>/sub-phases"
_ITEM = _BASE + "/<int:sub_phase_id>"


@sub_phase_bp.before_request
def _guard():
    return require_jwt_tenant()


def _phase(project_id, phase_id):
    project = project_service.get_project(current_tenant_id(), project_id)
    return phase_service.get_phase(project, phase_id)


def _sub_phase(project_id, phase_id, sub_phase_id):
    return sub_phase_service.get_sub_phase(_phase(project_id, phase_id), sub_phase_id)


# ── Sub-phases ───────────────────────────────────────────────────────────────


@sub_phase_bp.route(_BASE, methods=["GET"])
def list_sub_phases(project_id, phase_id):
    subs = sub_phase_service.list_sub_phases(_phase(project_id, phase_id))
    return jsonify({"sub_phases": [s.to_dict(include_checklist=True) for s in subs]})


@sub_phase_bp.route(_BASE, methods=["POST"])
def create_sub_phase(project_id, phase_id):
    sub = sub_phase_service.create_sub_phase(_phase(project_id, phase_id), json_body())
    return jsonify({"sub_phase": sub.to_dict(include_checklist=True)}), 201


@sub_phase_bp.route(_ITEM, methods=["GET"])
def get_sub_phase(project_id, phase_id, sub_phase_id):
    phase = _phase(project_id, phase_id)
    return jsonify({"sub_phase": sub_phase_service.get_sub_phase_detail(phase, sub_phase_id)})


@sub_phase_bp.route(_ITEM, methods=["PATCH", "PUT"])
def update_sub_phase(project_id, phase_id, sub_phase_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    sub = sub_phase_service.update_sub_phase(sub, json_body(), user_id=current_user_id())
    return jsonify({"sub_phase": sub.to_dict(include_checklist=True)})


@sub_phase_bp.route(_ITEM, methods=["DELETE"])
def delete_sub_phase(project_id, phase_id, sub_phase_id):
    sub_phase_service.delete_sub_phase(_sub_phase(project_id, phase_id, sub_phase_id))
    return jsonify({"success": True})


# ── Actions ──────────────────────────────────────────────────────────────────


@sub_phase_bp.route(_ITEM + "/start", methods=["POST"])
def start_sub_phase(project_id, phase_id, sub_phase_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    sub = sub_phase_service.start_sub_phase(sub, json_body().get("notes"), user_id=current_user_id())
    return jsonify({"success": True, "sub_phase": sub.to_detail_dict()})


@sub_phase_bp.route(_ITEM + "/complete", methods=["POST"])
def complete_sub_phase(project_id, phase_id, sub_phase_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    sub = sub_phase_service.complete_sub_phase(sub, json_body().get("notes"), user_id=current_user_id())
    return jsonify({"success": True, "sub_phase": sub.to_detail_dict()})


@sub_phase_bp.route(_ITEM + "/skip", methods=["POST"])
def skip_sub_phase(project_id, phase_id, sub_phase_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    sub = sub_phase_service.skip_sub_phase(sub, json_body().get("reason"), user_id=current_user_id())
    return jsonify({"success": True, "sub_phase": sub.to_detail_dict()})


# ── Checklist ────────────────────────────────────────────────────────────────


@sub_phase_bp.route(_ITEM + "/checklist", methods=["GET"])
def list_checklist(project_id, phase_id, sub_phase_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    items = sub_phase_service.list_checklist_items(sub)
    return jsonify({"checklist_items": [i.to_dict() for i in items]})


@sub_phase_bp.route(_ITEM + "/checklist", methods=["POST"])
def create_checklist_item(project_id, phase_id, sub_phase_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    item = sub_phase_service.create_checklist_item(sub, json_body())
    return jsonify({"checklist_item": item.to_dict()}), 201


@sub_phase_bp.route(_ITEM + "/checklist/<int:item_id>", methods=["PATCH", "PUT"])
def update_checklist_item(project_id, phase_id, sub_phase_id, item_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    item = sub_phase_service.get_checklist_item(sub, item_id)
    item = sub_phase_service.update_checklist_item(item, json_body(), user_id=current_user_id())
    return jsonify({"checklist_item": item.to_dict()})


@sub_phase_bp.route(_ITEM + "/checklist/<int:item_id>", methods=["DELETE"])
def delete_checklist_item(project_id, phase_id, sub_phase_id, item_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    sub_phase_service.delete_checklist_item(sub_phase_service.get_checklist_item(sub, item_id))
    return jsonify({"success": True})


# ── Comments ─────────────────────────────────────────────────────────────────


@sub_phase_bp.route(_ITEM + "/comments", methods=["GET"])
def list_comments(project_id, phase_id, sub_phase_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    return jsonify({"comments": [c.to_dict() for c in sub_phase_service.list_comments(sub)]})


@sub_phase_bp.route(_ITEM + "/comments", methods=["POST"])
def add_comment(project_id, phase_id, sub_phase_id):
    sub = _sub_phase(project_id, phase_id, sub_phase_id)
    comment = sub_phase_service.add_comment(sub, json_body(), user_id=current_user_id())
    return jsonify({"success": True, "comment": comment.to_dict()}), 201

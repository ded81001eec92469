"""
Phase service — read paths and the validate → mutate → log pipeline.

Business logic for:
    - Listing phases with nested sub-phases, checklist items and resolved
      dependency info (dependencies / blocking_dependencies / is_blocked)
    - Adding custom phases (display_order = max + 1)
    - Partial updates: transition validation, date auto-stamping,
      current-phase tracking, status-log append
    - Deleting phases nobody depends on
    - Per-project progress summary
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from atelier.core.exceptions import ValidationError
from atelier.models import db
from atelier.models.audit import write_audit
from atelier.models.phase import (
    PROGRESS_MODES,
    PhaseStatus,
    ProjectPhase,
    ProjectSubPhase,
    SubPhaseStatus,
)
from atelier.models.phase_template import PhaseTemplate
from atelier.models.project import Project
from atelier.services.helpers.field_parsing import (
    check_date_order,
    coerce_assignee,
    coerce_choice,
    coerce_dates,
    coerce_percentage,
    coerce_positive_int,
    coerce_required_text,
)
from atelier.services.helpers.scoped_queries import get_scoped
from atelier.services.phase_dependency import (
    has_dependents,
    resolve_dependencies,
    resolve_phase,
)
from atelier.services.phase_transitions import (
    CHANGE_NOTES_FIELD,
    is_status_change,
    validate_phase_update,
)
from atelier.services.status_log_service import commit_with_status_log
from atelier.utils.errors import E
from atelier.utils.helpers import clean_text, today

logger = logging.getLogger(__name__)

_DATE_FIELDS = (
    "planned_start_date", "planned_end_date",
    "actual_start_date", "actual_end_date",
)

_TEXT_FIELDS = ("description", "notes", "category_code")


# ── Reads ────────────────────────────────────────────────────────────────────


def get_phase(project: Project, phase_id: int) -> ProjectPhase:
    """Phase of the project or NotFoundError."""
    return get_scoped(ProjectPhase, phase_id, resource="Phase", project_id=project.id)


def serialize_phase(phase: ProjectPhase, resolution: dict | None = None,
                    include_sub_phases: bool = True) -> dict:
    d = phase.to_dict(include_sub_phases=include_sub_phases)
    d.update(resolution if resolution is not None else resolve_phase(phase))
    return d


def list_phases(project: Project) -> list[dict]:
    """All phases of the project ordered by display_order, fully resolved."""
    phases = (
        ProjectPhase.query
        .filter_by(project_id=project.id)
        .options(
            selectinload(ProjectPhase.sub_phases).selectinload(ProjectSubPhase.checklist_items),
        )
        .order_by(ProjectPhase.display_order, ProjectPhase.id)
        .all()
    )
    resolved = resolve_dependencies(project.id, [p.id for p in phases])
    return [serialize_phase(p, resolved[p.id]) for p in phases]


def get_phase_detail(project: Project, phase_id: int) -> dict:
    return serialize_phase(get_phase(project, phase_id))


def phase_summary(project: Project) -> dict:
    """Aggregate progress view of the project's phases."""
    phases = (
        ProjectPhase.query
        .filter_by(project_id=project.id)
        .options(selectinload(ProjectPhase.sub_phases))
        .order_by(ProjectPhase.display_order, ProjectPhase.id)
        .all()
    )
    resolved = resolve_dependencies(project.id, [p.id for p in phases])
    by_status = {s.value: 0 for s in PhaseStatus}
    done_states = {SubPhaseStatus.COMPLETED.value, SubPhaseStatus.SKIPPED.value}
    rows = []
    for p in phases:
        by_status[p.status] = by_status.get(p.status, 0) + 1
        sub_total = len(p.sub_phases)
        sub_done = sum(1 for s in p.sub_phases if s.status in done_states)
        rows.append({
            "id": p.id,
            "name": p.name,
            "status": p.status,
            "progress_percentage": p.progress_percentage,
            "sub_phases_total": sub_total,
            "sub_phases_done": sub_done,
            "sub_phase_progress": round(sub_done * 100 / sub_total) if sub_total else None,
            "is_blocked": resolved[p.id]["is_blocked"],
        })
    total = len(phases)
    return {
        "project_id": project.id,
        "current_phase_id": project.current_phase_id,
        "total_phases": total,
        "by_status": by_status,
        "completed_phases": by_status[PhaseStatus.COMPLETED.value],
        "blocked_phases": [r["name"] for r in rows if r["is_blocked"]],
        "overall_progress": round(sum(p.progress_percentage for p in phases) / total) if total else 0,
        "phases": rows,
    }


# ── Create ───────────────────────────────────────────────────────────────────


def _next_display_order(project_id: int) -> int:
    current = db.session.execute(
        select(func.max(ProjectPhase.display_order)).where(ProjectPhase.project_id == project_id)
    ).scalar()
    return (current or 0) + 1


def create_phase(project: Project, data: dict, *, user_id: int | None = None) -> ProjectPhase:
    """Add a custom phase at the end of the project's phase list."""
    name = coerce_required_text(data.get("name"), "Phase name is required")

    template_id = data.get("phase_template_id")
    if template_id not in (None, ""):
        tpl = db.session.get(PhaseTemplate, template_id)
        if tpl is None or tpl.tenant_id not in (None, project.tenant_id):
            raise ValidationError("phase_template_id does not reference an available template",
                                  code=E.VALIDATION_INVALID)
        template_id = tpl.id
    else:
        template_id = None

    dates = coerce_dates(data, ("planned_start_date", "planned_end_date"))
    check_date_order(dates.get("planned_start_date"), dates.get("planned_end_date"),
                     "planned_start_date", "planned_end_date")

    phase = ProjectPhase(
        tenant_id=project.tenant_id,
        project_id=project.id,
        phase_template_id=template_id,
        name=name,
        description=clean_text(data.get("description")),
        category_code=clean_text(data.get("category_code")),
        assigned_to=coerce_assignee(project.tenant_id, data.get("assigned_to")),
        estimated_duration_hours=coerce_positive_int(
            data.get("estimated_duration_hours"), "estimated_duration_hours"),
        notes=clean_text(data.get("notes")),
        display_order=_next_display_order(project.id),
        is_custom=True,
        created_by=user_id,
        **dates,
    )
    db.session.add(phase)
    db.session.flush()
    write_audit(
        entity_type="phase", entity_id=phase.id, action="phase.create",
        tenant_id=project.tenant_id, project_id=project.id, actor_user_id=user_id,
        diff={"name": name},
    )
    db.session.commit()
    logger.info("ProjectPhase created id=%s project=%s", phase.id, project.id,
                extra={"project_id": project.id, "phase_id": phase.id})
    return phase


# ── Update ───────────────────────────────────────────────────────────────────


def _collect_changes(phase: ProjectPhase, data: dict) -> dict:
    changes = {}
    if "name" in data:
        changes["name"] = coerce_required_text(data["name"], "Phase name cannot be empty")
    if "status" in data:
        changes["status"] = data["status"]
    if "progress_percentage" in data:
        changes["progress_percentage"] = coerce_percentage(data["progress_percentage"])
    if "progress_mode" in data:
        changes["progress_mode"] = coerce_choice(data["progress_mode"], PROGRESS_MODES, "progress_mode")
    if "assigned_to" in data:
        changes["assigned_to"] = coerce_assignee(phase.tenant_id, data["assigned_to"])
    if "estimated_duration_hours" in data:
        changes["estimated_duration_hours"] = coerce_positive_int(
            data["estimated_duration_hours"], "estimated_duration_hours")
    for f in _TEXT_FIELDS:
        if f in data:
            changes[f] = clean_text(data[f])
    changes.update(coerce_dates(data, _DATE_FIELDS))

    # Only client-supplied dates are order-checked; auto-stamped ones are not.
    for start, end in (("planned_start_date", "planned_end_date"),
                       ("actual_start_date", "actual_end_date")):
        if start in changes or end in changes:
            check_date_order(changes.get(start, getattr(phase, start)),
                             changes.get(end, getattr(phase, end)), start, end)

    new_status = data.get("status")
    if new_status == PhaseStatus.IN_PROGRESS.value and not changes.get("actual_start_date"):
        changes["actual_start_date"] = today()
    if new_status == PhaseStatus.COMPLETED.value and not changes.get("actual_end_date"):
        changes["actual_end_date"] = today()
    return changes


def update_phase(phase: ProjectPhase, data: dict, *, user_id: int | None = None) -> ProjectPhase:
    """Validate and apply a partial update.

    Only keys present in *data* are written. A rejected update raises
    ValidationError before anything is changed.
    """
    validate_phase_update(phase, data)
    changes = _collect_changes(phase, data)

    log_entry = None
    if is_status_change(phase, data):
        log_entry = {
            "tenant_id": phase.tenant_id,
            "project_id": phase.project_id,
            "phase_id": phase.id,
            "previous_status": phase.status,
            "new_status": data["status"],
            "notes": str(data[CHANGE_NOTES_FIELD]).strip(),
            "changed_by": user_id,
        }

    for field, value in changes.items():
        setattr(phase, field, value)

    if data.get("status") == PhaseStatus.IN_PROGRESS.value:
        phase.project.current_phase_id = phase.id

    commit_with_status_log(log_entry)
    logger.info("ProjectPhase updated id=%s fields=%s", phase.id, sorted(changes),
                extra={"project_id": phase.project_id, "phase_id": phase.id})
    return phase


# ── Delete ───────────────────────────────────────────────────────────────────


def delete_phase(phase: ProjectPhase, *, user_id: int | None = None) -> None:
    """Delete a phase with its sub-phases and outgoing edges.

    Raises ValidationError while any other phase depends on it.
    """
    if has_dependents(phase):
        raise ValidationError("Cannot delete phase - other phases depend on it",
                              code=E.VALIDATION_CONSTRAINT)
    phase_id, project_id = phase.id, phase.project_id
    project = phase.project
    if project.current_phase_id == phase_id:
        project.current_phase_id = None
    db.session.delete(phase)
    write_audit(
        entity_type="phase", entity_id=phase_id, action="phase.delete",
        tenant_id=phase.tenant_id, project_id=project_id, actor_user_id=user_id,
        diff={"name": phase.name},
    )
    db.session.commit()
    logger.info("ProjectPhase deleted id=%s", phase_id,
                extra={"project_id": project_id, "phase_id": phase_id})

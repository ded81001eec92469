"""
Sub-phase service.

Business logic for:
    - Sub-phase CRUD inside a phase
    - Partial updates through the transition validator (no dependency rule)
      with completion stamping (completed_at / completed_by)
    - Explicit actions: start (assignee required), complete (notes
      required), skip (reason required, template must allow skipping)
    - Checklist items: add / toggle / edit / delete
    - Comments: threaded notes on a sub-phase
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from atelier.core.exceptions import NotFoundError, ValidationError
from atelier.models import db
from atelier.models.phase import (
    COMMENT_TYPES,
    ChecklistItem,
    PhaseComment,
    ProjectPhase,
    ProjectSubPhase,
    SubPhaseStatus,
)
from atelier.services.helpers.field_parsing import (
    check_date_order,
    coerce_assignee,
    coerce_choice,
    coerce_dates,
    coerce_percentage,
    coerce_required_text,
)
from atelier.services.helpers.scoped_queries import get_scoped
from atelier.services.phase_transitions import (
    CHANGE_NOTES_FIELD,
    is_status_change,
    validate_sub_phase_update,
)
from atelier.services.status_log_service import commit_with_status_log, list_status_logs
from atelier.utils.errors import E
from atelier.utils.helpers import clean_text, parse_bool, parse_datetime_input, today

logger = logging.getLogger(__name__)

_DATE_FIELDS = (
    "due_date",
    "planned_start_date", "planned_end_date",
    "actual_start_date", "actual_end_date",
)


def _now():
    return datetime.now(timezone.utc)


def _log_entry(sub: ProjectSubPhase, new_status: str, notes, user_id):
    return {
        "tenant_id": sub.tenant_id,
        "project_id": sub.project_id,
        "sub_phase_id": sub.id,
        "previous_status": sub.status,
        "new_status": new_status,
        "notes": notes,
        "changed_by": user_id,
    }


def _extra(sub: ProjectSubPhase) -> dict:
    return {"project_id": sub.project_id, "phase_id": sub.project_phase_id, "sub_phase_id": sub.id}


# ── Reads ────────────────────────────────────────────────────────────────────


def get_sub_phase(phase: ProjectPhase, sub_phase_id: int) -> ProjectSubPhase:
    return get_scoped(ProjectSubPhase, sub_phase_id, resource="Sub-phase",
                      project_phase_id=phase.id)


def list_sub_phases(phase: ProjectPhase) -> list[ProjectSubPhase]:
    return (
        ProjectSubPhase.query
        .filter_by(project_phase_id=phase.id)
        .order_by(ProjectSubPhase.display_order, ProjectSubPhase.id)
        .all()
    )


def get_sub_phase_detail(phase: ProjectPhase, sub_phase_id: int) -> dict:
    sub = get_sub_phase(phase, sub_phase_id)
    d = sub.to_detail_dict()
    d["status_logs"] = [log.to_dict() for log in list_status_logs(sub_phase_id=sub.id)]
    return d


# ── Create / update / delete ─────────────────────────────────────────────────


def create_sub_phase(phase: ProjectPhase, data: dict) -> ProjectSubPhase:
    name = coerce_required_text(data.get("name"), "Sub-phase name is required")
    dates = coerce_dates(data, ("due_date", "planned_start_date", "planned_end_date"))
    next_order = db.session.execute(
        select(func.max(ProjectSubPhase.display_order))
        .where(ProjectSubPhase.project_phase_id == phase.id)
    ).scalar()
    sub = ProjectSubPhase(
        tenant_id=phase.tenant_id,
        project_id=phase.project_id,
        project_phase_id=phase.id,
        name=name,
        description=clean_text(data.get("description")),
        assigned_to=coerce_assignee(phase.tenant_id, data.get("assigned_to")),
        is_required=parse_bool(data.get("is_required", True)),
        notes=clean_text(data.get("notes")),
        display_order=(next_order or 0) + 1,
        **dates,
    )
    db.session.add(sub)
    db.session.commit()
    logger.info("ProjectSubPhase created id=%s phase=%s", sub.id, phase.id, extra=_extra(sub))
    return sub


def update_sub_phase(sub: ProjectSubPhase, data: dict, *, user_id: int | None = None) -> ProjectSubPhase:
    """Validate and apply a partial update; only keys present are written."""
    validate_sub_phase_update(sub, data)

    changes = {}
    if "name" in data:
        changes["name"] = coerce_required_text(data["name"], "Sub-phase name cannot be empty")
    if "status" in data:
        changes["status"] = data["status"]
    if "progress_percentage" in data:
        changes["progress_percentage"] = coerce_percentage(data["progress_percentage"])
    if "assigned_to" in data:
        changes["assigned_to"] = coerce_assignee(sub.tenant_id, data["assigned_to"])
    for f in ("description", "notes"):
        if f in data:
            changes[f] = clean_text(data[f])
    changes.update(coerce_dates(data, _DATE_FIELDS))
    if "actual_start_date" in changes or "actual_end_date" in changes:
        check_date_order(changes.get("actual_start_date", sub.actual_start_date),
                         changes.get("actual_end_date", sub.actual_end_date),
                         "actual_start_date", "actual_end_date")

    new_status = data.get("status")
    if new_status == SubPhaseStatus.IN_PROGRESS.value and not changes.get("actual_start_date"):
        changes["actual_start_date"] = today()
    if new_status == SubPhaseStatus.COMPLETED.value:
        if not changes.get("actual_end_date"):
            changes["actual_end_date"] = today()
        changes["completed_at"] = parse_datetime_input(data.get("completed_at"), "completed_at") or _now()
        changes["completed_by"] = user_id
    elif new_status is not None:
        changes["completed_at"] = None
        changes["completed_by"] = None

    log_entry = None
    if is_status_change(sub, data):
        log_entry = _log_entry(sub, data["status"], str(data[CHANGE_NOTES_FIELD]).strip(), user_id)

    for field, value in changes.items():
        setattr(sub, field, value)

    commit_with_status_log(log_entry)
    logger.info("ProjectSubPhase updated id=%s fields=%s", sub.id, sorted(changes), extra=_extra(sub))
    return sub


def delete_sub_phase(sub: ProjectSubPhase) -> None:
    sub_id, extra = sub.id, _extra(sub)
    db.session.delete(sub)
    db.session.commit()
    logger.info("ProjectSubPhase deleted id=%s", sub_id, extra=extra)


# ── Actions ──────────────────────────────────────────────────────────────────


def start_sub_phase(sub: ProjectSubPhase, notes=None, *, user_id: int | None = None) -> ProjectSubPhase:
    """Move to in_progress; requires an assignee."""
    if not sub.assigned_to:
        raise ValidationError(
            "Cannot start sub-phase without an assignee. Please assign someone first.",
            details={"can_start": False},
            code=E.VALIDATION_REQUIRED,
        )
    if sub.status == SubPhaseStatus.IN_PROGRESS.value:
        raise ValidationError("Sub-phase is already in progress", code=E.VALIDATION_INVALID)

    log_entry = _log_entry(sub, SubPhaseStatus.IN_PROGRESS.value,
                           clean_text(notes) or "Sub-phase started", user_id)
    now = _now()
    sub.status = SubPhaseStatus.IN_PROGRESS.value
    sub.started_at = now
    sub.started_by = user_id
    if not sub.actual_start_date:
        sub.actual_start_date = now.date()
    sub.completed_at = None
    sub.completed_by = None

    commit_with_status_log(log_entry)
    logger.info("ProjectSubPhase started id=%s", sub.id, extra=_extra(sub))
    return sub


def complete_sub_phase(sub: ProjectSubPhase, notes, *, user_id: int | None = None) -> ProjectSubPhase:
    """Move to completed; completion notes are mandatory."""
    notes = coerce_required_text(notes, "Completion notes are required")
    if sub.status == SubPhaseStatus.COMPLETED.value:
        raise ValidationError("Sub-phase is already completed", code=E.VALIDATION_INVALID)

    log_entry = _log_entry(sub, SubPhaseStatus.COMPLETED.value, notes, user_id)
    now = _now()
    sub.status = SubPhaseStatus.COMPLETED.value
    sub.completed_at = now
    sub.completed_by = user_id
    sub.progress_percentage = 100
    if not sub.actual_end_date:
        sub.actual_end_date = now.date()

    commit_with_status_log(log_entry)
    logger.info("ProjectSubPhase completed id=%s", sub.id, extra=_extra(sub))
    return sub


def skip_sub_phase(sub: ProjectSubPhase, reason, *, user_id: int | None = None) -> ProjectSubPhase:
    """Move to skipped; needs a reason and a template that allows skipping."""
    reason = coerce_required_text(reason, "Reason is required to skip a sub-phase")
    if not sub.can_skip:
        raise ValidationError("This sub-phase cannot be skipped", code=E.VALIDATION_CONSTRAINT)
    if sub.status == SubPhaseStatus.SKIPPED.value:
        raise ValidationError("Sub-phase is already skipped", code=E.VALIDATION_INVALID)

    log_entry = _log_entry(sub, SubPhaseStatus.SKIPPED.value, reason, user_id)
    sub.status = SubPhaseStatus.SKIPPED.value
    sub.skipped_at = _now()
    sub.skipped_by = user_id
    sub.skip_reason = reason
    sub.completed_at = None
    sub.completed_by = None

    commit_with_status_log(log_entry)
    logger.info("ProjectSubPhase skipped id=%s", sub.id, extra=_extra(sub))
    return sub


# ── Checklist ────────────────────────────────────────────────────────────────


def list_checklist_items(sub: ProjectSubPhase) -> list[ChecklistItem]:
    return (
        ChecklistItem.query
        .filter_by(sub_phase_id=sub.id)
        .order_by(ChecklistItem.display_order, ChecklistItem.id)
        .all()
    )


def get_checklist_item(sub: ProjectSubPhase, item_id: int) -> ChecklistItem:
    return get_scoped(ChecklistItem, item_id, resource="Checklist item", sub_phase_id=sub.id)


def create_checklist_item(sub: ProjectSubPhase, data: dict) -> ChecklistItem:
    name = coerce_required_text(data.get("name"), "Checklist item name is required")
    next_order = db.session.execute(
        select(func.max(ChecklistItem.display_order)).where(ChecklistItem.sub_phase_id == sub.id)
    ).scalar()
    item = ChecklistItem(
        tenant_id=sub.tenant_id,
        sub_phase_id=sub.id,
        name=name,
        notes=clean_text(data.get("notes")),
        display_order=(next_order or 0) + 1,
    )
    db.session.add(item)
    db.session.commit()
    return item


def update_checklist_item(item: ChecklistItem, data: dict, *, user_id: int | None = None) -> ChecklistItem:
    """Edit name / notes; toggling is_completed stamps or clears completion."""
    if "name" in data:
        item.name = coerce_required_text(data["name"], "Checklist item name cannot be empty")
    if "notes" in data:
        item.notes = clean_text(data["notes"])
    if "is_completed" in data:
        done = parse_bool(data["is_completed"])
        item.is_completed = done
        item.completed_at = _now() if done else None
        item.completed_by = user_id if done else None
    db.session.commit()
    return item


def delete_checklist_item(item: ChecklistItem) -> None:
    db.session.delete(item)
    db.session.commit()


# ── Comments ─────────────────────────────────────────────────────────────────


def list_comments(sub: ProjectSubPhase) -> list[PhaseComment]:
    return (
        PhaseComment.query
        .filter_by(sub_phase_id=sub.id)
        .order_by(PhaseComment.created_at, PhaseComment.id)
        .all()
    )


def add_comment(sub: ProjectSubPhase, data: dict, *, user_id: int | None = None) -> PhaseComment:
    content = coerce_required_text(data.get("content"), "Comment content is required")
    comment_type = coerce_choice(data.get("comment_type") or "note", COMMENT_TYPES, "comment_type")

    parent_id = data.get("parent_comment_id")
    if parent_id not in (None, ""):
        try:
            parent = get_scoped(PhaseComment, int(parent_id), resource="Parent comment",
                                sub_phase_id=sub.id)
        except (TypeError, ValueError):
            raise ValidationError("parent_comment_id must be an integer", code=E.VALIDATION_INVALID)
        except NotFoundError:
            raise ValidationError("parent_comment_id does not belong to this sub-phase",
                                  code=E.VALIDATION_INVALID)
        parent_id = parent.id
    else:
        parent_id = None

    comment = PhaseComment(
        tenant_id=sub.tenant_id,
        project_id=sub.project_id,
        project_phase_id=sub.project_phase_id,
        sub_phase_id=sub.id,
        parent_comment_id=parent_id,
        content=content,
        comment_type=comment_type,
        is_internal=parse_bool(data.get("is_internal", False)),
        created_by=user_id,
    )
    db.session.add(comment)
    db.session.commit()
    logger.info("PhaseComment added id=%s", comment.id, extra=_extra(sub))
    return comment

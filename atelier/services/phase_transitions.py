"""
Status transition validator for phases and sub-phases.

Runs before any write. Rules are attached to the target status and run in
the listed order; the first failure raises ValidationError and nothing is
persisted.

    target in_progress (phase)      assignee → change_notes → dependencies
    target in_progress (sub-phase)  assignee → change_notes
    any other target                change_notes

assignee      effective assignee (payload value when the key is present,
              else the stored one) must be set
change_notes  a status change (old != new) needs non-blank status_change_notes
dependencies  no hard dependency on a phase that is not completed
"""

import logging

from atelier.core.exceptions import ValidationError
from atelier.models.phase import (
    PHASE_STATUSES,
    SUB_PHASE_STATUSES,
    PhaseStatus,
    SubPhaseStatus,
    validate_phase_transition,
    validate_sub_phase_transition,
)
from atelier.services.phase_dependency import can_phase_start
from atelier.utils.errors import E

logger = logging.getLogger(__name__)

CHANGE_NOTES_FIELD = "status_change_notes"

DEFAULT_RULES = ("change_notes",)

PHASE_ENTRY_RULES = {
    PhaseStatus.IN_PROGRESS.value: ("assignee", "change_notes", "dependencies"),
}

SUB_PHASE_ENTRY_RULES = {
    SubPhaseStatus.IN_PROGRESS.value: ("assignee", "change_notes"),
}


def _check_assignee(entity, data, label):
    assignee = data["assigned_to"] if "assigned_to" in data else entity.assigned_to
    if assignee in (None, ""):
        raise ValidationError(
            f"Cannot start {label} without an assignee. Please assign someone first.",
            code=E.VALIDATION_REQUIRED,
        )


def _check_change_notes(entity, data, label):
    if data["status"] == entity.status:
        return
    notes = data.get(CHANGE_NOTES_FIELD)
    if notes is None or not str(notes).strip():
        raise ValidationError(
            "Status change requires notes explaining the reason.",
            code=E.VALIDATION_REQUIRED,
        )


def _check_dependencies(entity, data, label):
    ok, blocking = can_phase_start(entity)
    if not ok:
        logger.info("Phase %s blocked by %s", entity.id, blocking,
                    extra={"project_id": entity.project_id, "phase_id": entity.id})
        raise ValidationError(
            f"Cannot start {label} - blocked by dependencies",
            details={"blocking_phases": blocking},
            code=E.PHASE_BLOCKED,
        )


_RULES = {
    "assignee": _check_assignee,
    "change_notes": _check_change_notes,
    "dependencies": _check_dependencies,
}


def _validate(entity, data, *, label, statuses, is_allowed, entry_rules):
    if "status" not in data:
        return
    new_status = data["status"]
    if not isinstance(new_status, str) or new_status not in statuses:
        raise ValidationError(
            f"Invalid status '{new_status}'. Allowed: {sorted(statuses)}",
            code=E.VALIDATION_INVALID,
        )
    if not is_allowed(entity.status, new_status):
        raise ValidationError(
            f"Invalid transition: {entity.status} → {new_status}",
            code=E.VALIDATION_INVALID,
        )
    for rule in entry_rules.get(new_status, DEFAULT_RULES):
        _RULES[rule](entity, data, label)


def validate_phase_update(phase, data: dict) -> None:
    """Raise ValidationError if the proposed phase update is not admissible."""
    _validate(
        phase, data,
        label="phase",
        statuses=PHASE_STATUSES,
        is_allowed=validate_phase_transition,
        entry_rules=PHASE_ENTRY_RULES,
    )


def validate_sub_phase_update(sub_phase, data: dict) -> None:
    """Raise ValidationError if the proposed sub-phase update is not admissible."""
    _validate(
        sub_phase, data,
        label="sub-phase",
        statuses=SUB_PHASE_STATUSES,
        is_allowed=validate_sub_phase_transition,
        entry_rules=SUB_PHASE_ENTRY_RULES,
    )


def is_status_change(entity, data: dict) -> bool:
    return "status" in data and data["status"] != entity.status

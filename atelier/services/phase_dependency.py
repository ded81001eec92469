"""
Phase dependency resolver and dependency-edge management.

Resolver:
    For one phase or a whole project's phase list, join each dependency
    edge to its target phase (single query, scoped to the project) and
    compute:
        dependencies           [{id, name, status, dependency_type}, ...]
        blocking_dependencies  names of hard targets not yet completed
        is_blocked             bool(blocking_dependencies)
    Edges whose target is not a phase of the same project are dropped.

Management:
    add_dependency / remove_dependency with self-loop, duplicate and cycle
    checks.
"""

import logging

from sqlalchemy import and_, select
from sqlalchemy.orm import aliased

from atelier.core.exceptions import ConflictError, NotFoundError, ValidationError
from atelier.models import db
from atelier.models.audit import write_audit
from atelier.models.phase import (
    DEPENDENCY_TYPES,
    PhaseDependency,
    PhaseStatus,
    ProjectPhase,
    validate_no_cycle,
)
from atelier.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def _empty_resolution():
    return {"dependencies": [], "blocking_dependencies": [], "is_blocked": False}


def resolve_dependencies(project_id: int, phase_ids: list[int]) -> dict[int, dict]:
    """Resolve dependency info for the given phases of one project.

    Pure read. Returns ``{phase_id: {"dependencies", "blocking_dependencies",
    "is_blocked"}}`` with an entry for every requested id.
    """
    result = {pid: _empty_resolution() for pid in phase_ids}
    if not phase_ids:
        return result

    target = aliased(ProjectPhase)
    rows = db.session.execute(
        select(
            PhaseDependency.project_phase_id,
            PhaseDependency.dependency_type,
            target.id,
            target.name,
            target.status,
        )
        .join(
            target,
            and_(
                PhaseDependency.depends_on_phase_id == target.id,
                target.project_id == project_id,
            ),
        )
        .where(PhaseDependency.project_phase_id.in_(phase_ids))
        .order_by(target.display_order, PhaseDependency.id)
    ).all()

    for phase_id, dep_type, target_id, target_name, target_status in rows:
        entry = result[phase_id]
        entry["dependencies"].append({
            "id": target_id,
            "name": target_name,
            "status": target_status,
            "dependency_type": dep_type,
        })
        if dep_type == "hard" and target_status != PhaseStatus.COMPLETED.value:
            entry["blocking_dependencies"].append(target_name)

    for entry in result.values():
        entry["is_blocked"] = len(entry["blocking_dependencies"]) > 0
    return result


def resolve_phase(phase: ProjectPhase) -> dict:
    """Dependency info for a single phase."""
    return resolve_dependencies(phase.project_id, [phase.id])[phase.id]


def blocking_dependencies(phase: ProjectPhase) -> list[str]:
    """Names of the phase's unmet hard dependencies."""
    return resolve_phase(phase)["blocking_dependencies"]


def can_phase_start(phase: ProjectPhase) -> tuple[bool, list[str]]:
    """Return (can_start, blocking_phase_names)."""
    blocking = blocking_dependencies(phase)
    return not blocking, blocking


def has_dependents(phase: ProjectPhase) -> bool:
    """True if any phase depends on this one (hard or soft)."""
    return db.session.execute(
        select(PhaseDependency.id)
        .where(PhaseDependency.depends_on_phase_id == phase.id)
        .limit(1)
    ).first() is not None


# ── Edge management ──────────────────────────────────────────────────────────


def list_dependencies(phase: ProjectPhase) -> list[dict]:
    """Edge rows of a phase with the resolved target phase."""
    resolved = {d["id"]: d for d in resolve_phase(phase)["dependencies"]}
    out = []
    for dep in phase.dependencies.order_by(PhaseDependency.id).all():
        d = dep.to_dict()
        d["depends_on_phase"] = resolved.get(dep.depends_on_phase_id)
        out.append(d)
    return out


def add_dependency(
    phase: ProjectPhase,
    depends_on_phase_id,
    dependency_type: str = "hard",
    *,
    user_id: int | None = None,
) -> PhaseDependency:
    """
    Add a phase → phase dependency with cycle detection.

    Raises:
        ValidationError: missing target id or unknown dependency_type.
        NotFoundError: target phase is not part of the same project.
        ConflictError: self dependency, duplicate edge, or cycle.
    """
    if depends_on_phase_id in (None, ""):
        raise ValidationError("depends_on_phase_id is required")
    try:
        depends_on_phase_id = int(depends_on_phase_id)
    except (TypeError, ValueError):
        raise ValidationError("depends_on_phase_id must be an integer")
    dependency_type = dependency_type or "hard"
    if dependency_type not in DEPENDENCY_TYPES:
        raise ValidationError(
            f"Invalid dependency_type '{dependency_type}'. "
            f"Allowed: {sorted(DEPENDENCY_TYPES)}"
        )

    target = get_scoped(ProjectPhase, depends_on_phase_id, resource="Phase",
                        project_id=phase.project_id)

    if target.id == phase.id:
        raise ConflictError("PhaseDependency", message="A phase cannot depend on itself")

    existing = PhaseDependency.query.filter_by(
        project_phase_id=phase.id, depends_on_phase_id=target.id,
    ).first()
    if existing:
        raise ConflictError("PhaseDependency", "depends_on_phase_id", str(target.id),
                            message="Dependency already exists")

    if not validate_no_cycle(db.session, phase.id, target.id):
        raise ConflictError("PhaseDependency",
                            message="Adding this dependency would create a cycle")

    dep = PhaseDependency(
        tenant_id=phase.tenant_id,
        project_phase_id=phase.id,
        depends_on_phase_id=target.id,
        dependency_type=dependency_type,
    )
    db.session.add(dep)
    db.session.flush()
    write_audit(
        entity_type="phase", entity_id=phase.id, action="phase.dependency_add",
        tenant_id=phase.tenant_id, project_id=phase.project_id, actor_user_id=user_id,
        diff={"depends_on_phase_id": target.id, "dependency_type": dependency_type},
    )
    db.session.commit()
    logger.info("PhaseDependency added %s → %s (%s)", phase.id, target.id, dependency_type,
                extra={"project_id": phase.project_id, "phase_id": phase.id})
    return dep


def remove_dependency(phase: ProjectPhase, dependency_id: int, *, user_id: int | None = None) -> None:
    """Remove one outgoing edge of the phase.

    Removing a hard edge may unblock the phase.
    """
    dep = PhaseDependency.query.filter_by(id=dependency_id, project_phase_id=phase.id).first()
    if dep is None:
        raise NotFoundError(resource="Dependency", resource_id=dependency_id)
    target_id = dep.depends_on_phase_id
    db.session.delete(dep)
    write_audit(
        entity_type="phase", entity_id=phase.id, action="phase.dependency_remove",
        tenant_id=phase.tenant_id, project_id=phase.project_id, actor_user_id=user_id,
        diff={"depends_on_phase_id": target_id},
    )
    db.session.commit()
    logger.info("PhaseDependency removed id=%s (%s → %s)", dependency_id, phase.id, target_id,
                extra={"project_id": phase.project_id, "phase_id": phase.id})

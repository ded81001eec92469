"""
Phase initializer — expands the template catalogue into a project's phases.

Template selection:
    system templates plus the tenant's own, active and default_enabled,
    whose ``applicable_to`` contains the project category. A tenant
    template with the same code as a system template replaces it.

Expansion:
    PhaseTemplate        → ProjectPhase      (display_order 1..n)
    SubPhaseTemplate     → ProjectSubPhase
    DependencyTemplate   → PhaseDependency   (only when both ends were created)
"""

import logging

from flask import current_app
from sqlalchemy import delete, func, or_, select

from atelier.core.exceptions import ConflictError
from atelier.models import db
from atelier.models.audit import write_audit
from atelier.models.phase import PhaseDependency, ProjectPhase, ProjectSubPhase
from atelier.models.phase_template import DependencyTemplate, PhaseTemplate
from atelier.models.project import Project

logger = logging.getLogger(__name__)


def select_templates(tenant_id: int, category: str) -> list[PhaseTemplate]:
    """Templates that apply to *category* for this tenant, in display order."""
    candidates = (
        PhaseTemplate.query
        .filter(PhaseTemplate.is_active.is_(True), PhaseTemplate.default_enabled.is_(True))
        .filter(or_(PhaseTemplate.tenant_id.is_(None), PhaseTemplate.tenant_id == tenant_id))
        .order_by(PhaseTemplate.display_order, PhaseTemplate.id)
        .all()
    )
    by_code = {}
    for tpl in candidates:
        if not tpl.applies_to(category):
            continue
        current = by_code.get(tpl.code)
        if current is None or (current.tenant_id is None and tpl.tenant_id is not None):
            by_code[tpl.code] = tpl
    return sorted(by_code.values(), key=lambda t: (t.display_order, t.id))


def _existing_phase_count(project_id: int) -> int:
    return db.session.execute(
        select(func.count(ProjectPhase.id)).where(ProjectPhase.project_id == project_id)
    ).scalar() or 0


def _clear_phases(project: Project) -> None:
    project.current_phase_id = None
    phase_ids = select(ProjectPhase.id).where(ProjectPhase.project_id == project.id)
    db.session.execute(
        delete(PhaseDependency)
        .where(PhaseDependency.project_phase_id.in_(phase_ids))
        .execution_options(synchronize_session=False)
    )
    for phase in ProjectPhase.query.filter_by(project_id=project.id).all():
        db.session.delete(phase)
    db.session.flush()


def initialize_project_phases(
    project: Project,
    *,
    force: bool = False,
    user_id: int | None = None,
) -> dict:
    """Create the project's phase set from templates and commit.

    Args:
        project: Target project.
        force: Replace existing phases instead of refusing.
        user_id: Acting user for the audit trail.

    Returns:
        ``{"phases": n, "sub_phases": n, "dependencies": n}``

    Raises:
        ConflictError: phases already exist and *force* is false.
    """
    existing = _existing_phase_count(project.id)
    if existing and not force:
        raise ConflictError(
            "ProjectPhase",
            message="Phases already exist for this project",
            details={
                "existing_count": existing,
                "hint": "Pass force=true to replace the existing phases",
            },
        )
    if existing:
        logger.warning("Replacing %d existing phases of project %s", existing, project.id,
                       extra={"project_id": project.id})
        _clear_phases(project)

    category = project.category or current_app.config.get("DEFAULT_PROJECT_CATEGORY", "turnkey")
    templates = select_templates(project.tenant_id, category)

    phase_by_template = {}
    sub_count = 0
    for order, tpl in enumerate(templates, start=1):
        phase = ProjectPhase(
            tenant_id=project.tenant_id,
            project_id=project.id,
            phase_template_id=tpl.id,
            name=tpl.name,
            description=tpl.description,
            category_code=tpl.category_code,
            estimated_duration_hours=tpl.estimated_duration_hours,
            display_order=order,
            is_custom=False,
            created_by=user_id,
        )
        for sub_tpl in tpl.sub_phase_templates:
            phase.sub_phases.append(ProjectSubPhase(
                tenant_id=project.tenant_id,
                project_id=project.id,
                sub_phase_template_id=sub_tpl.id,
                name=sub_tpl.name,
                description=sub_tpl.description,
                is_required=sub_tpl.is_required,
                display_order=sub_tpl.display_order,
            ))
            sub_count += 1
        db.session.add(phase)
        phase_by_template[tpl.id] = phase
    db.session.flush()

    dep_count = 0
    if phase_by_template:
        dep_templates = DependencyTemplate.query.filter(
            DependencyTemplate.phase_template_id.in_(list(phase_by_template))
        ).all()
        for dt in dep_templates:
            target = phase_by_template.get(dt.depends_on_phase_template_id)
            if target is None:
                continue
            db.session.add(PhaseDependency(
                tenant_id=project.tenant_id,
                project_phase_id=phase_by_template[dt.phase_template_id].id,
                depends_on_phase_id=target.id,
                dependency_type=dt.dependency_type,
            ))
            dep_count += 1

    summary = {
        "phases": len(phase_by_template),
        "sub_phases": sub_count,
        "dependencies": dep_count,
    }
    write_audit(
        entity_type="project", entity_id=project.id, action="project.initialize_phases",
        tenant_id=project.tenant_id, project_id=project.id, actor_user_id=user_id,
        diff={"category": category, "force": force, **summary},
    )
    db.session.commit()
    logger.info("Initialized phases for project %s (%s): %s", project.id, category, summary,
                extra={"project_id": project.id})
    return summary

"""
Project service — tenant-scoped project CRUD.

Creating a project commits it first, then runs the phase initializer
(when AUTO_INITIALIZE_PHASES is on). An initializer failure is logged and
leaves the project in place; the caller can retry through the
initialize-phases endpoint.
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from atelier.core.exceptions import ValidationError
from atelier.models import db
from atelier.models.audit import write_audit
from atelier.models.project import (
    PROJECT_CATEGORIES,
    PROJECT_STATUSES,
    PROJECT_TYPES,
    Project,
)
from atelier.services.helpers.field_parsing import (
    check_date_order,
    coerce_choice,
    coerce_dates,
    coerce_required_text,
)
from atelier.services.helpers.scoped_queries import get_scoped
from atelier.services.phase_initializer import initialize_project_phases
from atelier.utils.errors import E
from atelier.utils.helpers import clean_text, parse_bool

logger = logging.getLogger(__name__)

_DATE_FIELDS = ("start_date", "expected_end_date", "actual_end_date")
_TEXT_FIELDS = ("description", "client_name", "site_address")


def generate_project_number(tenant_id: int) -> str:
    """Next tenant-scoped project number for the current year: PRJ-26-0001, ..."""
    prefix = f"PRJ-{datetime.now(timezone.utc):%y}-"
    count = db.session.execute(
        select(func.count(Project.id)).where(
            Project.tenant_id == tenant_id,
            Project.project_number.like(f"{prefix}%"),
        )
    ).scalar() or 0
    number = count + 1
    while db.session.execute(
        select(Project.id).where(
            Project.tenant_id == tenant_id,
            Project.project_number == f"{prefix}{number:04d}",
        )
    ).first():
        number += 1
    return f"{prefix}{number:04d}"


def get_project(tenant_id: int, project_id: int) -> Project:
    return get_scoped(Project, project_id, resource="Project", tenant_id=tenant_id)


def list_projects(
    tenant_id: int,
    *,
    status: str | None = None,
    is_active: bool | None = True,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Project], int]:
    """Return (page, total) of the tenant's projects, newest first."""
    q = Project.query_for_tenant(tenant_id)
    if is_active is not None:
        q = q.filter(Project.is_active.is_(is_active))
    if status:
        q = q.filter(Project.status == status)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Project.name.ilike(like),
            Project.project_number.ilike(like),
            Project.client_name.ilike(like),
        ))
    total = q.count()
    items = (
        q.order_by(Project.created_at.desc(), Project.id.desc())
        .limit(max(1, min(limit, 200)))
        .offset(max(0, offset))
        .all()
    )
    return items, total


def _collect_fields(data: dict) -> dict:
    fields = {}
    if "name" in data:
        fields["name"] = coerce_required_text(data["name"], "Project name is required")
    if "category" in data:
        fields["category"] = coerce_choice(data["category"], PROJECT_CATEGORIES, "category")
    if "project_type" in data:
        fields["project_type"] = coerce_choice(data["project_type"], PROJECT_TYPES, "project_type")
    if "status" in data:
        fields["status"] = coerce_choice(data["status"], PROJECT_STATUSES, "status")
    if "budget" in data:
        budget = data["budget"]
        if budget in (None, ""):
            fields["budget"] = None
        else:
            try:
                fields["budget"] = float(budget)
            except (TypeError, ValueError):
                raise ValidationError("budget must be a number", code=E.VALIDATION_INVALID)
    for f in _TEXT_FIELDS:
        if f in data:
            fields[f] = clean_text(data[f])
    fields.update(coerce_dates(data, _DATE_FIELDS))
    return fields


def create_project(tenant_id: int, data: dict, *, user_id: int | None = None) -> tuple[Project, dict | None]:
    """Create a project and, if enabled, its phase set.

    Returns:
        (project, initialization summary or None)
    """
    if not clean_text(data.get("name")):
        raise ValidationError("Project name is required", code=E.VALIDATION_REQUIRED)
    fields = _collect_fields(data)
    fields.setdefault("category", current_app.config.get("DEFAULT_PROJECT_CATEGORY", "turnkey"))
    check_date_order(fields.get("start_date"), fields.get("expected_end_date"),
                     "start_date", "expected_end_date")

    project = Project(
        tenant_id=tenant_id,
        project_number=generate_project_number(tenant_id),
        created_by=user_id,
        **fields,
    )
    db.session.add(project)
    db.session.flush()
    write_audit(
        entity_type="project", entity_id=project.id, action="project.create",
        tenant_id=tenant_id, project_id=project.id, actor_user_id=user_id,
        diff={"name": project.name, "category": project.category},
    )
    db.session.commit()
    logger.info("Project created id=%s number=%s", project.id, project.project_number,
                extra={"tenant_id": tenant_id, "project_id": project.id})

    summary = None
    if current_app.config.get("AUTO_INITIALIZE_PHASES", True) and parse_bool(
        data.get("initialize_phases", True)
    ):
        try:
            summary = initialize_project_phases(project, user_id=user_id)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Phase initialization failed for project %s; project kept",
                             project.id, extra={"project_id": project.id})
    return project, summary


def update_project(project: Project, data: dict, *, user_id: int | None = None) -> Project:
    fields = _collect_fields(data)
    check_date_order(fields.get("start_date", project.start_date),
                     fields.get("expected_end_date", project.expected_end_date),
                     "start_date", "expected_end_date")
    diff = {}
    for field, value in fields.items():
        old = getattr(project, field)
        if old != value:
            diff[field] = {"old": old, "new": value}
            setattr(project, field, value)
    if diff:
        write_audit(
            entity_type="project", entity_id=project.id, action="project.update",
            tenant_id=project.tenant_id, project_id=project.id, actor_user_id=user_id,
            diff=diff,
        )
    db.session.commit()
    logger.info("Project updated id=%s fields=%s", project.id, sorted(diff),
                extra={"project_id": project.id})
    return project


def delete_project(project: Project, *, user_id: int | None = None) -> None:
    """Soft delete: the row and its phase history stay."""
    project.is_active = False
    write_audit(
        entity_type="project", entity_id=project.id, action="project.delete",
        tenant_id=project.tenant_id, project_id=project.id, actor_user_id=user_id,
    )
    db.session.commit()
    logger.info("Project soft-deleted id=%s", project.id, extra={"project_id": project.id})

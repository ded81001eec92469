"""
Tenant-scoped query helpers.

Every get-by-id MUST go through these helpers instead of
Model.query.get(pk) or db.session.get(Model, pk). Direct .get() calls
bypass tenant isolation.

Usage:
    # Scope by tenant_id (TenantModel subclasses)
    project = get_scoped(Project, project_id, tenant_id=tenant_id)

    # Scope by parent: phase inside its project
    phase = get_scoped(ProjectPhase, phase_id, project_id=project.id)

    # Sub-phase inside its phase
    sub = get_scoped(ProjectSubPhase, sub_id, project_phase_id=phase.id)

    # When None is an acceptable outcome (optional FK lookups)
    user = get_scoped_or_none(User, user_id, tenant_id=tenant_id)

Scope field resolution:
    Each keyword argument maps directly to a column name on the model.
    If the model does not have that column, a ValueError is raised at
    call time so the bug surfaces during development rather than
    silently allowing unscoped access.
"""

import logging

from sqlalchemy import select

from atelier.core.exceptions import NotFoundError
from atelier.models import db

logger = logging.getLogger(__name__)

_SCOPE_KWARGS = ("tenant_id", "project_id", "project_phase_id", "sub_phase_id")


def get_scoped(
    model,
    pk: int,
    *,
    resource: str | None = None,
    tenant_id: int | None = None,
    project_id: int | None = None,
    project_phase_id: int | None = None,
    sub_phase_id: int | None = None,
):
    """Fetch a single entity by PK with mandatory scope filter.

    At least one scope parameter MUST be provided and every provided one
    MUST correspond to a column on the model.

    Cross-tenant access is indistinguishable from a missing record: both
    raise NotFoundError → HTTP 404.

    Args:
        model: SQLAlchemy model class with an `id` PK column.
        pk: Primary key value to look up.
        resource: Name used in the NotFoundError (defaults to the class name).
        tenant_id / project_id / project_phase_id / sub_phase_id: scope filters.

    Raises:
        ValueError: If no scope is provided or a scope column is missing.
        NotFoundError: If the entity does not exist OR belongs to a different scope.
    """
    provided_scopes = {
        "tenant_id": tenant_id,
        "project_id": project_id,
        "project_phase_id": project_phase_id,
        "sub_phase_id": sub_phase_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            f"({', '.join(_SCOPE_KWARGS)}). Unscoped lookups are forbidden."
        )

    missing_fields = sorted(f for f in provided_scopes if not hasattr(model, f))
    if missing_fields:
        raise ValueError(
            f"{model.__name__} has no scope column(s) {missing_fields}; "
            "refusing to perform a partially scoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in provided_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = db.session.execute(stmt).unique().scalar_one_or_none()

    if result is None:
        logger.debug(
            "get_scoped: %s id=%s not found in scope %s",
            model.__name__,
            pk,
            provided_scopes,
        )
        raise NotFoundError(resource=resource or model.__name__, resource_id=pk)

    return result


def get_scoped_or_none(model, pk: int, **scopes):
    """Same as get_scoped but returns None instead of raising NotFoundError.

    Still enforces the scope requirement (ValueError), because silent
    unscoped lookups are never acceptable regardless of return style.
    """
    try:
        return get_scoped(model, pk, **scopes)
    except NotFoundError:
        return None

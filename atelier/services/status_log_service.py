"""
Status-log persistence for phases and sub-phases.

Write policy (``STATUS_LOG_ATOMIC``):
    False (default)  the entity update commits first; the log row is
                     written afterwards and a failure there is rolled back
                     and logged at ERROR, the request still succeeds.
    True             the log row is flushed into the same transaction as
                     the update; a failure fails the whole request.
"""

import logging

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from atelier.models import db
from atelier.models.phase import PhaseStatusLog, record_status_change

logger = logging.getLogger(__name__)


def commit_with_status_log(log_entry: dict | None) -> PhaseStatusLog | None:
    """Commit pending changes plus, when given, one status-log row.

    Args:
        log_entry: keyword arguments for ``record_status_change`` or None
                   when the update did not change status.

    Returns:
        The written PhaseStatusLog, or None if nothing (or nothing
        successfully) was logged.
    """
    if log_entry is None:
        db.session.commit()
        return None

    if current_app.config.get("STATUS_LOG_ATOMIC", False):
        entry = record_status_change(**log_entry)
        db.session.commit()
        return entry

    db.session.commit()
    try:
        entry = record_status_change(**log_entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error(
            "Status log write failed (%s → %s); update kept",
            log_entry.get("previous_status"), log_entry.get("new_status"),
            exc_info=True,
            extra={
                "project_id": log_entry.get("project_id"),
                "phase_id": log_entry.get("phase_id"),
                "sub_phase_id": log_entry.get("sub_phase_id"),
            },
        )
        return None
    return entry


def list_status_logs(*, phase_id: int | None = None, sub_phase_id: int | None = None) -> list[PhaseStatusLog]:
    """Newest first. Exactly one of the ids must be given."""
    if (phase_id is None) == (sub_phase_id is None):
        raise ValueError("list_status_logs needs exactly one of phase_id or sub_phase_id")
    stmt = select(PhaseStatusLog)
    if phase_id is not None:
        stmt = stmt.where(PhaseStatusLog.phase_id == phase_id)
    else:
        stmt = stmt.where(PhaseStatusLog.sub_phase_id == sub_phase_id)
    stmt = stmt.order_by(PhaseStatusLog.changed_at.desc(), PhaseStatusLog.id.desc())
    return db.session.execute(stmt).unique().scalars().all()

"""
Atelier — project phase workflow models.

Models:
    - ProjectPhase:       stage of a project (design, procurement, installation …)
    - ProjectSubPhase:    actionable step inside a phase
    - PhaseDependency:    directed edge phase → phase it depends on (hard | soft)
    - PhaseStatusLog:     append-only record of every accepted status change
    - ChecklistItem:      tick-box item inside a sub-phase
    - PhaseComment:       discussion thread on a sub-phase

Architecture:
    Project ──1:N──▶ ProjectPhase ──1:N──▶ ProjectSubPhase ──1:N──▶ ChecklistItem
    ProjectPhase ──N:M──▶ ProjectPhase  (via PhaseDependency)
    ProjectSubPhase ──1:N──▶ PhaseComment
    Project ──1:N──▶ PhaseStatusLog  (phase_id XOR sub_phase_id)

Lifecycle states:
    ProjectPhase:     not_started | in_progress | on_hold | completed | cancelled | blocked
    ProjectSubPhase:  not_started | in_progress | on_hold | completed | skipped
    Every state may move to every other state. Entering in_progress is
    gated by the transition rules in atelier.services.phase_transitions.
"""

from datetime import datetime, timezone
from enum import Enum

from atelier.models import db
from atelier.models.base import TenantModel


# ── Constants ────────────────────────────────────────────────────────────────


class PhaseStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


class SubPhaseStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    SKIPPED = "skipped"


PHASE_STATUSES = {s.value for s in PhaseStatus}
SUB_PHASE_STATUSES = {s.value for s in SubPhaseStatus}

DEPENDENCY_TYPES = {"hard", "soft"}
PROGRESS_MODES = {"auto", "manual"}
COMMENT_TYPES = {"note", "issue", "update", "question"}


def _unrestricted(states):
    return {s: sorted(states - {s}) for s in states}


# Explicit table of allowed moves. Every pair is allowed; entry guards are
# attached per target state in the transition service.
PHASE_TRANSITIONS = _unrestricted(PHASE_STATUSES)
SUB_PHASE_TRANSITIONS = _unrestricted(SUB_PHASE_STATUSES)


def validate_phase_transition(old_status, new_status):
    """Return True if ProjectPhase status transition is valid."""
    return old_status == new_status or new_status in PHASE_TRANSITIONS.get(old_status, [])


def validate_sub_phase_transition(old_status, new_status):
    """Return True if ProjectSubPhase status transition is valid."""
    return old_status == new_status or new_status in SUB_PHASE_TRANSITIONS.get(old_status, [])


def _iso(value):
    return value.isoformat() if value else None


# ── Cycle Detection ──────────────────────────────────────────────────────────


def validate_no_cycle(session, phase_id, new_depends_on_id):
    """
    Check that adding phase_id → new_depends_on_id does not create a cycle.

    Iterative DFS from new_depends_on_id along existing "depends on" edges.
    Returns True if safe, False if phase_id is reachable (cycle).
    """
    if phase_id == new_depends_on_id:
        return False

    visited = set()
    stack = [new_depends_on_id]

    while stack:
        current = stack.pop()
        if current == phase_id:
            return False
        if current in visited:
            continue
        visited.add(current)

        targets = (
            session.query(PhaseDependency.depends_on_phase_id)
            .filter(PhaseDependency.project_phase_id == current)
            .all()
        )
        for (target_id,) in targets:
            stack.append(target_id)

    return True


# ═════════════════════════════════════════════════════════════════════════════
# 1. ProjectPhase
# ═════════════════════════════════════════════════════════════════════════════


class ProjectPhase(TenantModel):
    """
    A stage of a project. Created from a PhaseTemplate by the initializer
    or added by hand (is_custom=True).

    Cannot enter in_progress without an assignee; the check runs at
    mutation time, not as a DB constraint.
    """

    __tablename__ = "project_phases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    phase_template_id = db.Column(
        db.Integer, db.ForeignKey("phase_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_code = db.Column(db.String(50), nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default=PhaseStatus.NOT_STARTED.value,
        comment="not_started | in_progress | on_hold | completed | cancelled | blocked",
    )
    progress_percentage = db.Column(db.Integer, nullable=False, default=0)
    progress_mode = db.Column(
        db.String(10), nullable=False, default="auto",
        comment="auto | manual",
    )
    assigned_to = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    planned_start_date = db.Column(db.Date, nullable=True)
    planned_end_date = db.Column(db.Date, nullable=True)
    actual_start_date = db.Column(db.Date, nullable=True)
    actual_end_date = db.Column(db.Date, nullable=True)
    estimated_duration_hours = db.Column(db.Integer, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    is_custom = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="phases", foreign_keys=[project_id])
    assignee = db.relationship("User", foreign_keys=[assigned_to], lazy="joined")
    sub_phases = db.relationship(
        "ProjectSubPhase",
        back_populates="phase",
        cascade="all, delete-orphan",
        order_by="ProjectSubPhase.display_order",
    )
    dependencies = db.relationship(
        "PhaseDependency",
        foreign_keys="PhaseDependency.project_phase_id",
        back_populates="phase",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    __table_args__ = (
        db.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_phase_progress_range",
        ),
        db.Index("ix_project_phases_project_order", "project_id", "display_order"),
    )

    def to_dict(self, include_sub_phases=False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "phase_template_id": self.phase_template_id,
            "name": self.name,
            "description": self.description,
            "category_code": self.category_code,
            "status": self.status,
            "progress_percentage": self.progress_percentage,
            "progress_mode": self.progress_mode,
            "assigned_to": self.assigned_to,
            "assigned_user": self.assignee.to_identity() if self.assignee else None,
            "planned_start_date": _iso(self.planned_start_date),
            "planned_end_date": _iso(self.planned_end_date),
            "actual_start_date": _iso(self.actual_start_date),
            "actual_end_date": _iso(self.actual_end_date),
            "estimated_duration_hours": self.estimated_duration_hours,
            "display_order": self.display_order,
            "notes": self.notes,
            "is_custom": self.is_custom,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_sub_phases:
            d["sub_phases"] = [sp.to_dict(include_checklist=True) for sp in self.sub_phases]
        return d

    def __repr__(self):
        return f"<ProjectPhase {self.id}: {self.name} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ProjectSubPhase
# ═════════════════════════════════════════════════════════════════════════════


class ProjectSubPhase(TenantModel):
    """Actionable step inside a phase. Completion does not roll up to the phase."""

    __tablename__ = "project_sub_phases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    project_phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    sub_phase_template_id = db.Column(
        db.Integer, db.ForeignKey("sub_phase_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default=SubPhaseStatus.NOT_STARTED.value,
        comment="not_started | in_progress | on_hold | completed | skipped",
    )
    progress_percentage = db.Column(db.Integer, nullable=False, default=0)
    assigned_to = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    due_date = db.Column(db.Date, nullable=True)
    planned_start_date = db.Column(db.Date, nullable=True)
    planned_end_date = db.Column(db.Date, nullable=True)
    actual_start_date = db.Column(db.Date, nullable=True)
    actual_end_date = db.Column(db.Date, nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    started_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    skipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    skipped_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    skip_reason = db.Column(db.Text, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    phase = db.relationship("ProjectPhase", back_populates="sub_phases")
    template = db.relationship("SubPhaseTemplate", lazy="joined")
    assignee = db.relationship("User", foreign_keys=[assigned_to], lazy="joined")
    starter = db.relationship("User", foreign_keys=[started_by])
    completer = db.relationship("User", foreign_keys=[completed_by])
    skipper = db.relationship("User", foreign_keys=[skipped_by])
    checklist_items = db.relationship(
        "ChecklistItem",
        back_populates="sub_phase",
        cascade="all, delete-orphan",
        order_by="ChecklistItem.display_order",
    )
    comments = db.relationship(
        "PhaseComment",
        back_populates="sub_phase",
        cascade="all, delete-orphan",
        order_by="PhaseComment.created_at",
    )

    __table_args__ = (
        db.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_sub_phase_progress_range",
        ),
    )

    @property
    def can_skip(self):
        return self.template.can_skip if self.template else True

    def to_dict(self, include_checklist=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "project_phase_id": self.project_phase_id,
            "sub_phase_template_id": self.sub_phase_template_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "progress_percentage": self.progress_percentage,
            "assigned_to": self.assigned_to,
            "assigned_user": self.assignee.to_identity() if self.assignee else None,
            "is_required": self.is_required,
            "due_date": _iso(self.due_date),
            "planned_start_date": _iso(self.planned_start_date),
            "planned_end_date": _iso(self.planned_end_date),
            "actual_start_date": _iso(self.actual_start_date),
            "actual_end_date": _iso(self.actual_end_date),
            "started_at": _iso(self.started_at),
            "started_by": self.started_by,
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "skipped_at": _iso(self.skipped_at),
            "skipped_by": self.skipped_by,
            "skip_reason": self.skip_reason,
            "display_order": self.display_order,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_checklist:
            d["checklist_items"] = [c.to_dict() for c in self.checklist_items]
        return d

    def to_detail_dict(self):
        """Full view: template guidance, actor identities, checklist and comments."""
        d = self.to_dict(include_checklist=True)
        tpl = self.template
        d.update({
            "instructions": tpl.instructions if tpl else None,
            "can_skip": self.can_skip,
            "required_role": tpl.required_role if tpl else None,
            "estimated_duration_hours": tpl.estimated_duration_hours if tpl else None,
            "started_by_user": self.starter.to_identity() if self.starter else None,
            "completed_by_user": self.completer.to_identity() if self.completer else None,
            "skipped_by_user": self.skipper.to_identity() if self.skipper else None,
            "comments": [c.to_dict() for c in self.comments],
        })
        return d

    def __repr__(self):
        return f"<ProjectSubPhase {self.id}: {self.name} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. PhaseDependency
# ═════════════════════════════════════════════════════════════════════════════


class PhaseDependency(TenantModel):
    """
    Phase → phase it depends on.
    hard: blocks the dependent phase from entering in_progress until the
          target is completed.  soft: informational only.
    """

    __tablename__ = "project_phase_dependencies"

    id = db.Column(db.Integer, primary_key=True)
    project_phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    depends_on_phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    dependency_type = db.Column(
        db.String(10), nullable=False, default="hard",
        comment="hard | soft",
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    phase = db.relationship(
        "ProjectPhase", foreign_keys=[project_phase_id], back_populates="dependencies",
    )
    depends_on_phase = db.relationship("ProjectPhase", foreign_keys=[depends_on_phase_id])

    __table_args__ = (
        db.UniqueConstraint(
            "project_phase_id", "depends_on_phase_id",
            name="uq_phase_dependency",
        ),
        db.CheckConstraint(
            "project_phase_id != depends_on_phase_id",
            name="ck_phase_dep_no_self_loop",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_phase_id": self.project_phase_id,
            "depends_on_phase_id": self.depends_on_phase_id,
            "dependency_type": self.dependency_type,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<PhaseDependency {self.project_phase_id} → {self.depends_on_phase_id} ({self.dependency_type})>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. PhaseStatusLog
# ═════════════════════════════════════════════════════════════════════════════


class PhaseStatusLog(TenantModel):
    """
    Immutable status-change record. Exactly one of phase_id / sub_phase_id is
    set at write time; both references become NULL if the row they point to
    is deleted, while entity_type and project_id keep the history readable.
    """

    __tablename__ = "project_phase_status_logs"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    entity_type = db.Column(
        db.String(20), nullable=False,
        comment="phase | sub_phase",
    )
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    sub_phase_id = db.Column(
        db.Integer, db.ForeignKey("project_sub_phases.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    changer = db.relationship("User", foreign_keys=[changed_by], lazy="joined")

    __table_args__ = (
        db.CheckConstraint(
            "phase_id IS NULL OR sub_phase_id IS NULL",
            name="ck_status_log_single_target",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "phase_id": self.phase_id,
            "sub_phase_id": self.sub_phase_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "notes": self.notes,
            "changed_by": self.changed_by,
            "changed_by_user": self.changer.to_identity() if self.changer else None,
            "changed_at": _iso(self.changed_at),
        }

    def __repr__(self):
        return f"<PhaseStatusLog {self.id}: {self.previous_status} → {self.new_status}>"


def record_status_change(
    *,
    tenant_id: int,
    project_id: int,
    previous_status: str | None,
    new_status: str,
    notes: str | None = None,
    changed_by: int | None = None,
    phase_id: int | None = None,
    sub_phase_id: int | None = None,
) -> PhaseStatusLog:
    """
    Append a status-log row.  Uses ``flush`` so callers keep
    transaction control.

    Raises:
        ValueError: unless exactly one of phase_id / sub_phase_id is given.
    """
    if (phase_id is None) == (sub_phase_id is None):
        raise ValueError("Status log needs exactly one of phase_id or sub_phase_id")

    entry = PhaseStatusLog(
        tenant_id=tenant_id,
        project_id=project_id,
        entity_type="phase" if phase_id is not None else "sub_phase",
        phase_id=phase_id,
        sub_phase_id=sub_phase_id,
        previous_status=previous_status,
        new_status=new_status,
        notes=notes,
        changed_by=changed_by,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


# ═════════════════════════════════════════════════════════════════════════════
# 5. ChecklistItem
# ═════════════════════════════════════════════════════════════════════════════


class ChecklistItem(TenantModel):
    __tablename__ = "project_checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    sub_phase_id = db.Column(
        db.Integer, db.ForeignKey("project_sub_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    sub_phase = db.relationship("ProjectSubPhase", back_populates="checklist_items")
    completer = db.relationship("User", foreign_keys=[completed_by], lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "sub_phase_id": self.sub_phase_id,
            "name": self.name,
            "notes": self.notes,
            "is_completed": self.is_completed,
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "completed_by_user": self.completer.to_identity() if self.completer else None,
            "display_order": self.display_order,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ChecklistItem {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 6. PhaseComment
# ═════════════════════════════════════════════════════════════════════════════


class PhaseComment(TenantModel):
    __tablename__ = "project_phase_comments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    project_phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=False,
    )
    sub_phase_id = db.Column(
        db.Integer, db.ForeignKey("project_sub_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parent_comment_id = db.Column(
        db.Integer, db.ForeignKey("project_phase_comments.id", ondelete="CASCADE"),
        nullable=True,
    )
    content = db.Column(db.Text, nullable=False)
    comment_type = db.Column(
        db.String(20), nullable=False, default="note",
        comment="note | issue | update | question",
    )
    is_internal = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    sub_phase = db.relationship("ProjectSubPhase", back_populates="comments")
    author = db.relationship("User", foreign_keys=[created_by], lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_phase_id": self.project_phase_id,
            "sub_phase_id": self.sub_phase_id,
            "parent_comment_id": self.parent_comment_id,
            "content": self.content,
            "comment_type": self.comment_type,
            "is_internal": self.is_internal,
            "created_by": self.created_by,
            "author": self.author.to_identity() if self.author else None,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<PhaseComment {self.id} on sub_phase={self.sub_phase_id}>"

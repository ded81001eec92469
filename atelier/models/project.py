"""Project domain model — the client engagement that owns a phase set."""

from datetime import datetime, timezone

from atelier.models import db
from atelier.models.base import TenantModel


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_CATEGORIES = {
    "turnkey", "modular", "renovation", "consultation",
    "commercial_fitout", "hybrid", "other",
}

PROJECT_STATUSES = {
    "planning", "design", "procurement", "execution",
    "finishing", "handover", "completed", "on_hold", "cancelled",
}

PROJECT_TYPES = {
    "residential", "commercial", "hospitality", "retail",
    "office", "villa", "apartment", "other",
}


class Project(TenantModel):
    """Interior-design project. Never hard-deleted; ``is_active`` flags removal."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    client_name = db.Column(db.String(200), nullable=True)
    site_address = db.Column(db.Text, nullable=True)
    category = db.Column(
        db.String(30), nullable=False, default="turnkey",
        comment="turnkey | modular | renovation | consultation | commercial_fitout | hybrid | other",
    )
    project_type = db.Column(
        db.String(30), nullable=True, default="residential",
        comment="residential | commercial | hospitality | retail | office | villa | apartment | other",
    )
    status = db.Column(
        db.String(30), nullable=False, default="planning",
        comment="planning | design | procurement | execution | finishing | handover | completed | on_hold | cancelled",
    )
    current_phase_id = db.Column(
        db.Integer,
        db.ForeignKey(
            "project_phases.id", ondelete="SET NULL",
            use_alter=True, name="fk_projects_current_phase",
        ),
        nullable=True,
    )
    budget = db.Column(db.Numeric(14, 2), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    expected_end_date = db.Column(db.Date, nullable=True)
    actual_end_date = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    phases = db.relationship(
        "ProjectPhase",
        back_populates="project",
        foreign_keys="ProjectPhase.project_id",
        lazy="dynamic",
    )

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "project_number", name="uq_project_tenant_number"),
        db.Index("ix_projects_tenant_active", "tenant_id", "is_active"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_number": self.project_number,
            "name": self.name,
            "description": self.description,
            "client_name": self.client_name,
            "site_address": self.site_address,
            "category": self.category,
            "project_type": self.project_type,
            "status": self.status,
            "current_phase_id": self.current_phase_id,
            "budget": float(self.budget) if self.budget is not None else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "expected_end_date": self.expected_end_date.isoformat() if self.expected_end_date else None,
            "actual_end_date": self.actual_end_date.isoformat() if self.actual_end_date else None,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.project_number}>"

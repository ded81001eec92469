"""
Phase template catalogue — read-only input to the phase initializer.

Models:
    - PhaseCategory:        grouping shown on the board (design, execution …)
    - PhaseTemplate:        blueprint of a project phase; tenant_id NULL = system template
    - SubPhaseTemplate:     blueprint of a sub-phase with guidance for the assignee
    - DependencyTemplate:   phase template → phase template it depends on
"""

from datetime import datetime, timezone

from atelier.models import db


class PhaseCategory(db.Model):
    __tablename__ = "phase_categories"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }


class PhaseTemplate(db.Model):
    __tablename__ = "phase_templates"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="NULL = system template visible to every tenant",
    )
    category_code = db.Column(db.String(50), nullable=True)
    code = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    applicable_to = db.Column(
        db.JSON, nullable=False, default=list,
        comment="list of project categories this template applies to",
    )
    default_enabled = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    estimated_duration_hours = db.Column(db.Integer, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    sub_phase_templates = db.relationship(
        "SubPhaseTemplate",
        back_populates="phase_template",
        cascade="all, delete-orphan",
        order_by="SubPhaseTemplate.display_order",
    )
    dependency_templates = db.relationship(
        "DependencyTemplate",
        foreign_keys="DependencyTemplate.phase_template_id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_phase_template_tenant_code"),
    )

    @property
    def is_system_template(self):
        return self.tenant_id is None

    def applies_to(self, category):
        return category in (self.applicable_to or [])

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "category_code": self.category_code,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "applicable_to": list(self.applicable_to or []),
            "default_enabled": self.default_enabled,
            "is_active": self.is_active,
            "display_order": self.display_order,
            "estimated_duration_hours": self.estimated_duration_hours,
            "is_system_template": self.is_system_template,
        }
        if include_children:
            d["sub_phases"] = [s.to_dict() for s in self.sub_phase_templates]
            d["dependencies"] = [t.to_dict() for t in self.dependency_templates]
        return d

    def __repr__(self):
        return f"<PhaseTemplate {self.id}: {self.code}>"


class SubPhaseTemplate(db.Model):
    __tablename__ = "sub_phase_templates"

    id = db.Column(db.Integer, primary_key=True)
    phase_template_id = db.Column(
        db.Integer, db.ForeignKey("phase_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    instructions = db.Column(db.Text, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    can_skip = db.Column(db.Boolean, nullable=False, default=True)
    required_role = db.Column(db.String(50), nullable=True)
    estimated_duration_hours = db.Column(db.Integer, nullable=True)

    phase_template = db.relationship("PhaseTemplate", back_populates="sub_phase_templates")

    def to_dict(self):
        return {
            "id": self.id,
            "phase_template_id": self.phase_template_id,
            "name": self.name,
            "description": self.description,
            "instructions": self.instructions,
            "display_order": self.display_order,
            "is_required": self.is_required,
            "can_skip": self.can_skip,
            "required_role": self.required_role,
            "estimated_duration_hours": self.estimated_duration_hours,
        }


class DependencyTemplate(db.Model):
    __tablename__ = "phase_dependency_templates"

    id = db.Column(db.Integer, primary_key=True)
    phase_template_id = db.Column(
        db.Integer, db.ForeignKey("phase_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    depends_on_phase_template_id = db.Column(
        db.Integer, db.ForeignKey("phase_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    dependency_type = db.Column(
        db.String(10), nullable=False, default="hard",
        comment="hard | soft",
    )

    __table_args__ = (
        db.UniqueConstraint(
            "phase_template_id", "depends_on_phase_template_id",
            name="uq_dependency_template",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "phase_template_id": self.phase_template_id,
            "depends_on_phase_template_id": self.depends_on_phase_template_id,
            "dependency_type": self.dependency_type,
        }

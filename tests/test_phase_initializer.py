"""
tests/test_phase_initializer.py — template catalogue seeding and phase initialization.
"""

import pytest

from atelier.core.exceptions import ConflictError
from atelier.models import db
from atelier.models.audit import AuditLog
from atelier.models.phase import PhaseDependency, ProjectPhase, ProjectSubPhase
from atelier.models.phase_template import PhaseTemplate, SubPhaseTemplate
from atelier.services.phase_initializer import initialize_project_phases, select_templates
from atelier.services.phase_template_service import (
    DEFAULT_PHASE_TEMPLATES,
    list_templates,
    seed_default_templates,
)


class TestSeed:

    def test_seed_is_idempotent(self, templates):
        assert templates == len(DEFAULT_PHASE_TEMPLATES)
        assert seed_default_templates() == 0
        db.session.commit()
        assert PhaseTemplate.query.count() == len(DEFAULT_PHASE_TEMPLATES)

    def test_list_templates_by_category(self, templates, default_tenant):
        codes = [t.code for t in list_templates(default_tenant.id, "consultation")]
        assert codes == ["site_survey", "concept_design", "detailed_design", "handover"]
        assert len(list_templates(default_tenant.id)) == len(DEFAULT_PHASE_TEMPLATES)


class TestInitialize:

    @pytest.mark.parametrize("category,phases,subs,deps", [
        ("turnkey", 10, 28, 11),
        ("consultation", 4, 12, 3),
        ("modular", 9, 25, 9),
    ])
    def test_counts_by_category(self, project, templates, category, phases, subs, deps):
        project.category = category
        db.session.commit()
        summary = initialize_project_phases(project)
        assert summary == {"phases": phases, "sub_phases": subs, "dependencies": deps}
        assert ProjectPhase.query.filter_by(project_id=project.id).count() == phases
        assert ProjectSubPhase.query.filter_by(project_id=project.id).count() == subs
        assert PhaseDependency.query.count() == deps

    def test_phases_follow_template_order(self, project, templates):
        initialize_project_phases(project)
        phases = (ProjectPhase.query.filter_by(project_id=project.id)
                  .order_by(ProjectPhase.display_order).all())
        assert [p.display_order for p in phases] == list(range(1, 11))
        assert phases[0].name == "Site Survey & Measurement"
        assert phases[-1].name == "Handover"
        assert all(not p.is_custom and p.status == "not_started" for p in phases)
        assert phases[0].sub_phases[0].sub_phase_template_id is not None

    def test_dependencies_are_wired_to_project_phases(self, project, templates):
        initialize_project_phases(project)
        by_name = {p.name: p for p in ProjectPhase.query.filter_by(project_id=project.id)}
        concept = by_name["Concept Design"]
        dep = PhaseDependency.query.filter_by(project_phase_id=concept.id).one()
        assert dep.depends_on_phase_id == by_name["Site Survey & Measurement"].id
        assert dep.dependency_type == "hard"

    def test_refuses_without_force(self, project, templates):
        initialize_project_phases(project)
        with pytest.raises(ConflictError) as exc:
            initialize_project_phases(project)
        assert exc.value.details["existing_count"] == 10

    def test_force_replaces(self, project, templates, manager):
        initialize_project_phases(project, user_id=manager.id)
        first = ProjectPhase.query.filter_by(project_id=project.id).first()
        project.current_phase_id = first.id
        db.session.commit()

        summary = initialize_project_phases(project, force=True, user_id=manager.id)
        assert summary["phases"] == 10
        assert ProjectPhase.query.filter_by(project_id=project.id).count() == 10
        assert PhaseDependency.query.count() == 11
        db.session.refresh(project)
        assert project.current_phase_id is None
        audits = AuditLog.query.filter_by(action="project.initialize_phases").all()
        assert len(audits) == 2
        assert audits[1].diff["force"] is True

    def test_no_templates_creates_nothing(self, project):
        assert initialize_project_phases(project) == {"phases": 0, "sub_phases": 0, "dependencies": 0}


class TestTemplateSelection:

    def test_tenant_template_overrides_system_code(self, templates, default_tenant):
        custom = PhaseTemplate(tenant_id=default_tenant.id, code="handover", name="Studio Handover",
                               applicable_to=["turnkey"], display_order=10)
        custom.sub_phase_templates.append(SubPhaseTemplate(name="Key ceremony", display_order=1))
        db.session.add(custom)
        db.session.commit()

        selected = select_templates(default_tenant.id, "turnkey")
        handover = [t for t in selected if t.code == "handover"]
        assert [t.name for t in handover] == ["Studio Handover"]
        assert len(selected) == 10

    def test_other_tenant_templates_invisible(self, templates, default_tenant, other_tenant):
        db.session.add(PhaseTemplate(tenant_id=other_tenant.id, code="styling", name="Styling",
                                     applicable_to=["turnkey"], display_order=11))
        db.session.commit()
        assert "styling" not in {t.code for t in select_templates(default_tenant.id, "turnkey")}
        assert "styling" in {t.code for t in select_templates(other_tenant.id, "turnkey")}

    def test_disabled_templates_skipped(self, templates, default_tenant):
        tpl = PhaseTemplate.query.filter_by(code="civil_work").one()
        tpl.default_enabled = False
        db.session.commit()
        assert "civil_work" not in {t.code for t in select_templates(default_tenant.id, "turnkey")}

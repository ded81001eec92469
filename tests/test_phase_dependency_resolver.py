"""
tests/test_phase_dependency_resolver.py — dependency resolution and edge management.

Covers:
    1. Phases without edges resolve to an empty, unblocked entry
    2. Hard edge on an incomplete target blocks; completion unblocks
    3. Soft edges are listed but never block
    4. Edges to phases outside the project are dropped
    5. add_dependency: self, duplicate, cycle, unknown target, bad type
    6. remove_dependency unblocks and audits
"""

import pytest

from atelier.core.exceptions import ConflictError, NotFoundError, ValidationError
from atelier.models import db
from atelier.models.audit import AuditLog
from atelier.models.phase import PhaseDependency, ProjectPhase, validate_no_cycle
from atelier.models.project import Project
from atelier.services.phase_dependency import (
    add_dependency as add_edge,
    can_phase_start,
    has_dependents,
    list_dependencies,
    remove_dependency,
    resolve_dependencies,
    resolve_phase,
)


class TestResolver:

    def test_phase_without_edges(self, project, add_phase):
        a = add_phase("Site Survey")
        res = resolve_phase(a)
        assert res == {"dependencies": [], "blocking_dependencies": [], "is_blocked": False}

    def test_every_requested_id_has_an_entry(self, project, add_phase):
        a = add_phase("A")
        b = add_phase("B")
        res = resolve_dependencies(project.id, [a.id, b.id])
        assert set(res) == {a.id, b.id}
        assert resolve_dependencies(project.id, []) == {}

    def test_hard_dependency_blocks_until_completed(self, project, add_phase, add_dependency):
        a = add_phase("Concept Design")
        b = add_phase("Detailed Design")
        add_dependency(b, a, "hard")

        res = resolve_phase(b)
        assert res["is_blocked"] is True
        assert res["blocking_dependencies"] == ["Concept Design"]
        assert res["dependencies"] == [{
            "id": a.id, "name": "Concept Design",
            "status": "not_started", "dependency_type": "hard",
        }]
        assert can_phase_start(b) == (False, ["Concept Design"])

        a.status = "completed"
        db.session.commit()
        res = resolve_phase(b)
        assert res["is_blocked"] is False
        assert res["blocking_dependencies"] == []
        assert res["dependencies"][0]["status"] == "completed"

    def test_soft_dependency_never_blocks(self, project, add_phase, add_dependency):
        a = add_phase("Procurement")
        b = add_phase("Civil Work")
        add_dependency(b, a, "soft")

        res = resolve_phase(b)
        assert res["is_blocked"] is False
        assert [d["dependency_type"] for d in res["dependencies"]] == ["soft"]

    def test_mixed_dependencies_list_only_hard_incomplete(self, project, add_phase, add_dependency):
        a = add_phase("Production", status="completed")
        b = add_phase("Civil Work")
        c = add_phase("Survey")
        d = add_phase("Installation")
        add_dependency(d, a, "hard")
        add_dependency(d, b, "hard")
        add_dependency(d, c, "soft")

        res = resolve_phase(d)
        assert res["blocking_dependencies"] == ["Civil Work"]
        assert len(res["dependencies"]) == 3

    def test_edge_to_other_project_is_dropped(self, project, add_phase, default_tenant):
        other = Project(tenant_id=default_tenant.id, project_number="PRJ-26-0099", name="Other")
        db.session.add(other)
        db.session.commit()
        foreign = ProjectPhase(tenant_id=default_tenant.id, project_id=other.id,
                               name="Foreign", display_order=1)
        db.session.add(foreign)
        db.session.commit()

        a = add_phase("Local")
        db.session.add(PhaseDependency(tenant_id=default_tenant.id, project_phase_id=a.id,
                                       depends_on_phase_id=foreign.id, dependency_type="hard"))
        db.session.commit()

        res = resolve_phase(a)
        assert res["dependencies"] == []
        assert res["is_blocked"] is False

    def test_has_dependents(self, project, add_phase, add_dependency):
        a = add_phase("A")
        b = add_phase("B")
        assert has_dependents(a) is False
        add_dependency(b, a, "soft")
        assert has_dependents(a) is True
        assert has_dependents(b) is False


class TestCycleDetection:

    def test_chain_and_back_edge(self, project, add_phase, add_dependency):
        a, b, c = add_phase("A"), add_phase("B"), add_phase("C")
        add_dependency(b, a)
        add_dependency(c, b)
        # c → b → a; adding a → c closes the loop
        assert validate_no_cycle(db.session, a.id, c.id) is False
        assert validate_no_cycle(db.session, c.id, a.id) is True
        assert validate_no_cycle(db.session, a.id, a.id) is False

    def test_diamond_is_not_a_cycle(self, project, add_phase, add_dependency):
        a, b, c, d = add_phase("A"), add_phase("B"), add_phase("C"), add_phase("D")
        add_dependency(b, a)
        add_dependency(c, a)
        add_dependency(d, b)
        assert validate_no_cycle(db.session, d.id, c.id) is True


class TestEdgeManagement:

    def test_add_dependency(self, project, add_phase, manager):
        a = add_phase("A")
        b = add_phase("B")
        dep = add_edge(b, a.id, "hard", user_id=manager.id)
        assert dep.id is not None
        assert resolve_phase(b)["blocking_dependencies"] == ["A"]
        audit = AuditLog.query.filter_by(action="phase.dependency_add").one()
        assert audit.entity_id == str(b.id)
        assert audit.actor_user_id == manager.id

    def test_add_dependency_defaults_to_hard(self, project, add_phase):
        a, b = add_phase("A"), add_phase("B")
        dep = add_edge(b, str(a.id), None)
        assert dep.dependency_type == "hard"

    def test_self_dependency_rejected(self, project, add_phase):
        a = add_phase("A")
        with pytest.raises(ConflictError, match="itself"):
            add_edge(a, a.id)

    def test_duplicate_rejected(self, project, add_phase):
        a, b = add_phase("A"), add_phase("B")
        add_edge(b, a.id)
        with pytest.raises(ConflictError, match="already exists"):
            add_edge(b, a.id)

    def test_cycle_rejected(self, project, add_phase):
        a, b = add_phase("A"), add_phase("B")
        add_edge(b, a.id)
        with pytest.raises(ConflictError, match="cycle"):
            add_edge(a, b.id)
        assert PhaseDependency.query.count() == 1

    def test_target_must_be_in_project(self, project, add_phase):
        a = add_phase("A")
        with pytest.raises(NotFoundError):
            add_edge(a, 99999)

    @pytest.mark.parametrize("target,dep_type", [(None, "hard"), ("abc", "hard"), (1, "weak")])
    def test_invalid_input(self, project, add_phase, target, dep_type):
        a = add_phase("A")
        add_phase("B")
        with pytest.raises(ValidationError):
            add_edge(a, target, dep_type)

    def test_list_dependencies_includes_target(self, project, add_phase):
        a, b = add_phase("A"), add_phase("B")
        add_edge(b, a.id, "soft")
        rows = list_dependencies(b)
        assert len(rows) == 1
        assert rows[0]["depends_on_phase_id"] == a.id
        assert rows[0]["depends_on_phase"]["name"] == "A"

    def test_remove_dependency_unblocks(self, project, add_phase):
        a, b = add_phase("A"), add_phase("B")
        dep = add_edge(b, a.id)
        remove_dependency(b, dep.id)
        assert resolve_phase(b)["is_blocked"] is False
        assert AuditLog.query.filter_by(action="phase.dependency_remove").count() == 1

    def test_remove_unknown_dependency(self, project, add_phase):
        a = add_phase("A")
        with pytest.raises(NotFoundError):
            remove_dependency(a, 12345)

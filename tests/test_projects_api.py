"""
tests/test_projects_api.py — project CRUD, initialization endpoint, tenant isolation.

Marker: integration (full HTTP round-trip through Flask test client).
"""

from datetime import datetime, timezone

import pytest

from atelier.models import db
from atelier.models.audit import AuditLog
from atelier.models.auth import User
from atelier.models.phase import ProjectPhase
from atelier.models.project import Project

pytestmark = pytest.mark.integration

BASE = "/api/v1/projects"


def _create(client, headers, **kw):
    payload = {"name": "Mehta Villa", "category": "turnkey", "client_name": "R. Mehta"}
    payload.update(kw)
    return client.post(BASE, headers=headers, json=payload)


class TestProjectCrud:

    def test_create_initializes_phases(self, client, auth_headers, templates, manager):
        res = _create(client, auth_headers)
        assert res.status_code == 201
        body = res.get_json()
        project = body["project"]
        yy = f"{datetime.now(timezone.utc):%y}"
        assert project["project_number"] == f"PRJ-{yy}-0001"
        assert project["status"] == "planning"
        assert body["phase_initialization"] == {"phases": 10, "sub_phases": 28, "dependencies": 11}

        phases = client.get(f"{BASE}/{project['id']}/phases", headers=auth_headers).get_json()["phases"]
        assert len(phases) == 10
        assert phases[0]["is_blocked"] is False
        assert phases[1]["blocking_dependencies"] == ["Site Survey & Measurement"]
        assert AuditLog.query.filter_by(action="project.create").one().actor_user_id == manager.id

    def test_create_without_initialization(self, client, auth_headers, templates):
        res = _create(client, auth_headers, initialize_phases=False)
        assert res.status_code == 201
        assert res.get_json()["phase_initialization"] is None
        assert ProjectPhase.query.count() == 0

    def test_project_numbers_increment(self, client, auth_headers):
        first = _create(client, auth_headers).get_json()["project"]["project_number"]
        second = _create(client, auth_headers, name="Second").get_json()["project"]["project_number"]
        assert first.endswith("-0001")
        assert second.endswith("-0002")

    @pytest.mark.parametrize("payload,message", [
        ({"name": ""}, "Project name is required"),
        ({"category": "castle"}, "Invalid category"),
        ({"status": "dreaming"}, "Invalid status"),
        ({"budget": "lots"}, "budget must be a number"),
        ({"start_date": "2026-12-01", "expected_end_date": "2026-01-01"}, "cannot be before"),
    ])
    def test_create_validation(self, client, auth_headers, payload, message):
        res = _create(client, auth_headers, **payload)
        assert res.status_code == 400
        assert message in res.get_json()["error"]
        assert Project.query.count() == 0

    def test_get_update_delete(self, client, auth_headers, project):
        res = client.get(f"{BASE}/{project.id}", headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["project"]["name"] == "Sharma Residence"

        res = client.patch(f"{BASE}/{project.id}", headers=auth_headers,
                           json={"status": "design", "budget": 1250000})
        assert res.status_code == 200
        body = res.get_json()["project"]
        assert body["status"] == "design"
        assert body["budget"] == 1250000.0
        assert AuditLog.query.filter_by(action="project.update").count() == 1

        res = client.delete(f"{BASE}/{project.id}", headers=auth_headers)
        assert res.status_code == 200
        db.session.refresh(project)
        assert project.is_active is False

        listed = client.get(BASE, headers=auth_headers).get_json()
        assert listed["total"] == 0
        listed = client.get(f"{BASE}?is_active=false", headers=auth_headers).get_json()
        assert [p["id"] for p in listed["projects"]] == [project.id]

    def test_list_filters(self, client, auth_headers):
        _create(client, auth_headers, name="Kapoor Office", client_name="Kapoor & Co",
                status="execution", initialize_phases=False)
        _create(client, auth_headers, name="Lake House", initialize_phases=False)

        res = client.get(f"{BASE}?search=kapoor", headers=auth_headers).get_json()
        assert [p["name"] for p in res["projects"]] == ["Kapoor Office"]
        res = client.get(f"{BASE}?status=execution", headers=auth_headers).get_json()
        assert res["total"] == 1
        res = client.get(f"{BASE}?limit=1", headers=auth_headers).get_json()
        assert res["total"] == 2
        assert len(res["projects"]) == 1


class TestInitializeEndpoint:

    def test_initialize_and_conflict(self, client, auth_headers, project, templates):
        url = f"{BASE}/{project.id}/initialize-phases"
        res = client.post(url, headers=auth_headers, json={})
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["summary"]["phases"] == 10

        res = client.post(url, headers=auth_headers, json={})
        assert res.status_code == 409
        body = res.get_json()
        assert body["error"] == "Phases already exist for this project"
        assert body["existing_count"] == 10
        assert "hint" in body

        res = client.post(url, headers=auth_headers, json={"force": True})
        assert res.status_code == 200
        assert ProjectPhase.query.filter_by(project_id=project.id).count() == 10


class TestTenantIsolation:

    def test_other_tenant_project_is_404(self, client, project, other_tenant, make_headers):
        outsider = User(tenant_id=other_tenant.id, email="spy@other.test")
        db.session.add(outsider)
        db.session.commit()
        headers = make_headers(outsider.id, other_tenant.id)

        assert client.get(f"{BASE}/{project.id}", headers=headers).status_code == 404
        assert client.get(f"{BASE}/{project.id}/phases", headers=headers).status_code == 404
        res = client.patch(f"{BASE}/{project.id}", headers=headers, json={"name": "Hacked"})
        assert res.status_code == 404
        db.session.refresh(project)
        assert project.name == "Sharma Residence"

    def test_list_only_own_projects(self, client, auth_headers, project, other_tenant):
        db.session.add(Project(tenant_id=other_tenant.id, project_number="PRJ-26-0001", name="Theirs"))
        db.session.commit()
        res = client.get(BASE, headers=auth_headers).get_json()
        assert [p["name"] for p in res["projects"]] == ["Sharma Residence"]

    def test_templates_endpoint(self, client, auth_headers, templates):
        res = client.get("/api/v1/phase-templates?category=consultation", headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 4
        assert body["templates"][0]["sub_phases"]
        assert [c["code"] for c in body["categories"]][0] == "design"

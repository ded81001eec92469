"""
tests/test_sub_phase_api.py — sub-phase endpoints, actions, checklist and comments.

Marker: integration (full HTTP round-trip through Flask test client).
"""

from datetime import datetime, timedelta, timezone

import pytest

from atelier.models import db
from atelier.models.phase import PhaseStatusLog, ProjectSubPhase
from atelier.services.phase_initializer import initialize_project_phases

pytestmark = pytest.mark.integration


@pytest.fixture()
def phase(add_phase):
    return add_phase("Site Survey & Measurement")


@pytest.fixture()
def sub_phase(project, phase):
    sub = ProjectSubPhase(tenant_id=project.tenant_id, project_id=project.id,
                          project_phase_id=phase.id, name="Measure site", display_order=1)
    db.session.add(sub)
    db.session.commit()
    return sub


def _url(project, phase, sub=None, suffix=""):
    base = f"/api/v1/projects/{project.id}/phases/{phase.id}/sub-phases"
    if sub is not None:
        base += f"/{sub.id if hasattr(sub, 'id') else sub}"
    return base + suffix


class TestSubPhaseCrud:

    def test_create_and_list(self, client, auth_headers, project, phase, sub_phase, designer):
        res = client.post(_url(project, phase), headers=auth_headers, json={
            "name": "Photograph site", "assigned_to": designer.id, "due_date": "2026-11-20",
        })
        assert res.status_code == 201
        created = res.get_json()["sub_phase"]
        assert created["display_order"] == 2
        assert created["due_date"] == "2026-11-20"
        assert created["checklist_items"] == []

        res = client.get(_url(project, phase), headers=auth_headers)
        assert [s["name"] for s in res.get_json()["sub_phases"]] == ["Measure site", "Photograph site"]

    def test_name_required(self, client, auth_headers, project, phase):
        res = client.post(_url(project, phase), headers=auth_headers, json={})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Sub-phase name is required"

    def test_detail(self, client, auth_headers, project, phase, sub_phase):
        res = client.get(_url(project, phase, sub_phase), headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()["sub_phase"]
        for key in ("instructions", "can_skip", "required_role", "comments",
                    "checklist_items", "status_logs"):
            assert key in body
        assert body["can_skip"] is True

    def test_sub_phase_of_other_phase_is_404(self, client, auth_headers, project, add_phase,
                                             sub_phase):
        other = add_phase("Concept Design")
        res = client.get(_url(project, other, sub_phase), headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["error"] == "Sub-phase not found"

    def test_delete(self, client, auth_headers, project, phase, sub_phase):
        sub_id = sub_phase.id
        res = client.delete(_url(project, phase, sub_phase), headers=auth_headers)
        assert res.status_code == 200
        db.session.expire_all()
        assert db.session.get(ProjectSubPhase, sub_id) is None


class TestSubPhaseUpdate:

    def test_in_progress_requires_assignee(self, client, auth_headers, project, phase, sub_phase):
        res = client.patch(_url(project, phase, sub_phase), headers=auth_headers,
                           json={"status": "in_progress", "status_change_notes": "go"})
        assert res.status_code == 400
        db.session.refresh(sub_phase)
        assert sub_phase.status == "not_started"

    def test_status_change_requires_notes(self, client, auth_headers, project, phase, sub_phase):
        res = client.patch(_url(project, phase, sub_phase), headers=auth_headers,
                           json={"status": "completed"})
        assert res.status_code == 400

    def test_completion_stamps_and_reopen_clears(self, client, auth_headers, project, phase,
                                                 sub_phase, manager):
        res = client.patch(_url(project, phase, sub_phase), headers=auth_headers,
                           json={"status": "completed", "status_change_notes": "measured"})
        assert res.status_code == 200
        body = res.get_json()["sub_phase"]
        assert body["completed_by"] == manager.id
        assert body["completed_at"] is not None
        assert body["actual_end_date"] is not None

        res = client.patch(_url(project, phase, sub_phase), headers=auth_headers,
                           json={"status": "on_hold", "status_change_notes": "re-measure"})
        body = res.get_json()["sub_phase"]
        assert body["completed_at"] is None
        assert body["completed_by"] is None

        logs = PhaseStatusLog.query.filter_by(sub_phase_id=sub_phase.id).all()
        assert len(logs) == 2
        assert all(l.entity_type == "sub_phase" and l.phase_id is None for l in logs)

    def test_explicit_completed_at(self, client, auth_headers, project, phase, sub_phase):
        res = client.patch(_url(project, phase, sub_phase), headers=auth_headers, json={
            "status": "completed", "status_change_notes": "done",
            "completed_at": "2026-10-01T09:30:00Z",
        })
        assert res.status_code == 200
        assert res.get_json()["sub_phase"]["completed_at"].startswith("2026-10-01T09:30:00")

    def test_reopen_completed_sub_phase(self, client, auth_headers, project, phase, sub_phase,
                                        designer, manager):
        today = datetime.now(timezone.utc).date()
        sub_phase.status = "completed"
        sub_phase.assigned_to = designer.id
        sub_phase.actual_start_date = today - timedelta(days=10)
        sub_phase.actual_end_date = today - timedelta(days=2)
        sub_phase.completed_at = datetime.now(timezone.utc) - timedelta(days=2)
        sub_phase.completed_by = manager.id
        db.session.commit()

        res = client.patch(_url(project, phase, sub_phase), headers=auth_headers,
                           json={"status": "in_progress", "status_change_notes": "re-measure"})
        assert res.status_code == 200
        body = res.get_json()["sub_phase"]
        assert body["status"] == "in_progress"
        assert body["completed_at"] is None
        assert body["completed_by"] is None
        log = PhaseStatusLog.query.filter_by(sub_phase_id=sub_phase.id).one()
        assert (log.previous_status, log.new_status) == ("completed", "in_progress")

    def test_skipped_sub_phase_can_restart(self, client, auth_headers, project, phase, sub_phase):
        sub_phase.status = "skipped"
        db.session.commit()
        res = client.patch(_url(project, phase, sub_phase), headers=auth_headers,
                           json={"status": "not_started", "status_change_notes": "needed after all"})
        assert res.status_code == 200
        assert res.get_json()["sub_phase"]["status"] == "not_started"
        assert PhaseStatusLog.query.filter_by(sub_phase_id=sub_phase.id).count() == 1

    def test_non_string_status_is_400(self, client, auth_headers, project, phase, sub_phase):
        res = client.patch(_url(project, phase, sub_phase), headers=auth_headers,
                           json={"status": ["completed"], "status_change_notes": "x"})
        assert res.status_code == 400

    def test_hard_dependency_does_not_block_sub_phase(self, client, auth_headers, project,
                                                      add_phase, add_dependency, designer):
        a = add_phase("A")
        b = add_phase("B")
        add_dependency(b, a, "hard")
        sub = ProjectSubPhase(tenant_id=project.tenant_id, project_id=project.id,
                              project_phase_id=b.id, name="Prep", display_order=1,
                              assigned_to=designer.id)
        db.session.add(sub)
        db.session.commit()
        res = client.patch(_url(project, b, sub), headers=auth_headers,
                           json={"status": "in_progress", "status_change_notes": "prep early"})
        assert res.status_code == 200


class TestSubPhaseActions:

    def test_start_requires_assignee(self, client, auth_headers, project, phase, sub_phase):
        res = client.post(_url(project, phase, sub_phase, "/start"), headers=auth_headers, json={})
        assert res.status_code == 400
        assert res.get_json()["can_start"] is False

    def test_start(self, client, auth_headers, project, phase, sub_phase, designer, manager):
        sub_phase.assigned_to = designer.id
        db.session.commit()
        res = client.post(_url(project, phase, sub_phase, "/start"), headers=auth_headers,
                          json={"notes": "on site today"})
        assert res.status_code == 200
        body = res.get_json()["sub_phase"]
        assert body["status"] == "in_progress"
        assert body["started_by_user"]["id"] == manager.id
        assert body["actual_start_date"] is not None

        again = client.post(_url(project, phase, sub_phase, "/start"), headers=auth_headers, json={})
        assert again.status_code == 400

        log = PhaseStatusLog.query.filter_by(sub_phase_id=sub_phase.id).one()
        assert log.notes == "on site today"

    def test_complete_requires_notes(self, client, auth_headers, project, phase, sub_phase):
        res = client.post(_url(project, phase, sub_phase, "/complete"), headers=auth_headers,
                          json={"notes": " "})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Completion notes are required"

    def test_complete(self, client, auth_headers, project, phase, sub_phase, manager):
        res = client.post(_url(project, phase, sub_phase, "/complete"), headers=auth_headers,
                          json={"notes": "report uploaded"})
        assert res.status_code == 200
        body = res.get_json()["sub_phase"]
        assert body["status"] == "completed"
        assert body["progress_percentage"] == 100
        assert body["completed_by_user"]["id"] == manager.id

    def test_skip_requires_reason(self, client, auth_headers, project, phase, sub_phase):
        res = client.post(_url(project, phase, sub_phase, "/skip"), headers=auth_headers, json={})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Reason is required to skip a sub-phase"

    def test_skip(self, client, auth_headers, project, phase, sub_phase):
        res = client.post(_url(project, phase, sub_phase, "/skip"), headers=auth_headers,
                          json={"reason": "client supplied drawings"})
        assert res.status_code == 200
        body = res.get_json()["sub_phase"]
        assert body["status"] == "skipped"
        assert body["skip_reason"] == "client supplied drawings"
        assert body["skipped_at"] is not None

    def test_template_forbids_skip(self, client, auth_headers, project, templates, manager):
        initialize_project_phases(project, user_id=manager.id)
        sub = (ProjectSubPhase.query
               .filter_by(project_id=project.id, name="Measure and photograph site").one())
        res = client.post(_url(project, sub.phase, sub, "/skip"), headers=auth_headers,
                          json={"reason": "not needed"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "This sub-phase cannot be skipped"

        detail = client.get(_url(project, sub.phase, sub), headers=auth_headers).get_json()
        assert detail["sub_phase"]["can_skip"] is False
        assert detail["sub_phase"]["required_role"] == "site_engineer"
        assert detail["sub_phase"]["instructions"]


class TestChecklistAndComments:

    def test_checklist_lifecycle(self, client, auth_headers, project, phase, sub_phase, manager):
        url = _url(project, phase, sub_phase, "/checklist")
        res = client.post(url, headers=auth_headers, json={"name": "Laser measure kitchen"})
        assert res.status_code == 201
        item = res.get_json()["checklist_item"]
        assert item["is_completed"] is False

        res = client.patch(f"{url}/{item['id']}", headers=auth_headers, json={"is_completed": True})
        body = res.get_json()["checklist_item"]
        assert body["is_completed"] is True
        assert body["completed_by"] == manager.id
        assert body["completed_at"] is not None

        res = client.patch(f"{url}/{item['id']}", headers=auth_headers, json={"is_completed": False})
        body = res.get_json()["checklist_item"]
        assert body["completed_at"] is None
        assert body["completed_by"] is None

        res = client.get(url, headers=auth_headers)
        assert len(res.get_json()["checklist_items"]) == 1

        assert client.delete(f"{url}/{item['id']}", headers=auth_headers).status_code == 200
        assert client.get(url, headers=auth_headers).get_json()["checklist_items"] == []

    def test_checklist_name_required(self, client, auth_headers, project, phase, sub_phase):
        res = client.post(_url(project, phase, sub_phase, "/checklist"), headers=auth_headers,
                          json={"name": ""})
        assert res.status_code == 400

    def test_unknown_checklist_item(self, client, auth_headers, project, phase, sub_phase):
        res = client.patch(_url(project, phase, sub_phase, "/checklist/777"),
                           headers=auth_headers, json={"is_completed": True})
        assert res.status_code == 404
        assert res.get_json()["error"] == "Checklist item not found"

    def test_comments(self, client, auth_headers, project, phase, sub_phase, manager):
        url = _url(project, phase, sub_phase, "/comments")
        res = client.post(url, headers=auth_headers,
                          json={"content": "Wall B is not square", "comment_type": "issue"})
        assert res.status_code == 201
        parent = res.get_json()["comment"]
        assert parent["author"]["id"] == manager.id

        res = client.post(url, headers=auth_headers,
                          json={"content": "Will shim", "parent_comment_id": parent["id"]})
        assert res.status_code == 201

        comments = client.get(url, headers=auth_headers).get_json()["comments"]
        assert [c["content"] for c in comments] == ["Wall B is not square", "Will shim"]
        assert comments[1]["parent_comment_id"] == parent["id"]

    def test_comment_validation(self, client, auth_headers, project, phase, sub_phase):
        url = _url(project, phase, sub_phase, "/comments")
        assert client.post(url, headers=auth_headers, json={"content": ""}).status_code == 400
        assert client.post(url, headers=auth_headers,
                           json={"content": "x", "comment_type": "rant"}).status_code == 400
        assert client.post(url, headers=auth_headers,
                           json={"content": "x", "parent_comment_id": 999}).status_code == 400

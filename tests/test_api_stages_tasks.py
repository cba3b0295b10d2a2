"""
HTTP tests for the stage, task and notification endpoints.
"""

from app.models import db
from app.models.audit import ActivityLog
from app.models.notification import Notification
from app.models.project import Stage, Task


# ── helpers ──────────────────────────────────────────────────────────────


def _validate(client, stage_id, actor_id):
    return client.post("/api/stages/validate", json={"stageId": stage_id, "actorId": actor_id})


def _create_task(client, project_id, **extra):
    res = client.post("/api/tasks", json={"title": "Maquettes", "project_id": project_id, **extra})
    assert res.status_code == 201
    return res.get_json()


# ── Stage validation ─────────────────────────────────────────────────────


class TestValidateStageApi:

    def test_manager_validates_stage(self, client, stage, manager, project):
        res = _validate(client, stage.id, manager.id)

        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["stage"]["status"] == "VALIDATED"
        assert [t["title"] for t in body["tasks"]] == [
            'Préparer les livrables de "Design"',
            'Validation interne de "Design"',
        ]
        assert db.session.get(Stage, stage.id).status == "VALIDATED"
        assert Task.query.filter_by(stage_id=stage.id, project_id=project.id).count() == 2

    def test_validation_notifies_and_logs_activity(self, client, stage, manager):
        _validate(client, stage.id, manager.id)

        notes = Notification.query.filter_by(user_id=manager.id).all()
        assert [n.title for n in notes] == ['Étape "Design" validée']
        log = ActivityLog.query.filter_by(action="stage.validate").one()
        assert log.entity_id == stage.id
        assert log.details["tasks_created"] == 2

    def test_revalidation_conflicts(self, client, stage, manager):
        _validate(client, stage.id, manager.id)
        res = _validate(client, stage.id, manager.id)

        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"
        assert Task.query.filter_by(stage_id=stage.id).count() == 2

    def test_employee_forbidden(self, client, stage, employee):
        res = _validate(client, stage.id, employee.id)

        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"
        assert db.session.get(Stage, stage.id).status == "PENDING"
        assert Task.query.count() == 0

    def test_unknown_stage(self, client, manager):
        res = _validate(client, "missing", manager.id)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_missing_fields(self, client):
        res = client.post("/api/stages/validate", json={"stageId": "s1"})
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["details"] == {"actorId": "required"}


# ── Stage CRUD ───────────────────────────────────────────────────────────


class TestStageCrud:

    def test_create_and_get(self, client, project, manager):
        res = client.post("/api/stages", json={
            "name": "Recette", "project_id": project.id, "duration": 10, "actorId": manager.id,
        })
        assert res.status_code == 201
        created = res.get_json()
        assert created["status"] == "PENDING"
        assert created["position"] == 0

        res = client.get(f"/api/stages/{created['id']}")
        assert res.status_code == 200
        assert res.get_json()["available_events"] == ["start", "validate"]

    def test_create_requires_name(self, client, project):
        res = client.post("/api/stages", json={"project_id": project.id})
        assert res.status_code == 400

    def test_create_in_unknown_project(self, client):
        res = client.post("/api/stages", json={"name": "X", "project_id": "nope"})
        assert res.status_code == 404

    def test_list_filters_by_project(self, client, stage, project):
        res = client.get(f"/api/stages?project_id={project.id}")
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == stage.id

    def test_get_missing(self, client):
        assert client.get("/api/stages/missing").status_code == 404


# ── Tasks ────────────────────────────────────────────────────────────────


class TestTaskApi:

    def test_create_task_validates_priority(self, client, project):
        res = client.post("/api/tasks", json={"title": "X", "project_id": project.id, "priority": "urgent"})
        assert res.status_code == 400

    def test_create_task_with_due_date(self, client, project):
        task = _create_task(client, project.id, priority="high", due_date="2026-04-01")
        assert task["priority"] == "HIGH"
        assert task["due_date"] == "2026-04-01"
        assert task["status"] == "TODO"

    def test_assign(self, client, project, employee):
        task = _create_task(client, project.id)
        res = client.post("/api/tasks/assign", json={"taskId": task["id"], "userId": employee.id})

        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["task"]["assigned_to"] == employee.id
        assert body["task"]["status"] == "TODO"
        assert Notification.query.filter_by(user_id=employee.id).count() == 1

    def test_assign_missing_task(self, client, employee):
        res = client.post("/api/tasks/assign", json={"taskId": "missing", "userId": employee.id})
        assert res.status_code == 404

    def test_employee_actor_cannot_assign(self, client, project, employee, manager):
        task = _create_task(client, project.id)
        res = client.post("/api/tasks/assign", json={
            "taskId": task["id"], "userId": manager.id, "actorId": employee.id,
        })
        assert res.status_code == 403
        assert db.session.get(Task, task["id"]).assigned_to is None

    def test_accept_then_reject_conflicts(self, client, project, employee):
        task = _create_task(client, project.id, assigned_to=employee.id)

        res = client.post(f"/api/tasks/{task['id']}/accept", json={"actorId": employee.id})
        assert res.status_code == 200
        assert res.get_json()["task"]["status"] == "IN_PROGRESS"

        res = client.post(f"/api/tasks/{task['id']}/reject", json={"reason": "trop tard"})
        assert res.status_code == 409

    def test_reject_requires_reason(self, client, project):
        task = _create_task(client, project.id)
        res = client.post(f"/api/tasks/{task['id']}/reject", json={})
        assert res.status_code == 400

    def test_reject(self, client, project, employee):
        task = _create_task(client, project.id, assigned_to=employee.id)
        res = client.post(f"/api/tasks/{task['id']}/reject",
                          json={"reason": "Pas disponible", "actorId": employee.id})

        assert res.status_code == 200
        assert res.get_json()["task"]["status"] == "CANCELED"
        assert res.get_json()["task"]["refusal_reason"] == "Pas disponible"
        assert ActivityLog.query.filter_by(action="task.refuse").count() == 1

    def test_list_by_assignee(self, client, project, employee):
        _create_task(client, project.id, assigned_to=employee.id)
        _create_task(client, project.id)

        body = client.get(f"/api/tasks?assigned_to={employee.id}").get_json()
        assert body["total"] == 1


# ── Notifications ────────────────────────────────────────────────────────


class TestNotificationApi:

    def test_list_and_mark_read(self, client, stage, manager):
        _validate(client, stage.id, manager.id)

        body = client.get(f"/api/notifications?user_id={manager.id}").get_json()
        assert body["total"] == 1
        assert body["unread_count"] == 1

        note_id = body["items"][0]["id"]
        res = client.post(f"/api/notifications/{note_id}/read")
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        body = client.get(f"/api/notifications?user_id={manager.id}").get_json()
        assert body["unread_count"] == 0

    def test_user_id_required(self, client):
        res = client.get("/api/notifications")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_mark_missing(self, client):
        assert client.post("/api/notifications/missing/read").status_code == 404


def test_health(client):
    assert client.get("/api/health/live").get_json() == {"status": "ok"}
    res = client.get("/api/health/ready")
    assert res.status_code == 200
    assert res.get_json()["checks"]["database"]["status"] == "ok"


# ── Partial failure and task regeneration ────────────────────────────────


def _fail_task_creation(monkeypatch):
    from app.core.exceptions import RepositoryError
    from app.services.repositories import SqlTaskRepository

    def _boom(self, specs, *, created_by_id=None):
        raise RepositoryError("task store unavailable")

    monkeypatch.setattr(SqlTaskRepository, "create_many", _boom)


class TestPartialFailureApi:

    def test_validation_reports_pending_tasks(self, client, stage, manager, monkeypatch):
        _fail_task_creation(monkeypatch)

        res = _validate(client, stage.id, manager.id)

        assert res.status_code == 500
        body = res.get_json()
        assert body["code"] == "ERR_PARTIAL_FAILURE"
        assert body["details"]["stage"]["status"] == "VALIDATED"
        assert [t["title"] for t in body["details"]["pending_tasks"]] == [
            'Préparer les livrables de "Design"',
            'Validation interne de "Design"',
        ]
        assert db.session.get(Stage, stage.id).status == "VALIDATED"
        assert Task.query.count() == 0

    def test_generate_tasks_after_partial_failure(self, client, stage, manager, monkeypatch):
        _fail_task_creation(monkeypatch)
        _validate(client, stage.id, manager.id)
        monkeypatch.undo()

        res = client.post(f"/api/stages/{stage.id}/generate-tasks", json={"actorId": manager.id})

        assert res.status_code == 201
        assert len(res.get_json()["tasks"]) == 2
        assert Task.query.filter_by(stage_id=stage.id).count() == 2
        assert ActivityLog.query.filter_by(action="stage.generate_tasks").count() == 1

        res = client.post(f"/api/stages/{stage.id}/generate-tasks", json={"actorId": manager.id})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"
        assert Task.query.filter_by(stage_id=stage.id).count() == 2

    def test_generate_tasks_requires_validated_stage(self, client, stage, manager):
        res = client.post(f"/api/stages/{stage.id}/generate-tasks", json={"actorId": manager.id})
        assert res.status_code == 409
        assert Task.query.count() == 0

    def test_generate_tasks_forbidden_for_employee(self, client, stage, manager, employee, monkeypatch):
        _fail_task_creation(monkeypatch)
        _validate(client, stage.id, manager.id)
        monkeypatch.undo()

        res = client.post(f"/api/stages/{stage.id}/generate-tasks", json={"actorId": employee.id})
        assert res.status_code == 403
        assert Task.query.count() == 0


def test_assign_to_user_unknown_locally(client, project):
    task = _create_task(client, project.id)

    res = client.post("/api/tasks/assign", json={"taskId": task["id"], "userId": "ghost-user"})

    assert res.status_code == 200
    assert res.get_json()["task"]["assigned_to"] == "ghost-user"
    assert db.session.get(Task, task["id"]).assigned_to == "ghost-user"


def test_request_log_carries_workflow_context(client, stage, manager, caplog):
    with caplog.at_level("DEBUG", logger="app.middleware.timing"):
        _validate(client, stage.id, manager.id)

    (record,) = [r for r in caplog.records if r.name == "app.middleware.timing"]
    assert record.stage_id == stage.id
    assert record.actor_id == manager.id
    assert record.status == 200

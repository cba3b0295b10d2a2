"""
Task Blueprint.

Endpoints:
    GET  /api/tasks                  — list (filters: project_id, stage_id, assigned_to, status)
    POST /api/tasks                  — create
    GET  /api/tasks/<id>             — detail
    POST /api/tasks/assign           — assign {taskId, userId, actorId?}
    POST /api/tasks/<id>/accept      — assignee accepts (TODO → IN_PROGRESS)
    POST /api/tasks/<id>/reject      — assignee refuses with {reason}
"""

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query
from app.services import task_service
from app.utils.helpers import require_fields

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/tasks")


@task_bp.route("", methods=["GET"])
def list_tasks():
    q = task_service.list_tasks(
        project_id=request.args.get("project_id"),
        stage_id=request.args.get("stage_id"),
        assigned_to=request.args.get("assigned_to"),
        status=request.args.get("status"),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [t.to_dict() for t in items], "total": total})


@task_bp.route("", methods=["POST"])
def create_task():
    data = request.get_json(silent=True) or {}
    task = task_service.create_task(data, created_by_id=data.get("actorId") or data.get("created_by_id"))
    return jsonify(task.to_dict()), 201


@task_bp.route("/<task_id>", methods=["GET"])
def get_task(task_id):
    return jsonify(task_service.get_task(task_id).to_dict())


@task_bp.route("/assign", methods=["POST"])
def assign_task():
    data = request.get_json(silent=True) or {}
    task_id, user_id = require_fields(data, "taskId", "userId")
    task = task_service.assign_task(task_id, user_id, actor_id=data.get("actorId"))
    return jsonify({"success": True, "task": task.to_dict()})


@task_bp.route("/<task_id>/accept", methods=["POST"])
def accept_task(task_id):
    data = request.get_json(silent=True) or {}
    task = task_service.accept_task(task_id, actor_id=data.get("actorId"))
    return jsonify({"success": True, "task": task.to_dict()})


@task_bp.route("/<task_id>/reject", methods=["POST"])
def reject_task(task_id):
    data = request.get_json(silent=True) or {}
    task = task_service.reject_task(task_id, data.get("reason"), actor_id=data.get("actorId"))
    return jsonify({"success": True, "task": task.to_dict()})

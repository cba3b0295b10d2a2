"""
Stage Blueprint.

Endpoints:
    GET  /api/stages                 — list (filters: project_id, status)
    POST /api/stages                 — create
    GET  /api/stages/<id>            — detail
    POST /api/stages/validate        — validate a stage {stageId, actorId}
    POST /api/stages/<id>/generate-tasks — create missing generated tasks {actorId}

Workflow errors propagate to the handlers in ``app.blueprints.errors``.
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query
from app.core.stage_transitions import available_stage_events
from app.services import stage_service
from app.utils.helpers import require_fields

logger = logging.getLogger(__name__)

stage_bp = Blueprint("stage_bp", __name__, url_prefix="/api/stages")


@stage_bp.route("", methods=["GET"])
def list_stages():
    q = stage_service.list_stages(
        project_id=request.args.get("project_id"),
        status=request.args.get("status"),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [s.to_dict() for s in items], "total": total})


@stage_bp.route("", methods=["POST"])
def create_stage():
    data = request.get_json(silent=True) or {}
    stage = stage_service.create_stage(data, created_by_id=data.get("actorId") or data.get("created_by_id"))
    return jsonify(stage.to_dict()), 201


@stage_bp.route("/<stage_id>", methods=["GET"])
def get_stage(stage_id):
    stage = stage_service.get_stage(stage_id)
    body = stage.to_dict()
    body["available_events"] = available_stage_events(stage.to_entity())
    return jsonify(body)


@stage_bp.route("/validate", methods=["POST"])
def validate_stage():
    """Validate a stage and generate its follow-up tasks."""
    data = request.get_json(silent=True) or {}
    stage_id, actor_id = require_fields(data, "stageId", "actorId")

    result = stage_service.validate_stage(stage_id, actor_id)
    return jsonify({"success": True, **result.to_dict()}), 200


@stage_bp.route("/<stage_id>/generate-tasks", methods=["POST"])
def generate_stage_tasks(stage_id):
    """Create the generated tasks a failed validation could not store."""
    data = request.get_json(silent=True) or {}
    (actor_id,) = require_fields(data, "actorId")

    tasks = stage_service.generate_stage_tasks(stage_id, actor_id)
    return jsonify({"success": True, "tasks": [t.to_dict() for t in tasks]}), 201

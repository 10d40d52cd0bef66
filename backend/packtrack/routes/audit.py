# Overview: Read-only audit log endpoint.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_context
from ..services import audit_service

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_context
def list_audit_route():
    """
    Query params (all optional):
        entity_type, action, actor_id, days, limit (default 1000)
    """
    logs = audit_service.list_audit_logs(
        g.ctx,
        entity_type=request.args.get("entity_type"),
        action=request.args.get("action"),
        actor_id=request.args.get("actor_id", type=int),
        days=request.args.get("days", type=int),
        limit=min(request.args.get("limit", 1000, type=int), 1000),
    )
    return jsonify({"logs": [entry.to_dict() for entry in logs]}), 200

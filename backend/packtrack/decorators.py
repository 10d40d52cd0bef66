# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .extensions import db
from .models import Workspace
from .services.context import OperationContext


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


def require_context(f):
    """
    Establish the workspace/actor context for a request.

    Sets g.ctx to an OperationContext built from:
    - X-Workspace-Id (required, must name an active workspace)
    - X-Actor-Id (optional, recorded on audit entries)

    Returns 400 on a missing or malformed header, 404 on an unknown or
    inactive workspace.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            workspace_id = _header_int("X-Workspace-Id")
            actor_id = _header_int("X-Actor-Id")
        except ValueError:
            return jsonify({"error": "X-Workspace-Id and X-Actor-Id must be integers"}), 400

        if workspace_id is None:
            return jsonify({"error": "X-Workspace-Id header required"}), 400

        workspace = db.session.get(Workspace, workspace_id)
        if workspace is None or not workspace.is_active:
            return jsonify({"error": f"Workspace {workspace_id} not found"}), 404

        try:
            g.ctx = OperationContext(workspace_id=workspace_id, actor_id=actor_id)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        return f(*args, **kwargs)

    return decorated_function

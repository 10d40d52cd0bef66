# Overview: Audit emitter; records an immutable description of every mutating action.

from __future__ import annotations

import json
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog
from ..time_utils import utcnow
from .context import OperationContext
"""
Audit Invariants

- Append-only: entries are inserted, never updated or deleted.
- Written inside the caller's transaction so a rolled-back operation
  leaves no audit trace.
- Best-effort: a failure to write the entry is logged and swallowed.
  The entry is written inside a SAVEPOINT so the failed insert does not
  poison the caller's transaction.
"""


def _write_entry(
    ctx: OperationContext,
    action: str,
    entity_type: str,
    entity_id: int | None,
    details: dict | None,
) -> AuditLog:
    entry = AuditLog(
        workspace_id=ctx.workspace_id,
        actor_id=ctx.actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=json.dumps(details or {}, sort_keys=True, default=str),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def record(
    ctx: OperationContext,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    details: dict | None = None,
) -> AuditLog | None:
    """
    Record an audit entry for a mutating action.

    Returns the entry, or None when writing it failed.
    """
    try:
        with db.session.begin_nested():
            entry = _write_entry(ctx, action, entity_type, entity_id, details)
    except (SQLAlchemyError, TypeError, ValueError):
        current_app.logger.exception(
            "Failed to record audit entry %s on %s %s", action, entity_type, entity_id
        )
        return None

    current_app.logger.info(
        "[Activity] %s by actor %s on %s %s",
        action, ctx.actor_id, entity_type, entity_id if entity_id is not None else "",
    )
    return entry


def list_audit_logs(
    ctx: OperationContext,
    *,
    entity_type: str | None = None,
    action: str | None = None,
    actor_id: int | None = None,
    days: int | None = None,
    limit: int = 1000,
) -> list[AuditLog]:
    """Audit entries for the workspace, newest first."""
    q = db.session.query(AuditLog).filter(AuditLog.workspace_id == ctx.workspace_id)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if action:
        q = q.filter(AuditLog.action == action)
    if actor_id is not None:
        q = q.filter(AuditLog.actor_id == actor_id)
    if days is not None:
        q = q.filter(AuditLog.created_at >= utcnow() - timedelta(days=days))
    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()

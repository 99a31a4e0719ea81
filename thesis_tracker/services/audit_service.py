"""
Audit read side and actor resolution.

Writing goes through :func:`thesis_tracker.models.audit.write_audit`, always
inside the caller's transaction.  This module answers the questions the API
asks of the trail.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, select

from thesis_tracker.core.exceptions import NotFoundError
from thesis_tracker.models import db
from thesis_tracker.models.audit import AuditLog

FALLBACK_ACTOR = "admin"


def resolve_actor(actor: str | None) -> str:
    """Return *actor* stripped, or the configured fallback identity."""
    if actor is not None and str(actor).strip():
        return str(actor).strip()[:150]
    return current_app.config.get("DEFAULT_AUDIT_ACTOR") or FALLBACK_ACTOR


def list_audit_logs(
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    action: str | None = None,
    actor: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    """Filtered, newest-first page of audit rows."""
    stmt = select(AuditLog)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(AuditLog.entity_id == entity_id)
    if action:
        stmt = stmt.where(AuditLog.action == action.upper())
    if actor:
        stmt = stmt.where(AuditLog.actor == actor)

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()

    page = max(1, page)
    per_page = min(200, max(1, per_page))
    rows = db.session.execute(
        stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).scalars().all()

    return {
        "audit_logs": [log.to_dict() for log in rows],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
    }


def get_audit_log(log_id: int) -> dict:
    log = db.session.get(AuditLog, log_id)
    if log is None:
        raise NotFoundError(resource="AuditLog", resource_id=log_id)
    return log.to_dict()

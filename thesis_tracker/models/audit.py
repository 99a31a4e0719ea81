"""
Thesis Progress Tracker
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of every create/update/delete
      on a tracked schedule entity (week closure is recorded as UPDATE).
"""

import json
from datetime import UTC, datetime

from sqlalchemy import event as _sa_event

from thesis_tracker.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "month", "week", "activity", "task", "kpi", "evidence",
}

AUDIT_ACTIONS = {"CREATE", "UPDATE", "DELETE"}


class AuditLog(db.Model):
    """
    Immutable audit trail row.

    ``diff_json`` carries the ``{field: {old, new}}`` snapshot: ``old`` is
    null on CREATE, ``new`` is null on DELETE.  ``reason`` is mandatory for
    DELETE and optional otherwise.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference (no FK: the row outlives deleted entities)
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="month | week | activity | task | kpi | evidence",
    )
    entity_id = db.Column(db.Integer, nullable=False)

    # What happened
    action = db.Column(db.String(10), nullable=False, comment="CREATE | UPDATE | DELETE")
    actor = db.Column(db.String(150), nullable=False, default="admin")
    reason = db.Column(db.Text, nullable=True)

    # Change payload
    diff_json = db.Column(db.Text, default="{}", comment="JSON: {field: {old, new}}")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "reason": self.reason,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


@_sa_event.listens_for(AuditLog, "before_update")
def _block_audit_update(mapper, connection, target) -> None:  # noqa: ANN001
    raise RuntimeError(f"audit_logs is append-only; refusing to update row {target.id}")


@_sa_event.listens_for(AuditLog, "before_delete")
def _block_audit_delete(mapper, connection, target) -> None:  # noqa: ANN001
    raise RuntimeError(f"audit_logs is append-only; refusing to delete row {target.id}")


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    actor: str,
    reason: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control; the mutation being described must already be
    flushed so the row is ordered after it.

    Returns the (flushed) AuditLog instance.
    """
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity_type: {entity_type}")
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    log = AuditLog(
        entity_type=entity_type,
        entity_id=int(entity_id),
        action=action,
        actor=actor,
        reason=reason,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log

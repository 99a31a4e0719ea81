"""
Audit trail blueprint (read-only).

Endpoints:
    GET  /api/v1/audit               - list / filter audit logs
    GET  /api/v1/audit/<int:log_id>  - single audit entry
"""

from flask import Blueprint, jsonify, request

from thesis_tracker.services import audit_service as svc

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


@audit_bp.route("/audit", methods=["GET"])
def list_audit_logs():
    """
    Return paginated audit logs, newest first.

    Query params:
        entity_type  - month | week | activity | task | kpi | evidence
        entity_id    - filter by entity PK
        action       - CREATE | UPDATE | DELETE
        actor        - filter by actor
        page         - page number (default 1)
        per_page     - items per page (default 50, max 200)
    """
    return jsonify(svc.list_audit_logs(
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        action=request.args.get("action"),
        actor=request.args.get("actor"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 50, type=int),
    ))


@audit_bp.route("/audit/<int:log_id>", methods=["GET"])
def get_audit_log(log_id):
    return jsonify(svc.get_audit_log(log_id))

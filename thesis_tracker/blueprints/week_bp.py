"""
Week closure blueprint.

Endpoints:
    GET  /api/v1/weeks/<id>/closure-check  - every blocking gate, no side effects
    POST /api/v1/weeks/<id>/close          - validated, audited, terminal

This is the only route that can set ``Week.closed``.
"""

from flask import Blueprint, jsonify, request

from thesis_tracker.services import closure as svc

week_bp = Blueprint("weeks", __name__, url_prefix="/api/v1/weeks")


@week_bp.route("/<int:week_id>/closure-check", methods=["GET"])
def closure_check(week_id):
    return jsonify(svc.check_closure_readiness(week_id)), 200


@week_bp.route("/<int:week_id>/close", methods=["POST"])
def close_week(week_id):
    data = request.get_json(silent=True) or {}
    actor = data.get("actor") if isinstance(data, dict) else None
    week = svc.attempt_close(week_id, actor=actor)
    return jsonify({"message": "Week closed", "week": week}), 200

"""
ABM (create / update / delete) blueprint.

Endpoints:
    POST   /api/v1/abm/<kind>        - create
    GET    /api/v1/abm/<kind>/<id>   - read one
    PUT    /api/v1/abm/<kind>/<id>   - partial update
    DELETE /api/v1/abm/<kind>/<id>   - delete; ``reason`` required

<kind> is one of: months, weeks, activities, tasks, kpis, evidence.
``actor`` is read from the JSON body (or query string on DELETE) and is
never stored on the entity itself.
Service layer owns validation, auditing and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from thesis_tracker.services import entity_service as svc
from thesis_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

abm_bp = Blueprint("abm", __name__, url_prefix="/api/v1/abm")


def _payload():
    """Return (fields, actor, error) from the JSON body."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None, None, api_error(E.VALIDATION_INVALID, "JSON body must be an object")
    fields = dict(data)
    actor = fields.pop("actor", None)
    return fields, actor, None


@abm_bp.route("/<kind>", methods=["POST"])
def create(kind):
    fields, actor, err = _payload()
    if err:
        return err
    return jsonify(svc.create_entity(kind, fields, actor=actor)), 201


@abm_bp.route("/<kind>/<int:entity_id>", methods=["GET"])
def get_one(kind, entity_id):
    return jsonify(svc.get_entity(kind, entity_id)), 200


@abm_bp.route("/<kind>/<int:entity_id>", methods=["PUT"])
def update(kind, entity_id):
    fields, actor, err = _payload()
    if err:
        return err
    if not fields:
        return api_error(E.VALIDATION_REQUIRED, "No fields to update")
    return jsonify(svc.update_entity(kind, entity_id, fields, actor=actor)), 200


@abm_bp.route("/<kind>/<int:entity_id>", methods=["DELETE"])
def delete(kind, entity_id):
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        body = {}
    reason = request.args.get("reason") or body.get("reason")
    actor = request.args.get("actor") or body.get("actor")
    return jsonify(svc.delete_entity(kind, entity_id, reason, actor=actor)), 200
